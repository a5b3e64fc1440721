"""
Folio routes
"""
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_core.database import get_db
from hotel_core.models.ontology import FolioStatus
from hotel_core.models.schemas import (
    ChargeCreate, PaymentCreate, VoidRequest, CloseRequest,
    FolioResponse, FolioDetailResponse, FolioItemResponse, PaymentResponse,
    FolioCloseResponse
)
from hotel_core.security.auth import Operator, get_current_operator
from hotel_core.services.folio_service import FolioService

router = APIRouter(prefix="/folios", tags=["Folios"])


@router.get("", response_model=List[FolioResponse])
def list_folios(
    status: Optional[FolioStatus] = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return FolioService(db).list_folios(operator.property_id, status)


@router.get("/{folio_id}", response_model=FolioDetailResponse)
def get_folio(
    folio_id: int,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """Folio with its items and payments"""
    detail = FolioService(db).get_detail(folio_id, operator.property_id)
    return FolioDetailResponse(
        **FolioResponse.model_validate(detail["folio"]).model_dump(),
        items=[FolioItemResponse.model_validate(i) for i in detail["items"]],
        payments=[PaymentResponse.model_validate(p) for p in detail["payments"]],
    )


@router.post("/{folio_id}/charges", response_model=FolioItemResponse, status_code=201)
def post_charge(
    folio_id: int,
    data: ChargeCreate,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    service = FolioService(db)
    service.get_folio(folio_id, operator.property_id)
    return service.post_charge(
        folio_id, data.item_type, data.description, data.quantity, data.unit_price,
        tax_rate=data.tax_rate,
        service_charge_rate=data.service_charge_rate,
        service_date=data.service_date,
        created_by=operator.id,
    )


@router.post("/{folio_id}/payments", response_model=PaymentResponse, status_code=201)
def record_payment(
    folio_id: int,
    data: PaymentCreate,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """Record a payment; resubmitting the same reference is a no-op"""
    service = FolioService(db)
    service.get_folio(folio_id, operator.property_id)
    return service.record_payment(
        folio_id, data.amount, data.method,
        reference_number=data.reference_number,
        notes=data.notes,
        created_by=operator.id,
    )


@router.post("/items/{item_id}/void", response_model=FolioItemResponse)
def void_item(
    item_id: int,
    data: VoidRequest,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return FolioService(db).void_item(
        item_id, data.reason, voided_by=operator.id, property_id=operator.property_id
    )


@router.post("/{folio_id}/close", response_model=FolioCloseResponse)
def close_folio(
    folio_id: int,
    data: Optional[CloseRequest] = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """Close the folio; a nonzero balance is reported as unsettled"""
    service = FolioService(db)
    service.get_folio(folio_id, operator.property_id)
    result = service.close(folio_id, closed_by=operator.id, note=data.note if data else None)
    return FolioCloseResponse(
        folio=FolioResponse.model_validate(result.folio),
        unsettled=result.unsettled,
    )
