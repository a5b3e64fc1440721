"""
Report routes
"""
from typing import Optional
from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_core.database import get_db
from hotel_core.models.schemas import (
    ReservationStats, FolioStats, RoomStats, ReconciliationResponse
)
from hotel_core.security.auth import Operator, get_current_operator
from hotel_core.services.booking_service import BookingService
from hotel_core.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/reservations", response_model=ReservationStats)
def reservation_stats(
    today: Optional[date] = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return ReportService(db).reservation_stats(operator.property_id, today)


@router.get("/folios", response_model=FolioStats)
def folio_stats(
    today: Optional[date] = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return ReportService(db).folio_stats(operator.property_id, today)


@router.get("/rooms", response_model=RoomStats)
def room_stats(
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return ReportService(db).room_stats(operator.property_id)


@router.post("/reconcile", response_model=ReconciliationResponse)
def reconcile(
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """Open any folio missing for the property's reservations"""
    report = BookingService(db).reconcile(operator.property_id)
    return ReconciliationResponse(
        checked=report.checked, repaired=report.repaired, failed=report.failed
    )
