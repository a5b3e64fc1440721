"""
Reservation routes
Booking, stay lifecycle and amendments
"""
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_core.database import get_db
from hotel_core.models.ontology import ReservationStatus
from hotel_core.models.schemas import (
    ReservationCreate, ReservationResponse, BookingResponse, CheckInRequest,
    CancelRequest, AmendRequest, RoomChangeRequest, RoomLineResponse
)
from hotel_core.security.auth import Operator, get_current_operator
from hotel_core.services.booking_service import BookingService
from hotel_core.services.checkin_service import CheckInService
from hotel_core.services.checkout_service import CheckOutService
from hotel_core.services.reservation_service import ReservationService, LineRequest

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.get("", response_model=List[ReservationResponse])
def list_reservations(
    status: Optional[ReservationStatus] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    keyword: Optional[str] = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """List reservations of the operator's property"""
    service = ReservationService(db)
    if keyword:
        return service.search_reservations(operator.property_id, keyword)
    return service.list_reservations(operator.property_id, status, from_date, to_date)


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return ReservationService(db).get_reservation(reservation_id, operator.property_id)


@router.post("", response_model=BookingResponse, status_code=201)
def create_reservation(
    data: ReservationCreate,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """Book one or more rooms; the folio is opened alongside"""
    result = BookingService(db).create_reservation(
        property_id=operator.property_id,
        guest_id=data.guest_id,
        check_in=data.check_in_date,
        check_out=data.check_out_date,
        room_lines=[
            LineRequest(
                room_type_id=line.room_type_id,
                room_id=line.room_id,
                rate_per_night=line.rate_per_night,
                adults=line.adults,
                children=line.children,
            )
            for line in data.room_lines
        ],
        adults=data.adults,
        children=data.children,
        source=data.source,
        special_requests=data.special_requests,
        internal_notes=data.internal_notes,
        created_by=operator.id,
    )
    return BookingResponse(
        reservation=ReservationResponse.model_validate(result.reservation),
        folio_id=result.folio.id if result.folio else None,
        folio_pending=result.folio_pending,
    )


@router.post("/{reservation_id}/check-in", response_model=ReservationResponse)
def check_in(
    reservation_id: int,
    data: Optional[CheckInRequest] = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """Check in, assigning rooms to lines that have none"""
    return CheckInService(db).check_in(
        reservation_id,
        assignments=data.assignments if data else None,
        operator_id=operator.id,
        property_id=operator.property_id,
    )


@router.post("/{reservation_id}/check-out", response_model=ReservationResponse)
def check_out(
    reservation_id: int,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return CheckOutService(db).check_out(
        reservation_id, operator_id=operator.id, property_id=operator.property_id
    )


@router.post("/{reservation_id}/change-room", response_model=RoomLineResponse)
def change_room(
    reservation_id: int,
    data: RoomChangeRequest,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return CheckInService(db).change_room(
        reservation_id, data.line_id, data.new_room_id,
        operator_id=operator.id, property_id=operator.property_id
    )


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    data: CancelRequest,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return BookingService(db).cancel_reservation(
        reservation_id, data.reason,
        operator_id=operator.id, property_id=operator.property_id
    )


@router.post("/{reservation_id}/no-show", response_model=ReservationResponse)
def mark_no_show(
    reservation_id: int,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    return BookingService(db).mark_no_show(
        reservation_id, operator_id=operator.id, property_id=operator.property_id
    )


@router.post("/{reservation_id}/amend", response_model=ReservationResponse)
def amend_reservation(
    reservation_id: int,
    data: AmendRequest,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """Move the stay range; room charges follow on the folio"""
    return BookingService(db).amend_dates(
        reservation_id, data.check_in_date, data.check_out_date,
        operator_id=operator.id, property_id=operator.property_id
    )
