"""
Availability routes
"""
from typing import List
from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_core.database import get_db
from hotel_core.errors import NotFoundError
from hotel_core.models.ontology import RoomType
from hotel_core.models.schemas import AvailableRoomResponse
from hotel_core.security.auth import Operator, get_current_operator
from hotel_core.services.availability_service import AvailabilityService

router = APIRouter(prefix="/availability", tags=["Availability"])


@router.get("", response_model=List[AvailableRoomResponse])
def find_available_rooms(
    room_type_id: int,
    check_in: date,
    check_out: date,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator)
):
    """Free rooms of a type for [check_in, check_out)"""
    room_type = db.query(RoomType).filter(
        RoomType.id == room_type_id,
        RoomType.property_id == operator.property_id
    ).first()
    if not room_type:
        raise NotFoundError("room type", room_type_id)
    return AvailabilityService(db).find_available_rooms(room_type_id, check_in, check_out)
