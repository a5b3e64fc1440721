"""
Availability checker
Rooms of a type with no overlapping active assignment for a date range

Ranges are half-open: [a1, a2) and [b1, b2) intersect iff a1 < b2 and b1 < a2,
so a checkout on day D never conflicts with a check-in on day D.
"""
from datetime import date
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from hotel_core.errors import ValidationError
from hotel_core.models.ontology import (
    Room, Reservation, ReservationRoomLine,
    ASSIGNABLE_ROOM_STATUSES, ACTIVE_RESERVATION_STATUSES, OUT_OF_SERVICE_ROOM_STATUSES,
)

logger = logging.getLogger(__name__)


def validate_range(check_in: date, check_out: date) -> None:
    """Reject empty or inverted ranges"""
    if check_in is None or check_out is None:
        raise ValidationError("check-in and check-out dates are required")
    if check_out <= check_in:
        raise ValidationError(
            f"check-out date {check_out.isoformat()} must be after check-in date {check_in.isoformat()}"
        )


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open interval intersection"""
    return a_start < b_end and b_start < a_end


class AvailabilityService:
    """Availability checker"""

    def __init__(self, db: Session):
        self.db = db

    def _overlapping_lines(self, check_in: date, check_out: date,
                           exclude_reservation_id: Optional[int] = None):
        """Active lines whose reservation intersects [check_in, check_out)"""
        query = self.db.query(ReservationRoomLine).join(Reservation).filter(
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            Reservation.check_in_date < check_out,
            Reservation.check_out_date > check_in,
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return query

    def find_available_rooms(self, room_type_id: int, check_in: date, check_out: date,
                             exclude_reservation_id: Optional[int] = None) -> List[Room]:
        """
        Rooms of the type that can take the stay

        Candidates are active rooms currently vacant or dirty; maintenance and
        out-of-order rooms are never offered. A candidate is dropped when an active
        reservation line holds it for an intersecting range. Zero availability is an
        empty list, not an error.
        """
        validate_range(check_in, check_out)

        candidates = self.db.query(Room).filter(
            Room.room_type_id == room_type_id,
            Room.is_active == True,  # noqa: E712
            Room.status.in_(ASSIGNABLE_ROOM_STATUSES),
        ).order_by(Room.room_number).all()
        return self._unclaimed(candidates, check_in, check_out, exclude_reservation_id)

    def unclaimed_rooms(self, room_type_id: int, check_in: date, check_out: date,
                        exclude_reservation_id: Optional[int] = None) -> List[Room]:
        """
        Rooms of the type with no active claim on the range, whatever their status tonight

        This is the capacity an unassigned line books against. An occupied or dirty
        room is free for a later stay once its current guest's dates are past; only
        maintenance and out-of-order rooms are withdrawn from sale.
        """
        validate_range(check_in, check_out)

        candidates = self.db.query(Room).filter(
            Room.room_type_id == room_type_id,
            Room.is_active == True,  # noqa: E712
            Room.status.notin_(OUT_OF_SERVICE_ROOM_STATUSES),
        ).order_by(Room.room_number).all()
        return self._unclaimed(candidates, check_in, check_out, exclude_reservation_id)

    def _unclaimed(self, candidates: List[Room], check_in: date, check_out: date,
                   exclude_reservation_id: Optional[int] = None) -> List[Room]:
        if not candidates:
            return []
        claimed = {
            line.room_id for line in self._overlapping_lines(
                check_in, check_out, exclude_reservation_id
            ).filter(
                ReservationRoomLine.room_id.in_([r.id for r in candidates])
            ).all()
        }
        return [room for room in candidates if room.id not in claimed]

    def find_conflicts(self, room_id: int, check_in: date, check_out: date,
                       exclude_reservation_id: Optional[int] = None) -> List[ReservationRoomLine]:
        """Active lines holding the room for an intersecting range"""
        validate_range(check_in, check_out)
        return self._overlapping_lines(check_in, check_out, exclude_reservation_id).filter(
            ReservationRoomLine.room_id == room_id
        ).all()

    def is_room_available(self, room_id: int, check_in: date, check_out: date,
                          exclude_reservation_id: Optional[int] = None,
                          require_status: bool = True) -> bool:
        """
        Single-room check used at the point of commitment

        require_status=False only looks at date conflicts; a room occupied today can
        still be pre-assigned to a stay that starts after the current guest leaves.
        """
        validate_range(check_in, check_out)
        room = self.db.query(Room).filter(Room.id == room_id).first()
        if not room or not room.is_active:
            return False
        if require_status and room.status not in ASSIGNABLE_ROOM_STATUSES:
            return False
        return not self.find_conflicts(room_id, check_in, check_out, exclude_reservation_id)

    def unassigned_demand(self, room_type_id: int, check_in: date, check_out: date,
                          exclude_reservation_id: Optional[int] = None) -> int:
        """Active lines of the type still waiting for a room in the range"""
        validate_range(check_in, check_out)
        return self._overlapping_lines(check_in, check_out, exclude_reservation_id).filter(
            ReservationRoomLine.room_type_id == room_type_id,
            ReservationRoomLine.room_id.is_(None),
        ).count()
