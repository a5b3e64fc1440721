"""
Check-in coordinator
Moves a confirmed reservation in-house and hands its rooms over
"""
from typing import Callable, Dict, Optional
from datetime import datetime
import logging

from sqlalchemy.orm import Session

from hotel_core.models.events import EventType, StayEventData, RoomStatusChangedData
from hotel_core.models.ontology import (
    Reservation, ReservationRoomLine, ReservationStatus, Room, RoomStatus
)
from hotel_core.services.event_bus import event_bus, Event
from hotel_core.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)


class CheckInService:
    """Check-in coordinator"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.reservation_service = ReservationService(db)
        self._publish_event = event_publisher or event_bus.publish

    def check_in(self, reservation_id: int,
                 assignments: Optional[Dict[int, int]] = None,
                 operator_id: Optional[str] = None,
                 property_id: Optional[int] = None) -> Reservation:
        """
        Check the guest in

        assignments maps line id to room id and must cover every line without a
        room. Room status, room type and date conflicts are re-validated under the
        inventory lock; the rooms become occupied in the same commit as the status.
        """
        before = self.reservation_service.get_reservation(reservation_id, property_id)
        target_ids = {line.room_id for line in before.lines if line.room_id is not None}
        target_ids.update((assignments or {}).values())
        old_statuses = {
            room.id: room.status.value
            for room in self.db.query(Room).filter(Room.id.in_(target_ids)).all()
        } if target_ids else {}

        reservation = self.reservation_service.transition(
            reservation_id, ReservationStatus.CHECKED_IN,
            assignments=assignments, property_id=property_id
        )
        room_ids = [line.room_id for line in reservation.lines]
        logger.info(
            f"Reservation {reservation.confirmation_number} checked in, "
            f"rooms {', '.join(line.room.room_number for line in reservation.lines)}"
        )

        self._publish_event(Event(
            event_type=EventType.GUEST_CHECKED_IN,
            timestamp=datetime.now(),
            data=StayEventData(
                reservation_id=reservation.id,
                property_id=reservation.property_id,
                guest_id=reservation.guest_id,
                room_ids=room_ids,
                operator_id=operator_id,
            ).to_dict(),
            source="checkin_service"
        ))
        for line in reservation.lines:
            self._publish_event(Event(
                event_type=EventType.ROOM_STATUS_CHANGED,
                timestamp=datetime.now(),
                data=RoomStatusChangedData(
                    room_id=line.room.id,
                    room_number=line.room.room_number,
                    old_status=old_statuses.get(line.room.id, ""),
                    new_status=RoomStatus.OCCUPIED.value,
                    reason="check_in",
                ).to_dict(),
                source="checkin_service"
            ))
        return reservation

    def change_room(self, reservation_id: int, line_id: int, new_room_id: int,
                    operator_id: Optional[str] = None,
                    property_id: Optional[int] = None) -> ReservationRoomLine:
        """Move an in-house line; the old room goes dirty, the new one occupied"""
        reservation = self.reservation_service.get_reservation(reservation_id, property_id)
        line = next((l for l in reservation.lines if l.id == line_id), None)
        old_room = line.room if line is not None else None
        old_room_id = old_room.id if old_room is not None else None
        old_room_number = old_room.room_number if old_room is not None else ""

        line = self.reservation_service.change_room(reservation_id, line_id, new_room_id, property_id)

        if old_room_id is not None:
            self._publish_event(Event(
                event_type=EventType.ROOM_STATUS_CHANGED,
                timestamp=datetime.now(),
                data=RoomStatusChangedData(
                    room_id=old_room_id,
                    room_number=old_room_number,
                    old_status=RoomStatus.OCCUPIED.value,
                    new_status=RoomStatus.DIRTY.value,
                    reason="room_change",
                ).to_dict(),
                source="checkin_service"
            ))
        self._publish_event(Event(
            event_type=EventType.ROOM_STATUS_CHANGED,
            timestamp=datetime.now(),
            data=RoomStatusChangedData(
                room_id=line.room.id,
                room_number=line.room.room_number,
                new_status=RoomStatus.OCCUPIED.value,
                reason="room_change",
            ).to_dict(),
            source="checkin_service"
        ))
        return line
