"""
Check-out coordinator
Ends the stay and releases its rooms to housekeeping; the folio is settled separately
"""
from typing import Callable, Optional
from datetime import datetime
import logging

from sqlalchemy.orm import Session

from hotel_core.models.events import EventType, StayEventData, RoomStatusChangedData
from hotel_core.models.ontology import Reservation, ReservationStatus, RoomStatus
from hotel_core.services.event_bus import event_bus, Event
from hotel_core.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)


class CheckOutService:
    """Check-out coordinator"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.reservation_service = ReservationService(db)
        self._publish_event = event_publisher or event_bus.publish

    def check_out(self, reservation_id: int, operator_id: Optional[str] = None,
                  property_id: Optional[int] = None) -> Reservation:
        """checked_in -> checked_out; every assigned room becomes dirty"""
        reservation = self.reservation_service.transition(
            reservation_id, ReservationStatus.CHECKED_OUT, property_id=property_id
        )
        rooms = [line.room for line in reservation.lines if line.room is not None]
        logger.info(
            f"Reservation {reservation.confirmation_number} checked out, "
            f"{len(rooms)} room(s) released to housekeeping"
        )

        self._publish_event(Event(
            event_type=EventType.GUEST_CHECKED_OUT,
            timestamp=datetime.now(),
            data=StayEventData(
                reservation_id=reservation.id,
                property_id=reservation.property_id,
                guest_id=reservation.guest_id,
                room_ids=[room.id for room in rooms],
                operator_id=operator_id,
            ).to_dict(),
            source="checkout_service"
        ))
        for room in rooms:
            self._publish_event(Event(
                event_type=EventType.ROOM_STATUS_CHANGED,
                timestamp=datetime.now(),
                data=RoomStatusChangedData(
                    room_id=room.id,
                    room_number=room.room_number,
                    old_status=RoomStatus.OCCUPIED.value,
                    new_status=RoomStatus.DIRTY.value,
                    reason="check_out",
                ).to_dict(),
                source="checkout_service"
            ))
        return reservation
