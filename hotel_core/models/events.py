"""
Domain events published by the booking & folio core
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, Dict, Any, List


class EventType(str, Enum):
    """Event types"""
    RESERVATION_CREATED = "reservation.created"
    RESERVATION_CANCELLED = "reservation.cancelled"
    RESERVATION_NO_SHOW = "reservation.no_show"
    RESERVATION_AMENDED = "reservation.amended"

    GUEST_CHECKED_IN = "guest.checked_in"
    GUEST_CHECKED_OUT = "guest.checked_out"
    ROOM_STATUS_CHANGED = "room.status_changed"

    FOLIO_CREATED = "folio.created"
    CHARGE_POSTED = "folio.charge_posted"
    PAYMENT_RECEIVED = "payment.received"
    ITEM_VOIDED = "folio.item_voided"
    FOLIO_CLOSED = "folio.closed"


@dataclass
class BaseEventData:
    """Event payload base"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
        return result


@dataclass
class ReservationEventData(BaseEventData):
    reservation_id: int = 0
    property_id: int = 0
    confirmation_number: str = ""
    guest_id: str = ""
    status: str = ""
    reason: str = ""


@dataclass
class StayEventData(BaseEventData):
    """Check-in / check-out"""
    reservation_id: int = 0
    property_id: int = 0
    guest_id: str = ""
    room_ids: List[int] = field(default_factory=list)
    operator_id: Optional[str] = None


@dataclass
class RoomStatusChangedData(BaseEventData):
    room_id: int = 0
    room_number: str = ""
    old_status: str = ""
    new_status: str = ""
    reason: str = ""


@dataclass
class FolioEventData(BaseEventData):
    folio_id: int = 0
    folio_number: str = ""
    reservation_id: Optional[int] = None
    item_id: Optional[int] = None
    payment_id: Optional[int] = None
    amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    reason: str = ""
