"""
Check-out coordinator tests
"""
import pytest
from datetime import date
from decimal import Decimal

from hotel_core.errors import InvalidStateTransition
from hotel_core.models.events import EventType
from hotel_core.models.ontology import FolioStatus, ReservationStatus, RoomStatus
from hotel_core.services.checkin_service import CheckInService
from hotel_core.services.checkout_service import CheckOutService
from hotel_core.services.reservation_service import LineRequest


@pytest.fixture
def in_house(db_session, booked):
    CheckInService(db_session, event_publisher=lambda e: None).check_in(booked.reservation.id)
    return booked


class TestCheckOut:

    def test_rooms_become_dirty(self, db_session, in_house, room_101, events):
        reservation = CheckOutService(db_session, event_publisher=events.append).check_out(
            in_house.reservation.id, operator_id="front-desk-1"
        )
        assert reservation.status == ReservationStatus.CHECKED_OUT
        assert reservation.actual_check_out is not None
        db_session.refresh(room_101)
        assert room_101.status == RoomStatus.DIRTY

        changed = [e for e in events if e.event_type == EventType.ROOM_STATUS_CHANGED]
        assert changed[-1].data["room_id"] == room_101.id
        assert changed[-1].data["new_status"] == "dirty"
        assert EventType.GUEST_CHECKED_OUT in [e.event_type for e in events]

    def test_folio_left_open(self, db_session, booking_service, in_house):
        CheckOutService(db_session).check_out(in_house.reservation.id)
        folio = booking_service.folio_service.get_folio(in_house.folio.id)
        assert folio.status == FolioStatus.OPEN
        assert folio.balance == Decimal("300.00")

    def test_requires_check_in(self, db_session, booked):
        with pytest.raises(InvalidStateTransition):
            CheckOutService(db_session).check_out(booked.reservation.id)

    def test_twice_rejected(self, db_session, in_house):
        service = CheckOutService(db_session)
        service.check_out(in_house.reservation.id)
        with pytest.raises(InvalidStateTransition):
            service.check_out(in_house.reservation.id)

    def test_dirty_room_can_be_rebooked(self, db_session, booking_service, sample_property, std_type,
                                        in_house, room_101):
        CheckOutService(db_session).check_out(in_house.reservation.id)
        result = booking_service.create_reservation(
            sample_property.id, "guest-next", date(2024, 5, 4), date(2024, 5, 6),
            [LineRequest(room_type_id=std_type.id, room_id=room_101.id)]
        )
        assert result.reservation.lines[0].room_id == room_101.id
