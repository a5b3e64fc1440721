"""
Report service tests
"""
from datetime import date
from decimal import Decimal

from hotel_core.models.ontology import PaymentMethod, RoomStatus
from hotel_core.services.checkin_service import CheckInService
from hotel_core.services.report_service import ReportService
from hotel_core.services.reservation_service import LineRequest


class TestReservationStats:

    def test_counts(self, db_session, booking_service, sample_property, std_type, room_101, room_102, booked):
        second = booking_service.create_reservation(
            sample_property.id, "guest-2", date(2024, 5, 1), date(2024, 5, 2),
            [LineRequest(room_type_id=std_type.id, room_id=room_102.id)]
        )
        booking_service.cancel_reservation(second.reservation.id, "duplicate")

        stats = ReportService(db_session).reservation_stats(sample_property.id, today=date(2024, 5, 1))
        assert stats["total"] == 2
        assert stats["arrivals_today"] == 1
        assert stats["confirmed"] == 1
        assert stats["cancelled"] == 1
        assert stats["in_house"] == 0

    def test_departures(self, db_session, sample_property, booked):
        CheckInService(db_session, event_publisher=lambda e: None).check_in(booked.reservation.id)
        stats = ReportService(db_session).reservation_stats(sample_property.id, today=date(2024, 5, 4))
        assert stats["in_house"] == 1
        assert stats["departures_today"] == 1
        assert stats["arrivals_today"] == 0


class TestFolioStats:

    def test_outstanding_and_revenue(self, db_session, booking_service, sample_property, booked):
        booking_service.folio_service.record_payment(booked.folio.id, Decimal("120"), PaymentMethod.CASH)
        stats = ReportService(db_session).folio_stats(sample_property.id)
        assert stats["total_open"] == 1
        assert stats["total_closed"] == 0
        assert stats["outstanding_balance"] == Decimal("180.00")
        assert stats["today_revenue"] == Decimal("120.00")

    def test_closed_folio_not_outstanding(self, db_session, booking_service, sample_property, booked):
        booking_service.folio_service.close(booked.folio.id)
        stats = ReportService(db_session).folio_stats(sample_property.id, today=date(2000, 1, 1))
        assert stats["total_closed"] == 1
        assert stats["outstanding_balance"] == Decimal("0.00")
        assert stats["today_revenue"] == Decimal("0.00")


class TestRoomStats:

    def test_occupancy(self, db_session, sample_property, room_101, room_102, room_201):
        room_101.status = RoomStatus.OCCUPIED
        room_201.status = RoomStatus.OUT_OF_ORDER
        db_session.commit()
        stats = ReportService(db_session).room_stats(sample_property.id)
        assert stats["total_rooms"] == 3
        assert stats["occupied"] == 1
        assert stats["vacant"] == 1
        assert stats["out_of_order"] == 1
        assert stats["occupancy_rate"] == 50.0
