"""
Report API tests
"""
from datetime import date
from fastapi.testclient import TestClient

from hotel_core.services.reservation_service import LineRequest


class TestReports:

    def test_reservation_stats(self, client: TestClient, auth_headers, booked):
        response = client.get("/reports/reservations", params={"today": "2024-05-01"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["arrivals_today"] == 1

    def test_folio_stats(self, client: TestClient, auth_headers, booked):
        response = client.get("/reports/folios", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total_open"] == 1

    def test_room_stats(self, client: TestClient, auth_headers, room_101, room_102):
        data = client.get("/reports/rooms", headers=auth_headers).json()
        assert data["total_rooms"] == 2
        assert data["vacant"] == 2
        assert data["occupancy_rate"] == 0

    def test_reconcile(self, client: TestClient, auth_headers, monkeypatch, booking_service,
                       sample_property, std_type, room_101):
        """A booking whose folio step failed gets its folio from the endpoint"""
        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(booking_service.folio_service, "open_for_reservation", boom)
        result = booking_service.create_reservation(
            sample_property.id, "guest-1", date(2024, 5, 1), date(2024, 5, 4),
            [LineRequest(room_type_id=std_type.id, room_id=room_101.id)]
        )
        monkeypatch.undo()
        assert result.folio_pending is True

        data = client.post("/reports/reconcile", headers=auth_headers).json()
        assert data["checked"] == 1
        assert data["repaired"] == [result.reservation.id]
        assert data["failed"] == []


class TestHealth:

    def test_health(self, client: TestClient):
        assert client.get("/health").json() == {"status": "healthy"}
