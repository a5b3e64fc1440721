"""
Reservation API tests
Covers /availability and /reservations
"""
from datetime import date
from decimal import Decimal
from fastapi.testclient import TestClient

from hotel_core.models.ontology import Folio, Reservation
from hotel_core.services.reservation_service import LineRequest


def _booking_payload(std_type, room=None, check_in="2024-05-01", check_out="2024-05-04"):
    line = {"room_type_id": std_type.id}
    if room is not None:
        line["room_id"] = room.id
    return {
        "guest_id": "guest-1",
        "check_in_date": check_in,
        "check_out_date": check_out,
        "room_lines": [line],
    }


class TestAuthentication:

    def test_missing_token(self, client: TestClient):
        response = client.get("/reservations")
        assert response.status_code in (401, 403)

    def test_bad_token(self, client: TestClient):
        response = client.get("/reservations", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401


class TestAvailability:

    def test_available_rooms(self, client: TestClient, auth_headers, std_type, room_101, room_102):
        response = client.get(
            "/availability",
            params={"room_type_id": std_type.id, "check_in": "2024-05-01", "check_out": "2024-05-03"},
            headers=auth_headers
        )
        assert response.status_code == 200
        assert [r["room_number"] for r in response.json()] == ["101", "102"]

    def test_inverted_range(self, client: TestClient, auth_headers, std_type):
        response = client.get(
            "/availability",
            params={"room_type_id": std_type.id, "check_in": "2024-05-03", "check_out": "2024-05-01"},
            headers=auth_headers
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_room_type_of_other_property(self, client: TestClient, other_auth_headers, std_type):
        response = client.get(
            "/availability",
            params={"room_type_id": std_type.id, "check_in": "2024-05-01", "check_out": "2024-05-03"},
            headers=other_auth_headers
        )
        assert response.status_code == 404


class TestCreateReservation:

    def test_create(self, client: TestClient, auth_headers, std_type, room_101):
        """Booking returns the reservation and its folio"""
        response = client.post("/reservations", json=_booking_payload(std_type, room_101),
                               headers=auth_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["folio_pending"] is False
        assert data["folio_id"] is not None
        reservation = data["reservation"]
        assert reservation["status"] == "confirmed"
        assert Decimal(reservation["total_amount"]) == Decimal("300")
        assert reservation["created_by"] == "front-desk-1"
        assert reservation["lines"][0]["room_id"] == room_101.id

    def test_conflict(self, client: TestClient, auth_headers, db_session, std_type, room_101):
        client.post("/reservations", json=_booking_payload(std_type, room_101), headers=auth_headers)
        response = client.post(
            "/reservations",
            json=_booking_payload(std_type, room_101, check_in="2024-05-03", check_out="2024-05-05"),
            headers=auth_headers
        )
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "room_unavailable"
        assert "room line 1" in body["detail"]
        assert db_session.query(Reservation).count() == 1
        assert db_session.query(Folio).count() == 1

    def test_invalid_range(self, client: TestClient, auth_headers, std_type, room_101):
        response = client.post(
            "/reservations",
            json=_booking_payload(std_type, room_101, check_in="2024-05-04", check_out="2024-05-01"),
            headers=auth_headers
        )
        assert response.status_code == 422

    def test_room_type_of_other_property(self, client: TestClient, other_auth_headers, std_type):
        response = client.post("/reservations", json=_booking_payload(std_type),
                               headers=other_auth_headers)
        assert response.status_code == 422
        assert "does not belong" in response.json()["detail"]


class TestReservationQueries:

    def test_list_and_detail(self, client: TestClient, auth_headers, booked):
        response = client.get("/reservations", headers=auth_headers)
        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == [booked.reservation.id]

        response = client.get(f"/reservations/{booked.reservation.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["confirmation_number"] == booked.reservation.confirmation_number

    def test_keyword_search(self, client: TestClient, auth_headers, booked):
        response = client.get("/reservations", params={"keyword": "guest-1"}, headers=auth_headers)
        assert len(response.json()) == 1

    def test_other_property_cannot_see(self, client: TestClient, other_auth_headers, booked):
        response = client.get(f"/reservations/{booked.reservation.id}", headers=other_auth_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"
        assert client.get("/reservations", headers=other_auth_headers).json() == []


class TestStayLifecycle:

    def test_check_in_and_out(self, client: TestClient, auth_headers, booked):
        rid = booked.reservation.id
        response = client.post(f"/reservations/{rid}/check-in", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "checked_in"

        response = client.post(f"/reservations/{rid}/check-out", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "checked_out"

    def test_check_in_with_assignment(self, client: TestClient, auth_headers, booking_service,
                                      sample_property, std_type, room_102):
        result = booking_service.create_reservation(
            sample_property.id, "guest-a", date(2024, 5, 1), date(2024, 5, 2),
            [LineRequest(room_type_id=std_type.id)]
        )
        line_id = result.reservation.lines[0].id
        response = client.post(
            f"/reservations/{result.reservation.id}/check-in",
            json={"assignments": {str(line_id): room_102.id}},
            headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["lines"][0]["room_id"] == room_102.id

    def test_invalid_transition(self, client: TestClient, auth_headers, booked):
        response = client.post(f"/reservations/{booked.reservation.id}/check-out", headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state_transition"

    def test_cancel(self, client: TestClient, auth_headers, booked):
        response = client.post(f"/reservations/{booked.reservation.id}/cancel",
                               json={"reason": "guest request"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancel_reason"] == "guest request"

    def test_no_show(self, client: TestClient, auth_headers, booked):
        response = client.post(f"/reservations/{booked.reservation.id}/no-show", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "no_show"

    def test_amend(self, client: TestClient, auth_headers, booked):
        response = client.post(f"/reservations/{booked.reservation.id}/amend",
                               json={"check_out_date": "2024-05-05"}, headers=auth_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["total_amount"]) == Decimal("400")

    def test_change_room(self, client: TestClient, auth_headers, booked, room_102):
        rid = booked.reservation.id
        client.post(f"/reservations/{rid}/check-in", headers=auth_headers)
        response = client.post(
            f"/reservations/{rid}/change-room",
            json={"line_id": booked.reservation.lines[0].id, "new_room_id": room_102.id},
            headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["room_id"] == room_102.id
