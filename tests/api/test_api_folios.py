"""
Folio API tests
"""
from decimal import Decimal
from fastapi.testclient import TestClient


class TestFolioQueries:

    def test_list(self, client: TestClient, auth_headers, booked):
        response = client.get("/folios", headers=auth_headers)
        assert response.status_code == 200
        assert [f["id"] for f in response.json()] == [booked.folio.id]
        assert client.get("/folios", params={"status": "closed"}, headers=auth_headers).json() == []

    def test_detail(self, client: TestClient, auth_headers, booked):
        response = client.get(f"/folios/{booked.folio.id}", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["balance"]) == Decimal("300")
        assert len(data["items"]) == 1
        assert data["items"][0]["item_type"] == "room_charge"
        assert data["payments"] == []

    def test_other_property(self, client: TestClient, other_auth_headers, booked):
        response = client.get(f"/folios/{booked.folio.id}", headers=other_auth_headers)
        assert response.status_code == 404


class TestFolioMutations:

    def test_worked_example(self, client: TestClient, auth_headers, booked):
        """Charge, pay in full, void: the folio ends with a refund owed"""
        fid = booked.folio.id
        response = client.post(f"/folios/{fid}/charges", json={
            "item_type": "minibar", "description": "Minibar", "quantity": 1,
            "unit_price": "20", "tax_rate": "0.1"
        }, headers=auth_headers)
        assert response.status_code == 201
        item_id = response.json()["id"]
        assert Decimal(response.json()["tax_amount"]) == Decimal("2")

        response = client.post(f"/folios/{fid}/payments", json={
            "amount": "322", "method": "cash", "reference_number": "RCPT-9"
        }, headers=auth_headers)
        assert response.status_code == 201

        response = client.post(f"/folios/items/{item_id}/void",
                               json={"reason": "not consumed"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["voided"] is True

        data = client.get(f"/folios/{fid}", headers=auth_headers).json()
        assert Decimal(data["total_amount"]) == Decimal("300")
        assert Decimal(data["paid_amount"]) == Decimal("322")
        assert Decimal(data["balance"]) == Decimal("-22")

    def test_payment_resubmission(self, client: TestClient, auth_headers, booked):
        fid = booked.folio.id
        payload = {"amount": "100", "method": "credit_card", "reference_number": "TX-1"}
        first = client.post(f"/folios/{fid}/payments", json=payload, headers=auth_headers)
        second = client.post(f"/folios/{fid}/payments", json=payload, headers=auth_headers)
        assert first.json()["id"] == second.json()["id"]

        payload["amount"] = "150"
        response = client.post(f"/folios/{fid}/payments", json=payload, headers=auth_headers)
        assert response.status_code == 409

    def test_non_positive_payment(self, client: TestClient, auth_headers, booked):
        response = client.post(f"/folios/{booked.folio.id}/payments",
                               json={"amount": "0", "method": "cash"}, headers=auth_headers)
        assert response.status_code == 422
        assert response.json()["detail"] == "payment amount must be positive"

    def test_double_void(self, client: TestClient, auth_headers, booked):
        item_id = booked.folio.items[0].id
        client.post(f"/folios/items/{item_id}/void", json={"reason": "error"}, headers=auth_headers)
        response = client.post(f"/folios/items/{item_id}/void", json={"reason": "error"}, headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["detail"] == "item already voided"

    def test_void_other_property_item(self, client: TestClient, other_auth_headers, booked):
        item_id = booked.folio.items[0].id
        response = client.post(f"/folios/items/{item_id}/void", json={"reason": "x"},
                               headers=other_auth_headers)
        assert response.status_code == 404

    def test_close_unsettled_then_reject_charge(self, client: TestClient, auth_headers, booked):
        fid = booked.folio.id
        response = client.post(f"/folios/{fid}/close", json={"note": "guest left"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["unsettled"] is True
        assert response.json()["folio"]["status"] == "closed"

        response = client.post(f"/folios/{fid}/charges", json={
            "item_type": "spa", "description": "Massage", "unit_price": "50"
        }, headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["detail"] == "folio is closed"

    def test_charge_on_other_property_folio(self, client: TestClient, other_auth_headers, booked):
        response = client.post(f"/folios/{booked.folio.id}/charges", json={
            "item_type": "spa", "description": "Massage", "unit_price": "50"
        }, headers=other_auth_headers)
        assert response.status_code == 404
