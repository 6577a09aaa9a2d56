"""
Tests für Dashboard und Aktivitätsprotokoll.

Testet:
- GET /dashboard/stats
- GET /activities/, GET /activities/table/{id}
"""
from uuid import uuid4

from tischplan.models import BookingStatus, TableSize
from tests.helpers import at, booking_payload


class TestDashboardStats:
    """Tests für GET /dashboard/stats"""

    def test_empty(self, client):
        response = client.get("/dashboard/stats")

        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["total_tables"] == 0
        assert summary["waiting_count"] == 0

    def test_counts_computed_status(self, client, floor, make_table, make_booking):
        """Gespeicherter Status ist veraltet, gezählt wird der berechnete"""
        t1 = make_table(number="1")
        t2 = make_table(number="2", size=TableSize.LARGE, seats=8)
        make_table(number="3", size=TableSize.SMALL, seats=2)
        make_booking(t1, at(13, 30), status=BookingStatus.CONFIRMED, people_count=3)
        make_booking(t2, at(15), people_count=6)
        make_booking(t2, at(19), status=BookingStatus.CANCELLED)
        client.post("/waitinglist/", json={"customer_name": "Herr Vogel", "mobile": "0170 555", "people_count": 2})

        data = client.get("/dashboard/stats").json()

        summary = data["summary"]
        assert summary["total_floors"] == 1
        assert summary["total_tables"] == 3
        assert summary["occupied_tables"] == 1
        assert summary["booked_tables"] == 1
        assert summary["available_tables"] == 1
        assert summary["today_booking_count"] == 2
        assert summary["total_guests_today"] == 9
        assert summary["waiting_count"] == 1
        assert data["floor_stats"][0]["floor_name"] == floor.name
        assert data["floor_stats"][0]["total_tables"] == 3
        assert data["size_stats"] == {"SMALL": 1, "MEDIUM": 1, "LARGE": 1}


class TestActivities:
    """Tests für /activities/"""

    def test_booking_logged(self, client, table):
        client.post("/bookings/", json=booking_payload(table.id, at(14, 30)))

        response = client.get("/activities/", params={"entity_type": "booking"})

        assert response.status_code == 200
        assert [a["action_type"] for a in response.json()] == ["BOOKING CREATED"]

    def test_filter_by_action_type(self, client, table):
        client.post("/bookings/", json=booking_payload(table.id, at(14, 30)))
        client.post("/bookings/", json=booking_payload(table.id, at(18)))

        response = client.get("/activities/", params={"action_type": "BOOKING CREATED"})

        assert len(response.json()) == 2

    def test_table_history(self, client, table):
        client.put(f"/tables/{table.id}/status", json={"status": "OCCUPIED"})

        response = client.get(f"/activities/table/{table.id}")

        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == 1
        assert entries[0]["action_type"] == "TABLE STATUS OVERRIDDEN"
        assert entries[0]["new_value"] == "OCCUPIED"

    def test_unknown_table(self, client):
        assert client.get(f"/activities/table/{uuid4()}").status_code == 404
