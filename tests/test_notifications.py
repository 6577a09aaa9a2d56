"""
Tests für Erinnerungen, Bestätigung und Verspätung.

Testet:
- POST /notifications/sweep (Schwellen, Idempotenz, lange Wartende)
- GET /notifications/pending
- PUT /notifications/{id}/confirm, /delay
- PUT /notifications/alerts/{alert_id}/dismiss
"""
from uuid import uuid4

from tischplan.models import BookingStatus, ConfirmationStatus
from tischplan.models.notification import Notification
from tischplan.services.notification_service import long_waiting_alert_id, upcoming_alert_id
from tests.helpers import NOW, at, iso


# ============ SWEEP ============

class TestSweep:
    """Tests für POST /notifications/sweep"""

    def test_nothing_due(self, client, table, make_booking):
        make_booking(table, at(16))

        data = client.post("/notifications/sweep").json()

        assert data["upcoming"] == 0
        assert data["alerts"] == []

    def test_thirty_minute_reminder(self, client, table, make_booking):
        booking = make_booking(table, at(14, 25))

        data = client.post("/notifications/sweep").json()

        assert data["upcoming"] == 1
        alert = data["alerts"][0]
        assert alert["id"] == upcoming_alert_id(booking.id, 30)
        assert alert["type"] == "UPCOMING_BOOKING"
        assert alert["minutes_before"] == 30

    def test_sweep_is_idempotent(self, client, table, make_booking):
        make_booking(table, at(14, 25))

        client.post("/notifications/sweep")
        data = client.post("/notifications/sweep").json()

        assert data["upcoming"] == 0

    def test_tightest_threshold_wins(self, client, db, table, make_booking):
        """Beide Schwellen überschritten: nur die 15-Minuten-Erinnerung ist offen"""
        booking = make_booking(table, at(14, 10))

        data = client.post("/notifications/sweep").json()

        assert [a["id"] for a in data["alerts"]] == [upcoming_alert_id(booking.id, 15)]
        skipped = db.get(Notification, upcoming_alert_id(booking.id, 30))
        assert skipped is not None
        assert skipped.dismissed_at == NOW

    def test_next_threshold_after_time_passes(self, client, clock, table, make_booking):
        booking = make_booking(table, at(14, 25))
        client.post("/notifications/sweep")

        clock.advance(12)
        data = client.post("/notifications/sweep").json()

        assert [a["id"] for a in data["alerts"]] == [upcoming_alert_id(booking.id, 15)]

    def test_confirmed_or_seated_bookings_skipped(self, client, table, make_table, make_booking):
        make_booking(table, at(14, 20), confirmation_status=ConfirmationStatus.CONFIRMED)
        other = make_table(number="2")
        make_booking(other, at(14, 20), status=BookingStatus.CONFIRMED)

        assert client.post("/notifications/sweep").json()["upcoming"] == 0

    def test_started_booking_skipped(self, client, table, make_booking):
        make_booking(table, at(13, 50))

        assert client.post("/notifications/sweep").json()["upcoming"] == 0

    def test_long_waiting_customer(self, client, clock):
        entry = client.post("/waitinglist/", json={
            "customer_name": "Herr Vogel",
            "mobile": "0170 555",
            "people_count": 3
        }).json()

        assert client.post("/notifications/sweep").json()["long_waiting"] == 0

        clock.advance(30)
        data = client.post("/notifications/sweep").json()

        assert data["long_waiting"] == 1
        assert data["alerts"][0]["id"] == long_waiting_alert_id(entry["id"])
        assert data["alerts"][0]["waiting_entry_id"] == entry["id"]

        clock.advance(10)
        assert client.post("/notifications/sweep").json()["long_waiting"] == 0


class TestPending:
    """Tests für GET /notifications/pending"""

    def test_pending_bookings_and_alerts(self, client, table, make_booking):
        due = make_booking(table, at(14, 20))
        make_booking(table, at(18))
        client.post("/notifications/sweep")

        data = client.get("/notifications/pending").json()

        assert [b["id"] for b in data["bookings"]] == [str(due.id)]
        assert len(data["alerts"]) == 1


# ============ BESTÄTIGEN ============

class TestConfirm:
    """Tests für PUT /notifications/{id}/confirm"""

    def test_confirm_dismisses_alerts(self, client, table, make_booking):
        booking = make_booking(table, at(14, 20))
        client.post("/notifications/sweep")

        response = client.put(f"/notifications/{booking.id}/confirm")

        assert response.status_code == 200
        assert response.json()["confirmation_status"] == "CONFIRMED"
        assert response.json()["confirmed_at"] == iso(NOW)
        assert client.get("/notifications/pending").json() == {"bookings": [], "alerts": []}

    def test_confirm_cancelled_booking(self, client, table, make_booking):
        booking = make_booking(table, at(14, 20), status=BookingStatus.CANCELLED)

        assert client.put(f"/notifications/{booking.id}/confirm").status_code == 404


# ============ VERSPÄTUNG ============

class TestDelay:
    """Tests für PUT /notifications/{id}/delay"""

    def test_delay_shifts_window(self, client, table, make_booking):
        """Buchung 15:00, 20 Min. Verspätung -> effektiver Beginn 15:20"""
        booking = make_booking(table, at(15))

        response = client.put(f"/notifications/{booking.id}/delay", json={"delay_minutes": 20})

        assert response.status_code == 200
        data = response.json()
        assert data["delay_minutes"] == 20
        assert data["confirmation_status"] == "CLIENT_DELAYED"
        assert data["booking_time"] == iso(at(15))

        # Das verschobene Fenster blockiert bis 16:20
        conflict = client.post("/bookings/", json={
            "table_id": str(table.id),
            "customer_name": "Frau Roth",
            "mobile": "0171 222",
            "people_count": 2,
            "booking_time": iso(at(16, 10)),
        })
        assert conflict.status_code == 409
        assert conflict.json()["conflict"]["conflict_end_time"] == iso(at(16, 20))

    def test_delay_into_next_booking_rejected(self, client, db, table, make_booking):
        booking = make_booking(table, at(15))
        make_booking(table, at(16, 15), customer_name="Herr Lang")

        response = client.put(f"/notifications/{booking.id}/delay", json={"delay_minutes": 20})

        assert response.status_code == 409
        assert response.json()["detail"] == "Verspätung überschneidet sich mit einer anderen Buchung"
        db.refresh(booking)
        assert booking.delay_minutes == 0
        assert booking.confirmation_status == ConfirmationStatus.PENDING

    def test_delay_dismisses_reminder(self, client, table, make_booking):
        booking = make_booking(table, at(14, 20))
        client.post("/notifications/sweep")

        client.put(f"/notifications/{booking.id}/delay", json={"delay_minutes": 15})

        assert client.get("/notifications/pending").json()["alerts"] == []

    def test_delay_out_of_range(self, client, table, make_booking):
        booking = make_booking(table, at(15))

        response = client.put(f"/notifications/{booking.id}/delay", json={"delay_minutes": -5})

        assert response.status_code == 422

    def test_delay_unknown_booking(self, client):
        response = client.put(f"/notifications/{uuid4()}/delay", json={"delay_minutes": 10})
        assert response.status_code == 404


# ============ HINWEISE ============

class TestDismissAlert:

    def test_dismiss(self, client, table, make_booking):
        booking = make_booking(table, at(14, 20))
        client.post("/notifications/sweep")
        alert_id = upcoming_alert_id(booking.id, 30)

        response = client.put(f"/notifications/alerts/{alert_id}/dismiss")

        assert response.status_code == 200
        assert response.json()["dismissed_at"] == iso(NOW)
        assert client.put(f"/notifications/alerts/{alert_id}/dismiss").status_code == 404

    def test_dismiss_unknown(self, client):
        assert client.put("/notifications/alerts/upcoming:nix:30/dismiss").status_code == 404
