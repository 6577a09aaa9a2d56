"""
Tests für Booking Endpoints.

Testet:
- POST /bookings/ (Anlegen, Konflikt, Auto-Schedule)
- POST /bookings/override
- PUT /bookings/{id}/cancel, /complete, /reassign
- GET /bookings/, /bookings/by-date, /bookings/table/{id}/upcoming
- POST /bookings/sync-statuses
"""
from uuid import uuid4

from tischplan.models import Booking, BookingStatus, TableSize, TableStatus, WaitingListEntry
from tischplan.models.activity_log import ActivityLog
from tischplan.services.interval import booking_interval, overlaps
from tests.helpers import at, booking_payload, iso


# ============ ANLEGEN ============

class TestCreateBooking:
    """Tests für POST /bookings/"""

    def test_create_without_conflict(self, client, table):
        response = client.post("/bookings/", json=booking_payload(table.id, at(15)))

        assert response.status_code == 200
        data = response.json()
        assert data["auto_scheduled"] is False
        assert data["booking"]["booking_time"] == iso(at(15))
        assert data["booking"]["status"] == "BOOKED"
        assert data["booking"]["confirmation_status"] == "PENDING"
        assert data["booking"]["table"]["number"] == "1"

    def test_booking_within_horizon_books_table(self, client, db, table):
        client.post("/bookings/", json=booking_payload(table.id, at(15)))

        db.refresh(table)
        assert table.status == TableStatus.BOOKED

    def test_booking_beyond_horizon_keeps_table_available(self, client, db, table):
        client.post("/bookings/", json=booking_payload(table.id, at(19)))

        db.refresh(table)
        assert table.status == TableStatus.AVAILABLE

    def test_walk_in_without_time_starts_now(self, client, table):
        payload = booking_payload(table.id, at(14))
        del payload["booking_time"]

        response = client.post("/bookings/", json=payload)

        assert response.status_code == 200
        assert response.json()["booking"]["booking_time"] == iso(at(14))

    def test_pre_booking_with_date_and_slot(self, client, table):
        payload = booking_payload(table.id, at(14), booking_type="PRE_BOOKING")
        del payload["booking_time"]
        payload["booking_date"] = "2030-06-14"
        payload["booking_time_slot"] = "19:30:00"

        response = client.post("/bookings/", json=payload)

        assert response.status_code == 200
        booking = response.json()["booking"]
        assert booking["booking_time"] == iso(at(19, 30))
        assert booking["booking_type"] == "PRE_BOOKING"

    def test_pre_booking_without_time_rejected(self, client, table):
        payload = booking_payload(table.id, at(14), booking_type="PRE_BOOKING")
        del payload["booking_time"]

        response = client.post("/bookings/", json=payload)

        assert response.status_code == 422

    def test_date_without_slot_rejected(self, client, table):
        payload = booking_payload(table.id, at(14), booking_date="2030-06-14")

        response = client.post("/bookings/", json=payload)

        assert response.status_code == 422

    def test_duration_must_be_in_quarter_hours(self, client, table):
        response = client.post("/bookings/", json=booking_payload(table.id, at(15), duration=50))
        assert response.status_code == 422

    def test_duration_minimum(self, client, table):
        response = client.post("/bookings/", json=booking_payload(table.id, at(15), duration=0))
        assert response.status_code == 422

    def test_blank_name_rejected(self, client, table):
        response = client.post("/bookings/", json=booking_payload(table.id, at(15), customer_name="   "))
        assert response.status_code == 422

    def test_capacity_exceeded(self, client, table):
        """6 Personen an einem 4er-Tisch"""
        response = client.post("/bookings/", json=booking_payload(table.id, at(15), people_count=6))

        assert response.status_code == 422
        assert "4 Plätze" in response.json()["detail"]

    def test_unknown_table(self, client, table):
        response = client.post("/bookings/", json=booking_payload(uuid4(), at(15)))

        assert response.status_code == 404
        assert response.json()["detail"] == "Tisch nicht gefunden"


class TestBookingConflict:
    """Konflikte und Auto-Scheduler"""

    def test_conflict_returns_suggestion(self, client, table, make_booking):
        """Buchung [14:00, 15:00), Anfrage [14:30, 15:30) -> 409 mit Vorschlag 15:05"""
        existing = make_booking(table, at(14))

        response = client.post("/bookings/", json=booking_payload(table.id, at(14, 30)))

        assert response.status_code == 409
        data = response.json()
        assert data["detail"] == "Tisch ist in diesem Zeitraum bereits gebucht"
        assert data["suggested_time"] == iso(at(15, 5))
        assert data["estimated_wait_time"] == {
            "estimated_minutes": 35,
            "available_at": iso(at(15, 5)),
        }
        assert data["conflict"]["conflicting_booking"]["id"] == str(existing.id)
        assert data["conflict"]["conflict_end_time"] == iso(at(15))
        assert len(data["conflicts"]) == 1

    def test_conflict_creates_nothing(self, client, db, table, make_booking):
        make_booking(table, at(14))

        client.post("/bookings/", json=booking_payload(table.id, at(14, 30)))

        assert db.query(Booking).count() == 1

    def test_confirm_auto_schedule(self, client, db, table, make_booking):
        """Bestätigter Vorschlag: neue Buchung [15:05, 16:05), Original unverändert"""
        existing = make_booking(table, at(14))

        response = client.post(
            "/bookings/",
            json=booking_payload(table.id, at(14, 30), confirm_auto_schedule=True)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["auto_scheduled"] is True
        assert data["booking"]["auto_scheduled"] is True
        assert data["booking"]["booking_time"] == iso(at(15, 5))

        db.refresh(existing)
        assert existing.booking_time == at(14)
        assert existing.status == BookingStatus.BOOKED
        db.refresh(table)
        assert table.status == TableStatus.BOOKED

    def test_auto_schedule_without_gap_is_conflict(self, client, table, make_booking):
        """Keine Lücke bis Schließzeit: 409 ohne Vorschlag"""
        make_booking(table, at(21), duration=120)

        response = client.post(
            "/bookings/",
            json=booking_payload(table.id, at(21, 30), confirm_auto_schedule=True)
        )

        assert response.status_code == 409
        assert response.json()["suggested_time"] is None
        assert response.json()["estimated_wait_time"] is None

    def test_touching_bookings_allowed(self, client, table, make_booking):
        make_booking(table, at(14))

        response = client.post("/bookings/", json=booking_payload(table.id, at(15)))

        assert response.status_code == 200

    def test_cancelled_booking_does_not_block(self, client, table, make_booking):
        make_booking(table, at(14), status=BookingStatus.CANCELLED)

        response = client.post("/bookings/", json=booking_payload(table.id, at(14, 30)))

        assert response.status_code == 200

    def test_no_double_booking(self, client, db, table):
        """Mehrere Anfragen mit Auto-Schedule: keine zwei aktiven Buchungen überschneiden sich"""
        for start in (at(14), at(14, 30), at(15), at(15, 15), at(16)):
            response = client.post("/bookings/", json=booking_payload(table.id, start, confirm_auto_schedule=True))
            assert response.status_code == 200

        bookings = db.query(Booking).filter(Booking.table_id == table.id).all()
        assert len(bookings) == 5
        windows = [booking_interval(b) for b in bookings]
        for i, a in enumerate(windows):
            for b in windows[i + 1:]:
                assert not overlaps(a, b)
        assert sorted(w.start for w in windows)[-1] == at(18, 20)


# ============ VERDRÄNGEN ============

class TestOverrideBooking:
    """Tests für POST /bookings/override"""

    def test_override_moves_old_booking_to_waiting_list(self, client, db, table, make_booking):
        displaced = make_booking(table, at(14, 30), customer_name="Herr Weber")

        response = client.post(
            "/bookings/override",
            json=booking_payload(table.id, at(14, 30), conflicting_booking_id=str(displaced.id))
        )

        assert response.status_code == 200
        data = response.json()
        assert data["booking"]["booking_time"] == iso(at(14, 30))
        assert data["waiting_entry"]["customer_name"] == "Herr Weber"
        assert data["waiting_entry"]["priority"] == 1
        assert data["waiting_entry"]["status"] == "WAITING"

        db.refresh(displaced)
        assert displaced.status == BookingStatus.CANCELLED

    def test_override_rolls_back_on_remaining_conflict(self, client, db, table, make_booking):
        """Zweite Buchung kollidiert weiterhin: nichts wird geändert"""
        displaced = make_booking(table, at(14))
        make_booking(table, at(15, 5))

        response = client.post(
            "/bookings/override",
            json=booking_payload(table.id, at(14, 30), conflicting_booking_id=str(displaced.id))
        )

        assert response.status_code == 409
        db.refresh(displaced)
        assert displaced.status == BookingStatus.BOOKED
        assert db.query(WaitingListEntry).count() == 0

    def test_override_unknown_booking(self, client, table):
        response = client.post(
            "/bookings/override",
            json=booking_payload(table.id, at(14, 30), conflicting_booking_id=str(uuid4()))
        )
        assert response.status_code == 404

    def test_override_booking_of_other_table(self, client, make_table, make_booking):
        t1 = make_table(number="1")
        t2 = make_table(number="2")
        other = make_booking(t2, at(14, 30))

        response = client.post(
            "/bookings/override",
            json=booking_payload(t1.id, at(14, 30), conflicting_booking_id=str(other.id))
        )

        assert response.status_code == 422


# ============ STORNIEREN / ABSCHLIESSEN ============

class TestCancelAndComplete:
    """Tests für PUT /bookings/{id}/cancel und /complete"""

    def test_cancel(self, client, db, table):
        created = client.post("/bookings/", json=booking_payload(table.id, at(15))).json()["booking"]

        response = client.put(f"/bookings/{created['id']}/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["confirmation_status"] == "CANCELLED"
        db.refresh(table)
        assert table.status == TableStatus.AVAILABLE

    def test_cancel_twice_is_not_found(self, client, db, table):
        """Zweiter Aufruf: 404, Tisch und Protokoll unverändert"""
        created = client.post("/bookings/", json=booking_payload(table.id, at(15))).json()["booking"]
        client.put(f"/bookings/{created['id']}/cancel")
        db.refresh(table)
        status_after_first = table.status
        log_count = db.query(ActivityLog).count()

        response = client.put(f"/bookings/{created['id']}/cancel")

        assert response.status_code == 404
        db.refresh(table)
        assert table.status == status_after_first
        assert db.query(ActivityLog).count() == log_count

    def test_complete_releases_table(self, client, db, table, make_booking):
        seated = make_booking(table, at(13, 30))
        client.put(f"/tables/{table.id}/status", json={"status": "OCCUPIED"})

        response = client.put(f"/bookings/{seated.id}/complete")

        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"
        db.refresh(table)
        assert table.status == TableStatus.AVAILABLE

    def test_complete_twice_is_not_found(self, client, make_booking, table):
        booking = make_booking(table, at(15))
        client.put(f"/bookings/{booking.id}/complete")

        response = client.put(f"/bookings/{booking.id}/complete")

        assert response.status_code == 404

    def test_cancel_after_complete_is_not_found(self, client, make_booking, table):
        booking = make_booking(table, at(15))
        client.put(f"/bookings/{booking.id}/complete")

        assert client.put(f"/bookings/{booking.id}/cancel").status_code == 404

    def test_cancel_unknown(self, client):
        assert client.put(f"/bookings/{uuid4()}/cancel").status_code == 404


# ============ UMSETZEN ============

class TestReassign:
    """Tests für PUT /bookings/{id}/reassign"""

    def test_reassign_to_free_table(self, client, db, make_table):
        t1 = make_table(number="1")
        t2 = make_table(number="2")
        created = client.post("/bookings/", json=booking_payload(t1.id, at(15))).json()["booking"]

        response = client.put(f"/bookings/{created['id']}/reassign", json={"new_table_id": str(t2.id)})

        assert response.status_code == 200
        assert response.json()["table_id"] == str(t2.id)
        db.refresh(t1)
        db.refresh(t2)
        assert t1.status == TableStatus.AVAILABLE
        assert t2.status == TableStatus.BOOKED

    def test_reassign_seated_booking_occupies_new_table(self, client, db, make_table, make_booking):
        t1 = make_table(number="1")
        t2 = make_table(number="2")
        seated = make_booking(t1, at(13, 30), status=BookingStatus.CONFIRMED)

        response = client.put(f"/bookings/{seated.id}/reassign", json={"new_table_id": str(t2.id)})

        assert response.status_code == 200
        db.refresh(t2)
        assert t2.status == TableStatus.OCCUPIED
        assert t2.occupied_since is not None

    def test_reassign_into_conflict(self, client, make_table, make_booking):
        t1 = make_table(number="1")
        t2 = make_table(number="2")
        booking = make_booking(t1, at(15))
        make_booking(t2, at(15, 30))

        response = client.put(f"/bookings/{booking.id}/reassign", json={"new_table_id": str(t2.id)})

        assert response.status_code == 409
        assert response.json()["detail"] == "Zieltisch ist in diesem Zeitraum nicht frei"

    def test_reassign_to_small_table(self, client, make_table, make_booking):
        t1 = make_table(number="1")
        small = make_table(number="2", size=TableSize.SMALL, seats=2)
        booking = make_booking(t1, at(15), people_count=4)

        response = client.put(f"/bookings/{booking.id}/reassign", json={"new_table_id": str(small.id)})

        assert response.status_code == 422

    def test_reassign_to_same_table(self, client, table, make_booking):
        booking = make_booking(table, at(15))

        response = client.put(f"/bookings/{booking.id}/reassign", json={"new_table_id": str(table.id)})

        assert response.status_code == 422


# ============ LESEN ============

class TestGetBookings:

    def test_list_and_filter(self, client, make_table, make_booking):
        t1 = make_table(number="1")
        t2 = make_table(number="2")
        make_booking(t1, at(15))
        make_booking(t2, at(16), status=BookingStatus.CANCELLED)

        assert len(client.get("/bookings/").json()) == 2
        assert len(client.get("/bookings/?status=CANCELLED").json()) == 1
        assert len(client.get(f"/bookings/?table_id={t1.id}").json()) == 1

    def test_by_date(self, client, table, make_booking):
        make_booking(table, at(15))
        make_booking(table, at(19))
        make_booking(table, at(15).replace(day=15))

        response = client.get("/bookings/by-date?date=2030-06-14")

        assert response.status_code == 200
        times = [b["booking_time"] for b in response.json()]
        assert times == [iso(at(15)), iso(at(19))]

    def test_upcoming_for_table(self, client, table, make_booking):
        make_booking(table, at(12))
        running = make_booking(table, at(13, 30))
        later = make_booking(table, at(18))
        make_booking(table, at(20), status=BookingStatus.CANCELLED)

        response = client.get(f"/bookings/table/{table.id}/upcoming")

        assert response.status_code == 200
        assert [b["id"] for b in response.json()] == [str(running.id), str(later.id)]

    def test_upcoming_unknown_table(self, client):
        assert client.get(f"/bookings/table/{uuid4()}/upcoming").status_code == 404


class TestSyncStatuses:

    def test_sync_endpoint(self, client, make_table):
        make_table(number="1", status=TableStatus.OCCUPIED)

        response = client.post("/bookings/sync-statuses")

        assert response.status_code == 200
        data = response.json()
        assert data["checked"] == 1
        assert data["updated"] == 1
        assert data["changes"][0]["new_status"] == "AVAILABLE"
