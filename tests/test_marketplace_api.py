"""End-to-end tests for the marketplace routes."""
from datetime import timedelta

import pytest

from parkingdirekt.db.models import BookingStatus, Notification
from parkingdirekt.utils.clock import utcnow
from tests.conftest import auth_headers

OWNER = auth_headers("owner-1", role="OWNER")
RENTER = auth_headers("renter-1")
OTHER = auth_headers("renter-2")
ADMIN = auth_headers("admin-1", role="ADMIN")

SPACE = {
    "title": "Sunny driveway",
    "description": "Wide driveway with space for an SUV",
    "address": "Lindenweg 7, Hamburg",
    "latitude": 53.55,
    "longitude": 9.99,
    "hourly_rate": 3.0,
    "space_type": "DRIVEWAY",
    "vehicle_types": ["CAR", "SUV"],
}


def _window(start_hours: float, end_hours: float) -> dict[str, str]:
    base = utcnow().replace(microsecond=0) + timedelta(days=2)
    return {
        "start_time": (base + timedelta(hours=start_hours)).isoformat(),
        "end_time": (base + timedelta(hours=end_hours)).isoformat(),
    }


class TestParkingSpaces:
    def test_owner_creates_space(self, client, marketplace):
        response = client.post("/api/parking-spaces", json=SPACE, headers=OWNER)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Parking space created successfully"
        assert body["data"]["owner_id"] == "owner-1"
        assert body["data"]["qr_code"].startswith("SPACE_")

    def test_renter_cannot_create_space(self, client, marketplace):
        response = client.post("/api/parking-spaces", json=SPACE, headers=RENTER)
        assert response.status_code == 403

    def test_invalid_space_payload(self, client, marketplace):
        response = client.post("/api/parking-spaces", json={**SPACE, "latitude": 123}, headers=OWNER)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_list_is_public_and_paginated(self, client, marketplace, create_space):
        for n in range(3):
            create_space("owner-1", title=f"Spot number {n}", hourly_rate=2.0 + n)

        response = client.get("/api/parking-spaces", params={"limit": 2})
        body = response.json()
        assert response.status_code == 200
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 4, "totalPages": 2}

    def test_list_filters(self, client, marketplace, create_space):
        create_space("owner-1", title="Cheap outdoor", hourly_rate=1.0, space_type="OUTDOOR")
        create_space("owner-1", title="Far away", latitude=48.13, longitude=11.58)
        create_space("owner-1", title="Hidden", is_active=False)

        cheap = client.get("/api/parking-spaces", params={"max_price": 2}).json()
        assert [s["title"] for s in cheap["data"]] == ["Cheap outdoor"]

        outdoor = client.get("/api/parking-spaces", params={"space_type": "OUTDOOR"}).json()
        assert outdoor["pagination"]["total"] == 1

        near_berlin = client.get(
            "/api/parking-spaces", params={"latitude": 52.52, "longitude": 13.405, "radius": 5}
        ).json()
        assert "Far away" not in [s["title"] for s in near_berlin["data"]]

        search = client.get("/api/parking-spaces", params={"search": "far"}).json()
        assert [s["title"] for s in search["data"]] == ["Far away"]

    def test_limit_is_capped(self, client):
        assert client.get("/api/parking-spaces", params={"limit": 101}).status_code == 400

    def test_get_update_delete(self, client, marketplace):
        space_id = marketplace["space_id"]
        assert client.get(f"/api/parking-spaces/{space_id}").json()["data"]["owner"]["id"] == "owner-1"

        forbidden = client.put(f"/api/parking-spaces/{space_id}", json={"hourly_rate": 9}, headers=RENTER)
        assert forbidden.status_code == 403

        updated = client.put(f"/api/parking-spaces/{space_id}", json={"hourly_rate": 9}, headers=OWNER)
        assert updated.json()["data"]["hourly_rate"] == 9

        assert client.delete(f"/api/parking-spaces/{space_id}", headers=OWNER).status_code == 200
        assert client.get(f"/api/parking-spaces/{space_id}").status_code == 404


class TestBookingsApi:
    def test_create_and_conflict(self, client, marketplace):
        payload = {"space_id": marketplace["space_id"], **_window(0, 2)}
        created = client.post("/api/bookings", json=payload, headers=RENTER)
        assert created.status_code == 201
        assert created.json()["data"]["total_price"] == 8.0

        conflict = client.post(
            "/api/bookings", json={"space_id": marketplace["space_id"], **_window(1, 3)}, headers=OTHER
        )
        assert conflict.status_code == 409
        assert conflict.json()["code"] == "BOOKING_CONFLICT"

        touching = client.post(
            "/api/bookings", json={"space_id": marketplace["space_id"], **_window(2, 3)}, headers=OTHER
        )
        assert touching.status_code == 201

    def test_end_before_start(self, client, marketplace):
        window = _window(2, 1)
        response = client.post("/api/bookings", json={"space_id": marketplace["space_id"], **window}, headers=RENTER)
        assert response.status_code == 400

    def test_status_flow(self, client, marketplace):
        created = client.post(
            "/api/bookings", json={"space_id": marketplace["space_id"], **_window(0, 1)}, headers=RENTER
        ).json()["data"]
        booking_id = created["id"]

        denied = client.put(f"/api/bookings/{booking_id}", json={"status": "CONFIRMED"}, headers=RENTER)
        assert denied.status_code == 403

        confirmed = client.put(f"/api/bookings/{booking_id}", json={"status": "CONFIRMED"}, headers=OWNER)
        assert confirmed.json()["data"]["status"] == BookingStatus.CONFIRMED.value

        listed = client.get("/api/bookings", params={"status": "CONFIRMED"}, headers=OWNER).json()
        assert listed["pagination"]["total"] == 1

        assert client.get(f"/api/bookings/{booking_id}", headers=OTHER).status_code == 403
        assert client.delete(f"/api/bookings/{booking_id}", headers=RENTER).status_code == 403
        assert client.delete(f"/api/bookings/{booking_id}", headers=ADMIN).status_code == 200


class TestReviewsApi:
    def _completed_booking(self, create_booking, space_id):
        return create_booking("renter-1", space_id, status=BookingStatus.COMPLETED)

    def test_review_flow(self, client, marketplace, create_booking):
        booking = self._completed_booking(create_booking, marketplace["space_id"])

        created = client.post(
            "/api/reviews", json={"booking_id": booking.id, "rating": 4, "comment": "Easy access"}, headers=RENTER
        )
        assert created.status_code == 201
        assert created.json()["data"]["reviewee_id"] == "owner-1"

        duplicate = client.post("/api/reviews", json={"booking_id": booking.id, "rating": 5}, headers=RENTER)
        assert duplicate.status_code == 409

        owner_review = client.post("/api/reviews", json={"booking_id": booking.id, "rating": 2}, headers=OWNER)
        assert owner_review.status_code == 201
        assert owner_review.json()["data"]["reviewee_id"] == "renter-1"

        listed = client.get("/api/reviews", params={"space_id": marketplace["space_id"]}).json()
        assert listed["pagination"]["total"] == 2
        assert listed["stats"]["average_rating"] == 3.0
        assert listed["stats"]["rating_distribution"][3] == {"rating": 4, "count": 1}

    def test_review_requires_completion(self, client, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"])
        response = client.post("/api/reviews", json={"booking_id": booking.id, "rating": 5}, headers=RENTER)
        assert response.status_code == 400
        assert response.json()["code"] == "BOOKING_NOT_COMPLETED"

    def test_outsider_cannot_review(self, client, marketplace, create_booking):
        booking = self._completed_booking(create_booking, marketplace["space_id"])
        response = client.post("/api/reviews", json={"booking_id": booking.id, "rating": 5}, headers=OTHER)
        assert response.status_code == 403

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_bounds(self, client, marketplace, rating):
        response = client.post("/api/reviews", json={"booking_id": "x", "rating": rating}, headers=RENTER)
        assert response.status_code == 400


class TestNotificationsApi:
    def _seed(self, db, user_id: str, count: int) -> list[str]:
        with db.get_session() as session:
            rows = [Notification(user_id=user_id, title=f"Note {n}", message="Hello") for n in range(count)]
            session.add_all(rows)
            session.flush()
            return [row.id for row in rows]

    def test_list_with_unread_count(self, client, db, marketplace):
        self._seed(db, "renter-1", 3)
        body = client.get("/api/notifications", headers=RENTER).json()
        assert body["unread_count"] == 3
        assert body["pagination"]["total"] == 3

    def test_mark_read_and_delete(self, client, db, marketplace):
        note_id = self._seed(db, "renter-1", 1)[0]

        assert client.patch(f"/api/notifications/{note_id}", json={"is_read": True}, headers=OTHER).status_code == 403
        read = client.patch(f"/api/notifications/{note_id}", json={"is_read": True}, headers=RENTER)
        assert read.json()["data"]["is_read"] is True

        unread = client.get("/api/notifications", params={"unread_only": True}, headers=RENTER).json()
        assert unread["pagination"]["total"] == 0

        assert client.delete(f"/api/notifications/{note_id}", headers=RENTER).status_code == 200
        assert client.delete(f"/api/notifications/{note_id}", headers=RENTER).status_code == 404

    def test_bulk_actions_ignore_foreign_ids(self, client, db, marketplace):
        mine = self._seed(db, "renter-1", 2)
        theirs = self._seed(db, "renter-2", 1)

        response = client.post(
            "/api/notifications/bulk",
            json={"action": "markAllRead", "notification_ids": mine + theirs},
            headers=RENTER,
        )
        assert response.json()["data"] == {"affected": 2}
        assert client.get("/api/notifications", headers=OTHER).json()["unread_count"] == 1

        deleted = client.post(
            "/api/notifications/bulk", json={"action": "deleteAll", "notification_ids": mine}, headers=RENTER
        )
        assert deleted.json()["data"] == {"affected": 2}

        none_left = client.post(
            "/api/notifications/bulk", json={"action": "deleteAll", "notification_ids": mine}, headers=RENTER
        )
        assert none_left.status_code == 404

    def test_bulk_rejects_unknown_action(self, client, marketplace):
        response = client.post(
            "/api/notifications/bulk", json={"action": "archive", "notification_ids": ["a"]}, headers=RENTER
        )
        assert response.status_code == 400


class TestVerifyQrApi:
    def test_check_in_via_api(self, client, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"], status=BookingStatus.CONFIRMED)
        created_qr = f"BOOKING_{booking.id}_renter-1_{int(utcnow().timestamp() * 1000)}_abc1234"

        response = client.post(
            "/api/verify-qr", json={"qr_code": f"  {created_qr} ", "action": "check-in"}, headers=RENTER
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Check-in successful"
        assert body["data"]["booking"]["status"] == "ACTIVE"

    def test_requires_login(self, client):
        assert client.post("/api/verify-qr", json={"qr_code": "x"}).status_code == 401

    def test_invalid_code(self, client, marketplace):
        response = client.post("/api/verify-qr", json={"qr_code": "nonsense"}, headers=RENTER)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_QR_CODE"
