import models
from conftest import booking_payload


def test_create_booking_computes_total(client, room, customer_headers):
    resp = client.post("/bookings", json=booking_payload(room.id), headers=customer_headers)

    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Booking created successfully"
    booking = body["data"]["booking"]
    assert booking["status"] == "pending"
    assert booking["totalAmount"] == 300.0
    assert booking["roomNumber"] == "301"


def test_iso_datetime_input_is_cut_to_date(client, room, customer_headers):
    payload = booking_payload(room.id, "2024-06-01T00:00:00.000Z", "2024-06-04T00:00:00.000Z")
    resp = client.post("/bookings", json=payload, headers=customer_headers)
    assert resp.status_code == 201
    assert resp.json()["data"]["booking"]["checkIn"] == "2024-06-01"


def test_overlapping_booking_is_rejected(client, db_session, room, customer_headers, other_headers):
    first = client.post("/bookings", json=booking_payload(room.id), headers=customer_headers)
    assert first.status_code == 201

    second = client.post("/bookings", json=booking_payload(room.id, "2024-06-03", "2024-06-05"),
                         headers=other_headers)
    assert second.status_code == 400
    assert second.json() == {"success": False, "message": "Room is already booked for these dates"}
    assert db_session.query(models.RoomBooking).count() == 1


def test_checkout_day_counts_as_booked(client, room, customer_headers, other_headers):
    client.post("/bookings", json=booking_payload(room.id), headers=customer_headers)
    resp = client.post("/bookings", json=booking_payload(room.id, "2024-06-04", "2024-06-06"),
                       headers=other_headers)
    assert resp.status_code == 400


def test_cancelled_booking_frees_the_dates(client, room, customer_headers, other_headers):
    first = client.post("/bookings", json=booking_payload(room.id), headers=customer_headers).json()
    booking_id = first["data"]["booking"]["id"]

    cancel = client.patch(f"/bookings/{booking_id}/cancel", headers=customer_headers)
    assert cancel.status_code == 200
    assert cancel.json()["data"]["booking"]["status"] == "cancelled"

    again = client.post("/bookings", json=booking_payload(room.id), headers=other_headers)
    assert again.status_code == 201


def test_unknown_room_is_404(client, customer_headers):
    resp = client.post("/bookings", json=booking_payload(999), headers=customer_headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Room not found"


def test_room_in_maintenance_is_not_available(client, db_session, room, customer_headers):
    room.status = "maintenance"
    db_session.commit()

    resp = client.post("/bookings", json=booking_payload(room.id), headers=customer_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Room is not available"


def test_invalid_dates_and_capacity(client, room, customer_headers):
    same_day = client.post("/bookings", json=booking_payload(room.id, "2024-06-04", "2024-06-04"),
                           headers=customer_headers)
    assert same_day.status_code == 400
    assert same_day.json()["message"] == "Check-out date must be after check-in date"

    crowd = client.post("/bookings", json=booking_payload(room.id, guests=5), headers=customer_headers)
    assert crowd.status_code == 400
    assert "capacity" in crowd.json()["message"]


def test_booking_requires_login(client, room):
    assert client.post("/bookings", json=booking_payload(room.id)).status_code == 401


def test_cancel_guard_for_checked_in_and_out(client, room, customer_headers, staff_headers):
    created = client.post("/bookings", json=booking_payload(room.id), headers=customer_headers).json()
    booking_id = created["data"]["booking"]["id"]

    checked_in = client.patch(f"/bookings/{booking_id}/status", json={"status": "checked_in"},
                              headers=staff_headers)
    assert checked_in.status_code == 200

    resp = client.patch(f"/bookings/{booking_id}/cancel", headers=customer_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot cancel booking that is already checked in or out"

    client.patch(f"/bookings/{booking_id}/status", json={"status": "checked_out"}, headers=staff_headers)
    resp = client.patch(f"/bookings/{booking_id}/cancel", headers=staff_headers)
    assert resp.status_code == 400


def test_status_update_is_staff_only_and_validated(client, room, customer_headers, staff_headers):
    created = client.post("/bookings", json=booking_payload(room.id), headers=customer_headers).json()
    booking_id = created["data"]["booking"]["id"]

    forbidden = client.patch(f"/bookings/{booking_id}/status", json={"status": "confirmed"},
                             headers=customer_headers)
    assert forbidden.status_code == 403

    bad = client.patch(f"/bookings/{booking_id}/status", json={"status": "teleported"}, headers=staff_headers)
    assert bad.status_code == 400


def test_users_see_only_their_bookings(client, room, customer_headers, other_headers, staff_headers):
    created = client.post("/bookings", json=booking_payload(room.id), headers=customer_headers).json()
    booking_id = created["data"]["booking"]["id"]

    assert len(client.get("/bookings", headers=customer_headers).json()["data"]["bookings"]) == 1
    assert client.get("/bookings", headers=other_headers).json()["data"]["bookings"] == []
    assert len(client.get("/bookings", headers=staff_headers).json()["data"]["bookings"]) == 1

    assert client.get(f"/bookings/{booking_id}", headers=other_headers).status_code == 403
    assert client.get(f"/bookings/{booking_id}", headers=customer_headers).status_code == 200


def test_room_availability_endpoint(client, room, customer_headers):
    before = client.get(f"/rooms/{room.id}/availability", params={"checkIn": "2024-06-01", "checkOut": "2024-06-04"})
    assert before.status_code == 200
    assert before.json()["data"]["available"] is True
    assert before.json()["data"]["totalAmount"] == 300.0

    client.post("/bookings", json=booking_payload(room.id), headers=customer_headers)
    after = client.get(f"/rooms/{room.id}/availability", params={"checkIn": "2024-06-02", "checkOut": "2024-06-03"})
    assert after.json()["data"]["available"] is False
