from datetime import date, time

import pytest
from sqlalchemy.exc import IntegrityError

import models
import reservation_service
from auth import Identity
from conftest import reservation_payload
from errors import Conflict
from schemas import ReservationCreate


def test_anonymous_guest_can_reserve(client, table):
    resp = client.post("/reservations", json=reservation_payload(table.id))

    assert resp.status_code == 201
    reservation = resp.json()["data"]["reservation"]
    assert reservation["userId"] is None
    assert reservation["reservationTime"] == "19:00"
    assert reservation["duration"] == 120
    assert reservation["totalAmount"] == 0.0


def test_identical_slot_is_rejected(client, db_session, table, customer_headers):
    first = client.post("/reservations", json=reservation_payload(table.id), headers=customer_headers)
    assert first.status_code == 201

    second = client.post("/reservations", json=reservation_payload(table.id, reservation_time="19:00:00"))
    assert second.status_code == 400
    assert second.json()["message"] == "Table is already reserved for this time slot"
    assert db_session.query(models.TableReservation).count() == 1


def test_exact_mode_allows_neighbouring_times(client, table):
    assert client.post("/reservations", json=reservation_payload(table.id)).status_code == 201
    assert client.post("/reservations", json=reservation_payload(table.id, reservation_time="19:30")).status_code == 201


def test_overlap_mode_rejects_overlapping_windows(client, table, monkeypatch):
    monkeypatch.setenv("RESERVATION_CONFLICT_MODE", "overlap")
    assert client.post("/reservations", json=reservation_payload(table.id)).status_code == 201

    overlapping = client.post("/reservations", json=reservation_payload(table.id, reservation_time="20:00"))
    assert overlapping.status_code == 400

    after = client.post("/reservations", json=reservation_payload(table.id, reservation_time="21:00"))
    assert after.status_code == 201


def test_capacity_exceeded(client, table):
    resp = client.post("/reservations", json=reservation_payload(table.id, guests=9))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Table capacity is 4, but 9 guests requested"


def test_unknown_table_and_unavailable_table(client, db_session, table):
    assert client.post("/reservations", json=reservation_payload(12345)).status_code == 404

    table.status = "maintenance"
    db_session.commit()
    resp = client.post("/reservations", json=reservation_payload(table.id))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Table is not available"


def test_reservation_fee_is_charged(client, table, monkeypatch):
    monkeypatch.setenv("RESERVATION_FEE", "25")
    resp = client.post("/reservations", json=reservation_payload(table.id))
    assert resp.json()["data"]["reservation"]["totalAmount"] == 25.0


def test_only_staff_reserves_for_another_user(client, table, customer, other_headers, staff_headers):
    forbidden = client.post("/reservations", json=reservation_payload(table.id, userId=customer.id),
                            headers=other_headers)
    assert forbidden.status_code == 403

    ok = client.post("/reservations", json=reservation_payload(table.id, userId=customer.id), headers=staff_headers)
    assert ok.status_code == 201
    assert ok.json()["data"]["reservation"]["userId"] == customer.id


def test_status_changes_sync_table(client, db_session, table, staff_headers):
    created = client.post("/reservations", json=reservation_payload(table.id)).json()
    reservation_id = created["data"]["reservation"]["id"]

    seated = client.patch(f"/reservations/{reservation_id}/status", json={"status": "seated"}, headers=staff_headers)
    assert seated.status_code == 200
    db_session.refresh(table)
    assert table.status == "occupied"

    completed = client.patch(f"/reservations/{reservation_id}/status", json={"status": "completed"},
                             headers=staff_headers)
    assert completed.status_code == 200
    db_session.refresh(table)
    assert table.status == "available"


def test_cancel_guard_and_cancel(client, db_session, table, customer_headers, staff_headers):
    created = client.post("/reservations", json=reservation_payload(table.id), headers=customer_headers).json()
    reservation_id = created["data"]["reservation"]["id"]

    cancelled = client.patch(f"/reservations/{reservation_id}/cancel", headers=customer_headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["reservation"]["status"] == "cancelled"

    # Слот снова свободен
    again = client.post("/reservations", json=reservation_payload(table.id), headers=customer_headers).json()
    again_id = again["data"]["reservation"]["id"]
    client.patch(f"/reservations/{again_id}/status", json={"status": "seated"}, headers=staff_headers)

    resp = client.patch(f"/reservations/{again_id}/cancel", headers=customer_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot cancel reservation that is already seated or completed"


def test_reactivating_into_taken_slot_is_rejected(db_session, table, staff_user):
    staff = Identity(staff_user.id, staff_user.role)
    data = ReservationCreate(tableId=table.id, reservationDate="2024-06-10", reservationTime="19:00", guests=2)

    first = reservation_service.create_reservation(db_session, staff, data)
    reservation_service.cancel_reservation(db_session, staff, first.id)
    reservation_service.create_reservation(db_session, staff, data)

    with pytest.raises(Conflict):
        reservation_service.update_reservation_status(db_session, staff, first.id, "confirmed")


def test_unique_slot_index_blocks_raw_duplicates(db_session, table):
    def insert():
        db_session.add(models.TableReservation(
            table_id=table.id, reservation_date=date(2024, 6, 10), reservation_time=time(19, 0),
            duration=120, status="pending", total_amount=0, guests=2,
        ))
        db_session.commit()

    insert()
    with pytest.raises(IntegrityError):
        insert()
    db_session.rollback()


def test_list_filters_by_date(client, table, staff_headers):
    client.post("/reservations", json=reservation_payload(table.id))
    client.post("/reservations", json=reservation_payload(table.id, reservation_date="2024-06-11"))

    resp = client.get("/reservations", params={"date": "2024-06-11"}, headers=staff_headers)
    reservations = resp.json()["data"]["reservations"]
    assert [r["reservationDate"] for r in reservations] == ["2024-06-11"]
