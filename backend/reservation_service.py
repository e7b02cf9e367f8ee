"""
Бронирование столов.

Конфликт по умолчанию: та же дата и то же время (RESERVATION_CONFLICT_MODE=exact).
Режим overlap сравнивает окна [время, время + duration).
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import availability
import models
import pricing
from auth import Identity, resolve_customer_id
from errors import Conflict, Forbidden, NotFound, ValidationFailed
from schemas import ReservationCreate

logger = logging.getLogger("ReservationService")

SLOT_TAKEN_MESSAGE = "Table is already reserved for this time slot"

# Статус брони -> статус стола
TABLE_STATUS_BY_RESERVATION = {
    "seated": "occupied",
    "completed": "available",
    "cancelled": "available",
}


def reservation_to_dict(reservation: models.TableReservation) -> dict:
    table = reservation.table
    user = reservation.user
    return {
        "id": reservation.id,
        "tableId": reservation.table_id,
        "userId": reservation.user_id,
        "reservationDate": reservation.reservation_date,
        "reservationTime": reservation.reservation_time.strftime("%H:%M"),
        "duration": reservation.duration,
        "status": reservation.status,
        "totalAmount": reservation.total_amount,
        "guests": reservation.guests,
        "specialRequests": reservation.special_requests,
        "createdAt": reservation.created_at,
        "tableNumber": table.table_number if table else None,
        "capacity": table.capacity if table else None,
        "location": table.location if table else None,
        "tableStatus": table.status if table else None,
        "userName": user.name if user else None,
        "userEmail": user.email if user else None,
    }


def _get_reservation(db: Session, reservation_id: int) -> models.TableReservation:
    reservation = db.query(models.TableReservation).filter(models.TableReservation.id == reservation_id).first()
    if not reservation:
        raise NotFound("Reservation not found")
    return reservation


def list_reservations(db: Session, identity: Identity, status: Optional[str] = None,
                      reservation_date: Optional[date] = None):
    query = db.query(models.TableReservation)
    if not identity.is_staff:
        query = query.filter(models.TableReservation.user_id == identity.user_id)
    if status:
        query = query.filter(models.TableReservation.status == status)
    if reservation_date:
        query = query.filter(models.TableReservation.reservation_date == reservation_date)
    return query.order_by(
        models.TableReservation.reservation_date.desc(),
        models.TableReservation.reservation_time.desc(),
    ).all()


def get_reservation(db: Session, identity: Identity, reservation_id: int) -> models.TableReservation:
    reservation = _get_reservation(db, reservation_id)
    if not identity.can_access(reservation.user_id):
        raise Forbidden("Access denied")
    return reservation


def create_reservation(db: Session, identity: Optional[Identity], data: ReservationCreate) -> models.TableReservation:
    try:
        user_id = resolve_customer_id(db, identity, data.user_id)

        table = db.query(models.Table).filter(models.Table.id == data.table_id).with_for_update().first()
        if not table:
            raise NotFound("Table not found")

        if table.status != "available":
            raise Conflict("Table is not available")

        if data.guests > table.capacity:
            raise ValidationFailed(f"Table capacity is {table.capacity}, but {data.guests} guests requested")

        conflict = availability.find_table_conflict(
            db, table.id, data.reservation_date, data.reservation_time, data.duration
        )
        if conflict:
            logger.info(
                f"Table {table.id} slot {data.reservation_date} {data.reservation_time} "
                f"conflicts with reservation #{conflict.id}"
            )
            raise Conflict(SLOT_TAKEN_MESSAGE)

        reservation = models.TableReservation(
            table_id=table.id,
            user_id=user_id,
            reservation_date=data.reservation_date,
            reservation_time=data.reservation_time,
            duration=data.duration,
            status="pending",
            total_amount=pricing.reservation_total(),
            guests=data.guests,
            special_requests=data.special_requests,
        )
        db.add(reservation)
        db.commit()
    except IntegrityError:
        # Параллельный запрос успел занять тот же слот (уникальный индекс)
        db.rollback()
        raise Conflict(SLOT_TAKEN_MESSAGE)
    except Exception:
        db.rollback()
        raise

    db.refresh(reservation)
    logger.info(f"Reservation #{reservation.id} created for table {reservation.table_id}")
    return reservation


def _sync_table_status(db: Session, reservation: models.TableReservation, status: str) -> None:
    table_status = TABLE_STATUS_BY_RESERVATION.get(status)
    if table_status is None:
        return
    table = db.query(models.Table).filter(models.Table.id == reservation.table_id).first()
    if table:
        table.status = table_status


def update_reservation_status(db: Session, identity: Identity, reservation_id: int,
                              status: str) -> models.TableReservation:
    if not identity.is_staff:
        raise Forbidden("Access denied")
    if status not in models.RESERVATION_STATUSES:
        raise ValidationFailed(f"Invalid status. Allowed: {', '.join(models.RESERVATION_STATUSES)}")

    reservation = _get_reservation(db, reservation_id)

    reactivating = (reservation.status in models.INACTIVE_RESERVATION_STATUSES
                    and status not in models.INACTIVE_RESERVATION_STATUSES)
    if reactivating and availability.find_table_conflict(
        db, reservation.table_id, reservation.reservation_date, reservation.reservation_time, reservation.duration
    ):
        raise Conflict(SLOT_TAKEN_MESSAGE)

    logger.info(f"Reservation #{reservation.id}: {reservation.status} -> {status}")
    reservation.status = status
    _sync_table_status(db, reservation, status)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(SLOT_TAKEN_MESSAGE)
    db.refresh(reservation)
    return reservation


def cancel_reservation(db: Session, identity: Identity, reservation_id: int) -> models.TableReservation:
    reservation = _get_reservation(db, reservation_id)
    if not identity.can_access(reservation.user_id):
        raise Forbidden("Access denied")

    if reservation.status in ("seated", "completed"):
        raise ValidationFailed("Cannot cancel reservation that is already seated or completed")

    reservation.status = "cancelled"
    _sync_table_status(db, reservation, "cancelled")
    db.commit()
    db.refresh(reservation)
    logger.info(f"Reservation #{reservation.id} cancelled")
    return reservation


def confirm_paid_reservation(reservation: models.TableReservation) -> bool:
    if reservation.status == "pending":
        reservation.status = "confirmed"
        return True
    if reservation.status != "confirmed":
        logger.warning(
            f"Payment succeeded for reservation #{reservation.id} in status {reservation.status}, status left as is"
        )
    return False
