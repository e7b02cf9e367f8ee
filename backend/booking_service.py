"""
Бронирование номеров: создание с проверкой пересечений, смена статуса, отмена.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

import availability
import models
import pricing
from auth import Identity
from errors import Conflict, Forbidden, NotFound, ValidationFailed
from schemas import BookingCreate

logger = logging.getLogger("BookingService")

TERMINAL_BOOKING_STATUSES = ("cancelled", "checked_out")
NON_CANCELLABLE_BOOKING_STATUSES = ("checked_in", "checked_out")


def booking_to_dict(booking: models.RoomBooking) -> dict:
    room = booking.room
    user = booking.user
    return {
        "id": booking.id,
        "roomId": booking.room_id,
        "userId": booking.user_id,
        "checkIn": booking.check_in,
        "checkOut": booking.check_out,
        "status": booking.status,
        "totalAmount": booking.total_amount,
        "guests": booking.guests,
        "specialRequests": booking.special_requests,
        "createdAt": booking.created_at,
        "roomName": room.name if room else None,
        "roomType": room.type if room else None,
        "roomNumber": room.room_number if room else None,
        "userName": user.name if user else None,
        "userEmail": user.email if user else None,
    }


def _get_booking(db: Session, booking_id: int) -> models.RoomBooking:
    booking = db.query(models.RoomBooking).filter(models.RoomBooking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")
    return booking


def list_bookings(db: Session, identity: Identity, status: Optional[str] = None):
    query = db.query(models.RoomBooking)
    # Обычный пользователь видит только свои брони
    if not identity.is_staff:
        query = query.filter(models.RoomBooking.user_id == identity.user_id)
    if status:
        query = query.filter(models.RoomBooking.status == status)
    return query.order_by(models.RoomBooking.created_at.desc(), models.RoomBooking.id.desc()).all()


def get_booking(db: Session, identity: Identity, booking_id: int) -> models.RoomBooking:
    booking = _get_booking(db, booking_id)
    if not identity.can_access(booking.user_id):
        raise Forbidden("Access denied")
    return booking


def create_booking(db: Session, identity: Identity, data: BookingCreate) -> models.RoomBooking:
    try:
        # Блокируем строку номера до вставки: параллельный запрос на тот же номер ждет здесь
        room = db.query(models.Room).filter(models.Room.id == data.room_id).with_for_update().first()
        if not room:
            raise NotFound("Room not found")

        if room.status != "available":
            raise Conflict("Room is not available")

        if data.guests > room.capacity:
            raise ValidationFailed(f"Room capacity is {room.capacity}, but {data.guests} guests requested")

        total_amount = pricing.room_booking_total(data.check_in, data.check_out, room.price)

        conflict = availability.find_room_conflict(db, room.id, data.check_in, data.check_out)
        if conflict:
            logger.info(
                f"Room {room.id} already booked by #{conflict.id} "
                f"({conflict.check_in}..{conflict.check_out}), rejecting {data.check_in}..{data.check_out}"
            )
            raise Conflict("Room is already booked for these dates")

        booking = models.RoomBooking(
            room_id=room.id,
            user_id=identity.user_id,
            check_in=data.check_in,
            check_out=data.check_out,
            status="pending",
            total_amount=total_amount,
            guests=data.guests,
            special_requests=data.special_requests,
        )
        db.add(booking)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info(f"Booking #{booking.id} created for room {booking.room_id}, total {booking.total_amount}")
    return booking


def update_booking_status(db: Session, identity: Identity, booking_id: int, status: str) -> models.RoomBooking:
    if not identity.is_staff:
        raise Forbidden("Access denied")
    if status not in models.BOOKING_STATUSES:
        raise ValidationFailed(f"Invalid status. Allowed: {', '.join(models.BOOKING_STATUSES)}")

    booking = _get_booking(db, booking_id)
    if booking.status in TERMINAL_BOOKING_STATUSES and status != booking.status:
        raise ValidationFailed(f"Cannot change status of a {booking.status} booking")

    logger.info(f"Booking #{booking.id}: {booking.status} -> {status}")
    booking.status = status
    db.commit()
    db.refresh(booking)
    return booking


def cancel_booking(db: Session, identity: Identity, booking_id: int) -> models.RoomBooking:
    booking = _get_booking(db, booking_id)
    if not identity.can_access(booking.user_id):
        raise Forbidden("Access denied")

    if booking.status in NON_CANCELLABLE_BOOKING_STATUSES:
        raise ValidationFailed("Cannot cancel booking that is already checked in or out")

    booking.status = "cancelled"
    db.commit()
    db.refresh(booking)
    logger.info(f"Booking #{booking.id} cancelled")
    return booking


def confirm_paid_booking(booking: models.RoomBooking) -> bool:
    """Вызывается после успешной оплаты. Повторный вызов ничего не меняет."""
    if booking.status == "pending":
        booking.status = "confirmed"
        return True
    if booking.status != "confirmed":
        logger.warning(f"Payment succeeded for booking #{booking.id} in status {booking.status}, status left as is")
    return False
