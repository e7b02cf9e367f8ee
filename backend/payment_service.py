"""
Координатор платежей.

Двухшаговый поток:
  1. create_payment_intent: pending-платеж + payment intent у процессора, одна транзакция;
  2. confirm_payment: спрашиваем у процессора итоговый статус intent и переводим
     платеж в completed/failed, а связанную бронь в confirmed.

confirm_payment идемпотентен: результат зависит только от ответа процессора.
"""
import json
import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

import booking_service
import models
import pricing
import reservation_service
from auth import Identity
from errors import Forbidden, NotFound, ServiceError, ValidationFailed
from payment_gateway import PaymentIntent, StripeGateway, verify_webhook_signature

logger = logging.getLogger("PaymentService")

TARGET_BOOKING = "booking"
TARGET_RESERVATION = "reservation"
TARGET_ORDER = "order"
TARGET_NONE = "none"

_TARGET_MODELS = {
    TARGET_BOOKING: models.RoomBooking,
    TARGET_RESERVATION: models.TableReservation,
    TARGET_ORDER: models.FoodOrder,
}

_TARGET_COLUMNS = {
    TARGET_BOOKING: "booking_id",
    TARGET_RESERVATION: "reservation_id",
    TARGET_ORDER: "order_id",
}

WEBHOOK_EVENTS = ("payment_intent.succeeded", "payment_intent.payment_failed")


@dataclass(frozen=True)
class PaymentTarget:
    """За что платим: ровно одна бронь номера, бронь стола, заказ или ничего."""
    kind: str = TARGET_NONE
    id: Optional[int] = None

    @classmethod
    def from_ids(cls, booking_id: Optional[int] = None, reservation_id: Optional[int] = None,
                 order_id: Optional[int] = None) -> "PaymentTarget":
        supplied = [
            (kind, value)
            for kind, value in ((TARGET_BOOKING, booking_id), (TARGET_RESERVATION, reservation_id),
                                (TARGET_ORDER, order_id))
            if value is not None
        ]
        if len(supplied) > 1:
            raise ValidationFailed("A payment can be linked to only one booking, reservation or order")
        if not supplied:
            return cls()
        kind, value = supplied[0]
        return cls(kind=kind, id=value)

    @classmethod
    def of(cls, payment: models.Payment) -> "PaymentTarget":
        return cls.from_ids(payment.booking_id, payment.reservation_id, payment.order_id)

    def columns(self) -> Dict[str, Optional[int]]:
        values = {column: None for column in _TARGET_COLUMNS.values()}
        if self.kind != TARGET_NONE:
            values[_TARGET_COLUMNS[self.kind]] = self.id
        return values

    def load(self, db: Session):
        if self.kind == TARGET_NONE:
            return None
        model = _TARGET_MODELS[self.kind]
        return db.query(model).filter(model.id == self.id).first()


def payment_to_dict(payment: models.Payment) -> dict:
    target = PaymentTarget.of(payment)
    return {
        "id": payment.id,
        "bookingId": payment.booking_id,
        "reservationId": payment.reservation_id,
        "orderId": payment.order_id,
        "target": {"kind": target.kind, "id": target.id},
        "userId": payment.user_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "paymentIntentId": payment.payment_intent_id,
        "createdAt": payment.created_at,
        "updatedAt": payment.updated_at,
    }


def create_payment_intent(db: Session, gateway: StripeGateway, identity: Optional[Identity],
                          amount: Optional[float], currency: str, target: PaymentTarget,
                          metadata: Optional[Dict[str, Any]] = None) -> Tuple[models.Payment, PaymentIntent]:
    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise ValidationFailed("Valid amount is required")

    record = target.load(db)
    if target.kind != TARGET_NONE and record is None:
        raise NotFound(f"{target.kind.capitalize()} not found")

    owner_id = record.user_id if record is not None else None
    if owner_id is not None and (identity is None or not identity.can_access(owner_id)):
        raise Forbidden("Access denied")
    if owner_id is None and identity is not None:
        owner_id = identity.user_id
    # Бронь номера и заказ оплачиваются ровно на свою сумму
    if target.kind in (TARGET_BOOKING, TARGET_ORDER) and pricing.round_money(amount) != record.total_amount:
        raise ValidationFailed(f"Amount does not match {target.kind} total")

    payment = models.Payment(
        user_id=owner_id,
        amount=pricing.round_money(amount),
        currency=currency,
        status="pending",
        **target.columns(),
    )

    try:
        db.add(payment)
        db.flush()

        intent_metadata = {str(k): "" if v is None else str(v) for k, v in (metadata or {}).items()}
        intent_metadata.update({
            "paymentId": str(payment.id),
            "userId": str(owner_id or ""),
            "bookingId": str(payment.booking_id or ""),
            "reservationId": str(payment.reservation_id or ""),
            "orderId": str(payment.order_id or ""),
        })
        intent = gateway.create_intent(pricing.to_minor_units(payment.amount), currency, intent_metadata)
        payment.payment_intent_id = intent.id
    except Exception:
        db.rollback()
        raise

    try:
        db.commit()
    except Exception:
        db.rollback()
        # Локально платеж не сохранился: отменяем intent, чтобы по нему нельзя было заплатить
        logger.error(f"Could not store payment for intent {intent.id}, cancelling the intent")
        try:
            gateway.cancel_intent(intent.id)
        except ServiceError as e:
            logger.error(f"Failed to cancel orphaned payment intent {intent.id}: {e.message}")
        raise

    db.refresh(payment)
    logger.info(f"Payment #{payment.id} created ({payment.amount} {payment.currency}), intent {intent.id}")
    return payment, intent


def _apply_success(db: Session, payment: models.Payment) -> None:
    target = PaymentTarget.of(payment)
    record = target.load(db)
    if record is None:
        return
    if target.kind == TARGET_BOOKING:
        booking_service.confirm_paid_booking(record)
    elif target.kind == TARGET_RESERVATION:
        reservation_service.confirm_paid_reservation(record)


def confirm_payment(db: Session, gateway: StripeGateway, payment_intent_id: Optional[str],
                    payment_id: Optional[int] = None) -> Tuple[models.Payment, bool]:
    """Возвращает (платеж, прошла ли оплата)."""
    if not payment_intent_id:
        raise ValidationFailed("Payment intent ID is required")

    payment = db.query(models.Payment).filter(models.Payment.payment_intent_id == payment_intent_id).first()
    if not payment:
        raise NotFound("Payment not found")
    if payment_id is not None and payment.id != payment_id:
        raise ValidationFailed("Payment does not match the payment intent")

    # Если процессор недоступен, GatewayError уходит наверх и в базе ничего не меняется
    intent = gateway.retrieve_intent(payment_intent_id)

    try:
        if intent.succeeded:
            payment.status = "completed"
            _apply_success(db, payment)
        else:
            payment.status = "failed"
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    logger.info(f"Payment #{payment.id} intent {intent.id} is {intent.status}: payment {payment.status}")
    return payment, intent.succeeded


def handle_webhook_event(db: Session, gateway: StripeGateway, payload: bytes,
                         signature: Optional[str]) -> Dict[str, Any]:
    verify_webhook_signature(payload, signature, os.getenv("STRIPE_WEBHOOK_SECRET", ""))

    try:
        event = json.loads(payload)
        event_type = event.get("type")
        intent_id = event.get("data", {}).get("object", {}).get("id")
    except (ValueError, AttributeError):
        raise ValidationFailed("Malformed webhook payload")

    if event_type not in WEBHOOK_EVENTS or not intent_id:
        return {"received": True, "handled": False}

    try:
        payment, _ = confirm_payment(db, gateway, intent_id)
    except NotFound:
        logger.warning(f"Webhook {event_type} for unknown payment intent {intent_id}")
        return {"received": True, "handled": False}

    return {"received": True, "handled": True, "paymentId": payment.id, "status": payment.status}


def list_payments(db: Session, identity: Identity, status: Optional[str] = None):
    query = db.query(models.Payment)
    if not identity.is_staff:
        query = query.filter(models.Payment.user_id == identity.user_id)
    if status:
        query = query.filter(models.Payment.status == status)
    return query.order_by(models.Payment.created_at.desc(), models.Payment.id.desc()).all()


def get_payment(db: Session, identity: Identity, payment_id: int) -> models.Payment:
    payment = db.query(models.Payment).filter(models.Payment.id == payment_id).first()
    if not payment:
        raise NotFound("Payment not found")
    if not identity.can_access(payment.user_id):
        raise Forbidden("Access denied")
    return payment
