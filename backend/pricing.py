"""
Расчет стоимости: проживание, заказы еды, бронь стола.
"""
import math
import os
from datetime import date, datetime
from typing import Iterable, Tuple, Union

from errors import ValidationFailed

DateLike = Union[date, datetime]

SECONDS_PER_DAY = 24 * 60 * 60


def round_money(value: float) -> float:
    return round(float(value), 2)


def nights_between(check_in: DateLike, check_out: DateLike) -> int:
    """Количество ночей, неполные сутки округляются вверх."""
    if isinstance(check_in, datetime) != isinstance(check_out, datetime):
        raise ValidationFailed("Check-in and check-out must be of the same type")

    delta = check_out - check_in
    nights = math.ceil(delta.total_seconds() / SECONDS_PER_DAY)
    if nights <= 0:
        raise ValidationFailed("Check-out date must be after check-in date")
    return nights


def room_booking_total(check_in: DateLike, check_out: DateLike, price_per_night: float) -> float:
    return round_money(nights_between(check_in, check_out) * price_per_night)


def order_total(lines: Iterable[Tuple[float, int]]) -> float:
    """lines: пары (цена на момент заказа, количество)."""
    total = 0.0
    for price, quantity in lines:
        if quantity <= 0:
            raise ValidationFailed("Quantity must be greater than 0")
        total += price * quantity
    return round_money(total)


def reservation_fee() -> float:
    raw = os.getenv("RESERVATION_FEE", "0")
    try:
        fee = float(raw)
    except ValueError:
        fee = 0.0
    return round_money(max(fee, 0.0))


def reservation_total(fee: float = None) -> float:
    if fee is None:
        fee = reservation_fee()
    return round_money(fee)


def to_minor_units(amount: float) -> int:
    """Сумма в центах для платежного процессора."""
    return int(round(amount * 100))
