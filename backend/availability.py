"""
Проверка доступности номеров и столов.

Чистые функции (ranges_overlap, booking_conflicts, reservation_conflicts) не
ходят в базу; find_room_conflict / find_table_conflict выбирают активные брони
ресурса и прогоняют их через эти функции. Вызывающий код должен держать
блокировку строки номера/стола (SELECT ... FOR UPDATE) до вставки новой брони.
"""
import logging
import os
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

import models

logger = logging.getLogger("Availability")

CONFLICT_MODE_EXACT = "exact"
CONFLICT_MODE_OVERLAP = "overlap"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def same_day_turnover_allowed() -> bool:
    return _env_flag("ALLOW_SAME_DAY_TURNOVER")


def reservation_conflict_mode() -> str:
    mode = os.getenv("RESERVATION_CONFLICT_MODE", CONFLICT_MODE_EXACT).strip().lower()
    if mode not in (CONFLICT_MODE_EXACT, CONFLICT_MODE_OVERLAP):
        logger.warning(f"Unknown RESERVATION_CONFLICT_MODE={mode!r}, using {CONFLICT_MODE_EXACT!r}")
        return CONFLICT_MODE_EXACT
    return mode


def ranges_overlap(start_a, end_a, start_b, end_b, inclusive: bool = True) -> bool:
    if inclusive:
        return start_a <= end_b and start_b <= end_a
    return start_a < end_b and start_b < end_a


def booking_conflicts(check_in: date, check_out: date, existing: Iterable, inclusive: Optional[bool] = None) -> list:
    """Возвращает активные брони из existing, пересекающиеся с [check_in, check_out]."""
    if inclusive is None:
        inclusive = not same_day_turnover_allowed()
    return [
        booking for booking in existing
        if booking.status not in models.INACTIVE_BOOKING_STATUSES
        and ranges_overlap(booking.check_in, booking.check_out, check_in, check_out, inclusive=inclusive)
    ]


def reservation_window(reservation_date: date, reservation_time: time, duration: int):
    start = datetime.combine(reservation_date, reservation_time)
    return start, start + timedelta(minutes=duration)


def reservation_conflicts(reservation_date: date, reservation_time: time, duration: int,
                          existing: Iterable, mode: Optional[str] = None) -> list:
    if mode is None:
        mode = reservation_conflict_mode()

    active = [r for r in existing if r.status not in models.INACTIVE_RESERVATION_STATUSES]

    if mode == CONFLICT_MODE_EXACT:
        return [
            r for r in active
            if r.reservation_date == reservation_date and r.reservation_time == reservation_time
        ]

    start, end = reservation_window(reservation_date, reservation_time, duration)
    conflicts = []
    for r in active:
        other_start, other_end = reservation_window(r.reservation_date, r.reservation_time, r.duration)
        if ranges_overlap(start, end, other_start, other_end, inclusive=False):
            conflicts.append(r)
    return conflicts


def find_room_conflict(db: Session, room_id: int, check_in: date, check_out: date,
                       exclude_booking_id: Optional[int] = None):
    query = db.query(models.RoomBooking).filter(
        models.RoomBooking.room_id == room_id,
        models.RoomBooking.status.notin_(models.INACTIVE_BOOKING_STATUSES),
        models.RoomBooking.check_in <= check_out,
        models.RoomBooking.check_out >= check_in,
    )
    if exclude_booking_id is not None:
        query = query.filter(models.RoomBooking.id != exclude_booking_id)

    conflicts = booking_conflicts(check_in, check_out, query.all())
    return conflicts[0] if conflicts else None


def find_table_conflict(db: Session, table_id: int, reservation_date: date, reservation_time: time,
                        duration: int):
    # Окно может перейти через полночь, поэтому берем и соседние даты
    candidates = db.query(models.TableReservation).filter(
        models.TableReservation.table_id == table_id,
        models.TableReservation.status.notin_(models.INACTIVE_RESERVATION_STATUSES),
        models.TableReservation.reservation_date.between(
            reservation_date - timedelta(days=1), reservation_date + timedelta(days=1)
        ),
    ).all()

    conflicts = reservation_conflicts(reservation_date, reservation_time, duration, candidates)
    return conflicts[0] if conflicts else None


def is_room_available(db: Session, room: "models.Room", check_in: date, check_out: date) -> bool:
    if room.status != "available":
        return False
    return find_room_conflict(db, room.id, check_in, check_out) is None
