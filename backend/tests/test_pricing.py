from datetime import date, datetime

import pytest

import pricing
from errors import ValidationFailed


def test_three_nights_at_100_cost_300():
    assert pricing.room_booking_total(date(2024, 6, 1), date(2024, 6, 4), 100) == 300.0


def test_partial_day_rounds_up_to_a_full_night():
    check_in = datetime(2024, 6, 1, 14, 0)
    check_out = datetime(2024, 6, 2, 16, 0)
    assert pricing.nights_between(check_in, check_out) == 2


@pytest.mark.parametrize("check_out", [date(2024, 6, 1), date(2024, 5, 30)])
def test_non_positive_stay_is_rejected(check_out):
    with pytest.raises(ValidationFailed) as exc:
        pricing.nights_between(date(2024, 6, 1), check_out)
    assert exc.value.message == "Check-out date must be after check-in date"


def test_mixed_date_and_datetime_are_rejected():
    with pytest.raises(ValidationFailed):
        pricing.nights_between(date(2024, 6, 1), datetime(2024, 6, 3))


def test_totals_are_rounded_to_cents():
    assert pricing.room_booking_total(date(2024, 6, 1), date(2024, 6, 4), 99.999) == 300.0
    assert pricing.order_total([(8.5, 2), (32.0, 1), (0.1, 3)]) == 49.3


def test_order_total_rejects_non_positive_quantity():
    with pytest.raises(ValidationFailed):
        pricing.order_total([(10.0, 0)])


def test_reservation_fee_from_environment(monkeypatch):
    monkeypatch.delenv("RESERVATION_FEE", raising=False)
    assert pricing.reservation_total() == 0.0

    monkeypatch.setenv("RESERVATION_FEE", "15.5")
    assert pricing.reservation_total() == 15.5

    monkeypatch.setenv("RESERVATION_FEE", "-3")
    assert pricing.reservation_total() == 0.0

    assert pricing.reservation_total(fee=7) == 7.0


def test_minor_units():
    assert pricing.to_minor_units(300.0) == 30000
    assert pricing.to_minor_units(19.99) == 1999
