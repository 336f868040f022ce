import pytest

from mentorconnect import fees


@pytest.mark.parametrize("amount, expected", [
    (500, (50, 10, 440)),
    (1000, (100, 20, 880)),
    (125, (13, 3, 109)),
    (1, (0, 0, 1)),
])
def test_payment_split(amount, expected):
    split = fees.payment_split(amount)
    assert tuple(split) == expected
    assert sum(split) == amount


@pytest.mark.parametrize("amount, fee", [
    (100, 10),
    (499, 10),
    (500, 10),
    (1000, 20),
    (2000, 40),
])
def test_withdrawal_fee(amount, fee):
    assert fees.withdrawal_fee(amount) == (fee, amount - fee)


def test_session_price_prorates_hourly_rate():
    assert fees.session_price(500, 60) == 500
    assert fees.session_price(500, 30) == 250
    assert fees.session_price(1000, 45) == 750
    assert fees.session_price(700, 50) == 583


def test_round_half_up():
    assert fees.round_half_up(2.5) == 3
    assert fees.round_half_up(2.4999) == 2


def test_to_paise():
    assert fees.to_paise(500) == 50000
