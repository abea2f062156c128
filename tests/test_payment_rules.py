from decimal import Decimal

import pytest

from comanda.core.errors import ValidationError
from comanda.services.payments import derive_payment_status, normalize_payment_method, parse_amount


@pytest.mark.parametrize(
    "paid,total,expected",
    [
        ("0.00", "21.00", "unpaid"),
        ("10.00", "21.00", "partial"),
        ("21.00", "21.00", "paid"),
        ("50.00", "21.00", "paid"),
    ],
)
def test_derive_payment_status(paid, total, expected):
    assert derive_payment_status(Decimal(paid), Decimal(total)) == expected


@pytest.mark.parametrize("raw,expected", [("Cartão", "card"), ("PIX", "pix"), ("dinheiro", "cash"), ("cash", "cash")])
def test_payment_method_aliases(raw, expected):
    assert normalize_payment_method(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "cheque"])
def test_invalid_payment_method(raw):
    with pytest.raises(ValidationError):
        normalize_payment_method(raw)


@pytest.mark.parametrize("raw", ["0", "-1.00", "abc", "1.005", "NaN"])
def test_invalid_amounts(raw):
    with pytest.raises(ValidationError):
        parse_amount(raw)


def test_amount_is_quantized_to_cents():
    assert parse_amount("10") == Decimal("10.00")
    assert parse_amount(Decimal("0.5")) == Decimal("0.50")
