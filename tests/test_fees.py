from decimal import Decimal
from types import SimpleNamespace

import pytest

from utils.fees import (
    apply_negotiated_fee,
    compute_remaining_due,
    discount_info,
    effective_fee,
    has_fee_structure,
    to_decimal,
)
from utils.formatting import format_currency, month_label


def _student(final=None, standard=None):
    return SimpleNamespace(
        final_fee_amount=final,
        standard_fee_amount=standard,
        discount_amount=None,
        discount_percentage=None,
    )


def test_to_decimal_accepts_blank_and_numbers():
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("") == Decimal("0")
    assert to_decimal("1200.50") == Decimal("1200.50")
    assert to_decimal(7) == Decimal("7")


def test_to_decimal_rejects_garbage():
    with pytest.raises(ValueError):
        to_decimal("twelve")


@pytest.mark.parametrize("total, paid, expected", [
    (1000, 900, Decimal("100")),
    (1200, 1200, Decimal("0")),
    (500, 800, Decimal("0")),
    ("0", None, Decimal("0")),
])
def test_remaining_due_is_never_negative(total, paid, expected):
    assert compute_remaining_due(total, paid) == expected


def test_negotiated_discount_scenario():
    info = discount_info(_student(final=8000, standard=10000))
    assert info["has_discount"] is True
    assert info["discount_amount"] == 2000.0
    assert info["discount_percentage"] == 20.0
    assert info["final_fee"] == 8000.0


def test_discount_falls_back_to_class_fee_for_standard():
    info = discount_info(_student(final=9000), class_fee=12000)
    assert info["standard_fee"] == 12000.0
    assert info["discount_percentage"] == 25.0


def test_without_fee_structure_student_pays_class_fee():
    student = _student()
    assert not has_fee_structure(student)
    assert effective_fee(student, 5000) == Decimal("5000")
    info = discount_info(student, 5000)
    assert info["has_discount"] is False
    assert info["discount_amount"] == 0.0


def test_zero_standard_fee_has_zero_percentage():
    info = discount_info(_student(final=0, standard=0))
    assert info["discount_percentage"] == 0.0


def test_apply_negotiated_fee_fills_derived_columns():
    student = _student(final=Decimal("8000"))
    apply_negotiated_fee(student, 10000)
    assert student.standard_fee_amount == Decimal("10000")
    assert student.discount_amount == Decimal("2000")
    assert student.discount_percentage == Decimal("20.0")


def test_apply_negotiated_fee_clears_when_final_fee_removed():
    student = _student(final=None, standard=Decimal("10000"))
    student.discount_amount = Decimal("2000")
    apply_negotiated_fee(student, 10000)
    assert student.standard_fee_amount is None
    assert student.discount_amount is None


def test_format_currency():
    assert format_currency(12500) == "PKR 12,500"
    assert format_currency("999.5") == "PKR 1,000"
    assert format_currency(10.5, "USD") == "USD 10.50"


def test_month_label():
    assert month_label("2025-03") == "Mar 25"
    assert month_label("not-a-month") == "not-a-month"
