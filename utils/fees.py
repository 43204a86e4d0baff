from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid amount: {value!r}")


def compute_remaining_due(total_fee: Any, paid_amount: Any) -> Decimal:
    """Balance left on a receipt, never negative."""
    return max(ZERO, to_decimal(total_fee) - to_decimal(paid_amount))


def has_fee_structure(student: Any) -> bool:
    return student is not None and getattr(student, "final_fee_amount", None) is not None


def effective_fee(student: Any, class_fee: Any = 0) -> Decimal:
    """Amount the student is billed: negotiated fee if present, else the class fee."""
    if has_fee_structure(student):
        return to_decimal(student.final_fee_amount)
    return to_decimal(class_fee)


def discount_info(student: Any, class_fee: Any = 0) -> Dict[str, Any]:
    class_fee = to_decimal(class_fee)
    if not has_fee_structure(student):
        return {
            "has_discount": False,
            "discount_amount": 0.0,
            "discount_percentage": 0.0,
            "final_fee": float(class_fee),
            "standard_fee": float(class_fee),
        }

    final_fee = to_decimal(student.final_fee_amount)
    standard_fee = to_decimal(getattr(student, "standard_fee_amount", None)) or class_fee
    discount = standard_fee - final_fee
    percentage = float(discount / standard_fee * 100) if standard_fee > 0 else 0.0
    return {
        "has_discount": discount > 0,
        "discount_amount": float(discount),
        "discount_percentage": round(percentage, 2),
        "final_fee": float(final_fee),
        "standard_fee": float(standard_fee),
    }


def apply_negotiated_fee(student: Any, class_fee: Any = 0) -> None:
    """Fill the derived fee columns of a student from its final fee.

    Clearing ``final_fee_amount`` clears the derived columns so the student is
    billed at the class's standard fee again.
    """
    if not has_fee_structure(student):
        student.final_fee_amount = None
        student.standard_fee_amount = None
        student.discount_amount = None
        student.discount_percentage = None
        return
    info = discount_info(student, class_fee)
    student.final_fee_amount = to_decimal(info["final_fee"])
    student.standard_fee_amount = to_decimal(info["standard_fee"])
    student.discount_amount = to_decimal(info["discount_amount"])
    student.discount_percentage = to_decimal(info["discount_percentage"])
