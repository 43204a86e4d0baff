from datetime import date
from types import SimpleNamespace

import pytest

from utils.fee_reminders import (
    URGENCY_GENTLE,
    URGENCY_MODERATE,
    URGENCY_URGENT,
    attach_reminder_info,
    build_overdue_rows,
    build_reminder_message,
    calculate_days_overdue,
    calculate_due_date,
    calculate_next_reminder_date,
    calculate_urgency_level,
    reminders_due_today,
)


@pytest.mark.parametrize("days, level", [
    (0, URGENCY_GENTLE),
    (1, URGENCY_GENTLE),
    (7, URGENCY_GENTLE),
    (8, URGENCY_MODERATE),
    (30, URGENCY_MODERATE),
    (31, URGENCY_URGENT),
    (400, URGENCY_URGENT),
])
def test_urgency_boundaries(days, level):
    assert calculate_urgency_level(days) == level


def test_overdue_scenario_mid_february():
    today = date(2025, 2, 15)
    assert calculate_due_date("2025-01-01", 30) == date(2025, 1, 31)
    days = calculate_days_overdue("2025-01-01", 30, today)
    assert days == 15
    assert calculate_urgency_level(days) == URGENCY_MODERATE


def test_days_overdue_never_negative():
    assert calculate_days_overdue(date(2025, 2, 1), 30, date(2025, 2, 10)) == 0
    # due exactly today is not overdue yet
    assert calculate_days_overdue(date(2025, 1, 1), 30, date(2025, 1, 31)) == 0


def test_zero_grace_period():
    assert calculate_days_overdue(date(2025, 1, 1), 0, date(2025, 1, 4)) == 3


def test_due_date_rejects_missing_payment_date():
    with pytest.raises(ValueError):
        calculate_due_date(None, 30)


def test_next_reminder_without_history_is_today():
    today = date(2025, 3, 1)
    assert calculate_next_reminder_date(None, 6, today) == today


def test_next_reminder_in_future_keeps_cadence():
    today = date(2025, 3, 1)
    assert calculate_next_reminder_date("2025-02-27", 6, today) == date(2025, 3, 5)


def test_next_reminder_never_in_the_past():
    today = date(2025, 3, 1)
    assert calculate_next_reminder_date("2025-02-01", 6, today) == today
    # last + interval landing on today is due today
    assert calculate_next_reminder_date("2025-02-23", 6, today) == today


def _row(student_id, receipt_id, days, last=None):
    return {
        "student_id": student_id,
        "receipt_id": receipt_id,
        "days_overdue": days,
        "remaining_due": 1000.0,
        "last_reminder_date": last,
    }


def test_attach_reminder_info_sorts_and_classifies():
    today = date(2025, 3, 1)
    rows = attach_reminder_info(
        [_row(1, 10, 5), _row(2, 20, 45, last="2025-02-28"), _row(3, 30, 12)],
        reminders=[],
        interval_days=6,
        today=today,
    )
    assert [r["student_id"] for r in rows] == [2, 3, 1]
    assert rows[0]["urgency_level"] == URGENCY_URGENT
    assert rows[0]["next_reminder_date"] == "2025-03-06"
    assert rows[2]["next_reminder_date"] == "2025-03-01"
    assert [r["student_id"] for r in reminders_due_today(rows, today)] == [3, 1]


def test_message_is_deterministic():
    args = ("Muhammad Ali", 2500, 15, "Computer Science Fundamentals")
    assert build_reminder_message(*args) == build_reminder_message(*args)


def test_message_follows_urgency_template():
    gentle = build_reminder_message("Ali", 1000, 3)
    moderate = build_reminder_message("Ali", 1000, 15, "Web Design")
    urgent = build_reminder_message("Ali", 12500, 45)

    assert gentle.startswith("🎓 *COM-TECH ACADEMY - Fee Reminder*")
    assert "Course:" not in gentle
    assert "📚 *Course:* Web Design" in moderate
    assert "within the next 7 days" in moderate
    assert urgent.startswith("🚨")
    assert "PKR 12,500" in urgent
    assert "45 days" in urgent


def test_message_uses_institution_settings():
    message = build_reminder_message("Ali", 1000, 3, institution="Bright Future", tagline="Learning", currency="KES")
    assert "Bright Future - Learning" in message
    assert "KES 1,000" in message


def _receipt(receipt_id, student, payment_date="2025-01-01", remaining_due=600):
    return SimpleNamespace(
        id=receipt_id,
        receipt_number=f"RCP-20250101-{receipt_id:06d}",
        student=student,
        payment_date=payment_date,
        total_fee=1000,
        paid_amount=1000 - remaining_due,
        remaining_due=remaining_due,
    )


def test_receipts_without_a_student_are_skipped():
    student = SimpleNamespace(
        id=1,
        student_name="Muhammad Ali",
        roll_number="01",
        class_name="9th",
        course=None,
        parent_phone=None,
        parent_email=None,
    )

    rows = build_overdue_rows(
        [_receipt(1, None), _receipt(2, student), _receipt(3, student, payment_date=None)],
        grace_period_days=30,
        today=date(2025, 2, 15),
    )

    assert [r["receipt_id"] for r in rows] == [2]
    assert rows[0]["days_overdue"] == 15
    assert rows[0]["parent_phone"] == ""
