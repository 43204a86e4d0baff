from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from extensions import db
from models import FeeReminder
from utils.fee_reminders import (
    generate_reminder_message,
    get_overdue_payments,
    get_reminder_history,
    get_reminder_stats,
    get_students_with_overdue_info,
    mark_reminder_failed,
    mark_reminder_sent,
    schedule_reminder,
    send_reminder,
)
from utils.store import StoreUnavailable
from utils.timezone_helpers import local_today, utc_now

TODAY = date(2025, 2, 15)


def test_remaining_due_recomputed_on_create_and_edit(make_student, make_receipt):
    receipt = make_receipt(make_student(), total_fee=Decimal("1000"), paid_amount=Decimal("900"))
    assert receipt.remaining_due == Decimal("100")

    receipt.paid_amount = Decimal("1500")
    db.session.commit()
    assert receipt.remaining_due == Decimal("0")

    receipt.total_fee = Decimal("2000")
    db.session.commit()
    assert receipt.remaining_due == Decimal("500")


def test_receipt_number_generated(make_student, make_receipt):
    receipt = make_receipt(make_student())
    assert receipt.receipt_number.startswith("RCP-")


def test_overdue_falls_back_to_local_computation(make_student, make_receipt):
    late = make_student(student_name="Late Payer")
    make_receipt(late, payment_date=date(2025, 1, 1))
    make_receipt(make_student(student_name="Paid Up"), payment_date=date(2025, 1, 1), paid_amount=Decimal("10000"))
    make_receipt(make_student(student_name="Recent"), payment_date=date(2025, 2, 1))

    result = get_overdue_payments(30, TODAY)

    assert result.ok
    assert result.source == "local"
    assert [r["student_name"] for r in result.data] == ["Late Payer"]
    assert result.data[0]["days_overdue"] == 15
    assert result.data[0]["remaining_due"] == 6000.0


def test_overdue_set_follows_grace_period(make_student, make_receipt):
    make_receipt(make_student(), payment_date=date(2025, 2, 10))
    assert get_overdue_payments(30, TODAY).data == []
    assert get_overdue_payments(0, TODAY).data[0]["days_overdue"] == 5


def test_negative_grace_period_rejected(app):
    with pytest.raises(ValueError):
        get_overdue_payments(-1, TODAY)


def test_overdue_reports_error_when_store_is_down(app):
    with patch("utils.fee_reminders.store.all", side_effect=StoreUnavailable("down")):
        result = get_overdue_payments(30, TODAY)
    assert not result.ok
    assert result.data == []
    assert "down" in result.error


def test_students_with_overdue_info(make_student, make_receipt):
    student = make_student()
    make_receipt(student, payment_date=date(2024, 12, 1))

    rows = get_students_with_overdue_info(30, 6, TODAY).data

    assert len(rows) == 1
    assert rows[0]["urgency_level"] == "urgent"
    assert rows[0]["reminder_count"] == 0
    assert rows[0]["next_reminder_date"] == TODAY.isoformat()


def test_schedule_reminder_locally(make_student, make_receipt):
    student = make_student(course="Web Design")
    receipt = make_receipt(student)

    reminder = schedule_reminder(student.id, receipt.id, interval_days=6, grace_period_days=30, today=TODAY)

    assert reminder.status == "pending"
    assert reminder.reminder_date == TODAY + timedelta(days=6)
    assert reminder.days_overdue == 15
    assert reminder.due_amount == Decimal("6000")
    assert "Web Design" in reminder.message_template
    assert reminder.message_template.startswith("⚠️")


def test_schedule_reminder_for_unknown_receipt(make_student):
    student = make_student()
    with pytest.raises(LookupError):
        schedule_reminder(student.id, 999, today=TODAY)


def test_mark_sent_via_whatsapp_counts_as_sent_today(make_student, make_receipt):
    student = make_student()
    receipt = make_receipt(student, payment_date=local_today() - timedelta(days=45))
    reminder = schedule_reminder(student.id, receipt.id, interval_days=0)
    assert reminder.sent_at is None

    mark_reminder_sent(reminder.id, "whatsapp")

    assert reminder.status == "sent"
    assert reminder.sent_via == "whatsapp"
    assert reminder.sent_at is not None
    stats = get_reminder_stats().data
    assert stats["sent_today"] == 1
    assert stats["pending_reminders"] == 0
    assert stats["total_overdue"] == 1
    assert stats["total_overdue_amount"] == 6000.0


def test_sent_yesterday_is_not_sent_today(make_student, make_receipt):
    student = make_student()
    receipt = make_receipt(student, payment_date=local_today() - timedelta(days=45))
    reminder = schedule_reminder(student.id, receipt.id, interval_days=0)
    mark_reminder_sent(reminder.id, "sms", now=utc_now() - timedelta(days=2))

    assert get_reminder_stats().data["sent_today"] == 0


def test_total_overdue_counts_students_not_receipts(make_student, make_receipt):
    student = make_student()
    make_receipt(student, payment_date=date(2025, 1, 1))
    make_receipt(student, payment_date=date(2024, 12, 1))

    stats = get_reminder_stats(30, TODAY).data

    assert stats["total_overdue"] == 1
    assert stats["total_overdue_amount"] == 12000.0


def test_only_pending_reminders_can_be_marked(make_student, make_receipt):
    student = make_student()
    receipt = make_receipt(student)
    reminder = schedule_reminder(student.id, receipt.id, today=TODAY)
    mark_reminder_failed(reminder.id, "number unreachable")

    assert reminder.status == "failed"
    with pytest.raises(ValueError):
        mark_reminder_sent(reminder.id, "email")
    with pytest.raises(LookupError):
        mark_reminder_sent(12345, "email")


def test_unknown_channel_rejected(make_student, make_receipt):
    student = make_student()
    receipt = make_receipt(student)
    reminder = schedule_reminder(student.id, receipt.id, today=TODAY)
    with pytest.raises(ValueError):
        mark_reminder_sent(reminder.id, "pigeon")


def test_send_reminder_reuses_due_pending_reminder(make_student, make_receipt):
    student = make_student()
    receipt = make_receipt(student)
    pending = schedule_reminder(student.id, receipt.id, interval_days=0, today=TODAY)

    sent = send_reminder(student.id, receipt.id, "whatsapp", today=TODAY)

    assert sent.id == pending.id
    assert sent.notes == "Sent via whatsapp"
    assert FeeReminder.query.count() == 1


def test_send_reminder_creates_one_when_none_due(make_student, make_receipt):
    student = make_student()
    receipt = make_receipt(student)
    schedule_reminder(student.id, receipt.id, interval_days=6, today=TODAY)

    sent = send_reminder(student.id, receipt.id, "email", today=TODAY)

    assert sent.status == "sent"
    assert sent.reminder_date == TODAY
    history = get_reminder_history(student_id=student.id)
    assert len(history) == 2
    assert {r.status for r in history} == {"pending", "sent"}


def test_sent_reminder_pushes_next_date(make_student, make_receipt):
    student = make_student()
    receipt = make_receipt(student, payment_date=local_today() - timedelta(days=40))
    send_reminder(student.id, receipt.id, "whatsapp")

    row = get_students_with_overdue_info(30, 6).data[0]

    assert row["last_reminder_date"] == local_today().isoformat()
    assert row["next_reminder_date"] == (local_today() + timedelta(days=6)).isoformat()
    assert row["reminder_count"] == 1


def test_generate_message_falls_back_to_local_template(app):
    first = generate_reminder_message("Fatima Khan", 1200, 9, "Advanced Computer Science")
    second = generate_reminder_message("Fatima Khan", 1200, 9, "Advanced Computer Science")
    assert first == second
    assert "Fatima Khan" in first
    assert "PKR 1,200" in first


def test_overdue_uses_database_function_rows(app):
    rows = [
        {
            "student_id": 1,
            "student_name": "Muhammad Ali",
            "receipt_id": 10,
            "payment_date": date(2025, 1, 1),
            "total_fee": Decimal("10000.00"),
            "paid_amount": "4000.00",
            "remaining_due": Decimal("6000.00"),
            "days_overdue": "15",
            "last_reminder_date": None,
            "parent_phone": None,
        },
        {
            "student_id": 2,
            "student_name": "Due Today",
            "receipt_id": 11,
            "payment_date": "2025-01-16",
            "total_fee": 500,
            "paid_amount": 0,
            "remaining_due": 500,
            "days_overdue": 0,
        },
    ]

    with patch("utils.store.store.rpc", return_value=rows) as rpc:
        result = get_overdue_payments(30, TODAY)

    rpc.assert_called_once_with("get_overdue_payments", grace_period_days=30)
    assert result.source == "remote"
    assert [r["student_name"] for r in result.data] == ["Muhammad Ali"]
    row = result.data[0]
    assert row["days_overdue"] == 15
    assert row["paid_amount"] == 4000.0
    assert row["remaining_due"] == 6000.0
    assert row["payment_date"] == "2025-01-01"
    assert row["parent_phone"] == ""
    assert row["parent_email"] == ""


def test_schedule_reminder_uses_database_function(make_student, make_receipt):
    receipt = make_receipt(make_student())
    existing = FeeReminder(
        student_id=receipt.student_id,
        receipt_id=receipt.id,
        reminder_date=TODAY,
        due_amount=receipt.remaining_due,
    )
    db.session.add(existing)
    db.session.commit()

    with patch("utils.store.store.rpc", return_value=[{"schedule_next_reminder": existing.id}]) as rpc:
        reminder = schedule_reminder(receipt.student_id, receipt.id, interval_days=3)

    rpc.assert_called_once_with(
        "schedule_next_reminder",
        student_id_param=receipt.student_id,
        receipt_id_param=receipt.id,
        interval_days=3,
    )
    assert reminder.id == existing.id
    assert FeeReminder.query.count() == 1


def test_schedule_reminder_falls_back_when_function_returns_nothing(make_student, make_receipt):
    receipt = make_receipt(make_student(), payment_date=date(2025, 1, 1))

    with patch("utils.store.store.rpc", return_value=[]):
        reminder = schedule_reminder(receipt.student_id, receipt.id, interval_days=3, today=TODAY)

    assert reminder.reminder_date == date(2025, 2, 18)
    assert reminder.days_overdue == 15
