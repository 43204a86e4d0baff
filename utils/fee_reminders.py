"""Overdue payment tracking and fee reminders.

Everything in here is computation over rows already fetched from the record
store. Each fetch first tries the optional database function and, when the
deployment does not have it, recomputes the same answer from raw receipts.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app, has_app_context

from models import REMINDER_CHANNELS, FeeReceipt, FeeReminder
from utils.fallback import FetchResult, with_fallback
from utils.fees import to_decimal
from utils.formatting import format_currency
from utils.store import FeatureUnavailable, RecordNotFound, StoreUnavailable, store
from utils.timezone_helpers import (
    local_day_bounds,
    local_today,
    parse_date,
    to_local_date,
    utc_now,
)

URGENCY_GENTLE = "gentle"
URGENCY_MODERATE = "moderate"
URGENCY_URGENT = "urgent"

DEFAULT_GRACE_PERIOD_DAYS = 30
DEFAULT_INTERVAL_DAYS = 6

EMPTY_STATS = {
    "total_overdue": 0,
    "total_overdue_amount": 0.0,
    "pending_reminders": 0,
    "sent_today": 0,
}

GENTLE_TEMPLATE = """🎓 *{institution} - Fee Reminder*

Dear {name},

This is a friendly reminder that your course fee payment is pending.

💰 *Outstanding Amount:* {amount}
📅 *Days Overdue:* {days} days
{course_line}
Please make your payment at your earliest convenience to continue your studies without interruption.

Thank you for your attention to this matter.

*{institution} - {tagline}*
For payment assistance, please contact us."""

MODERATE_TEMPLATE = """⚠️ *{institution} - Payment Reminder*

Dear {name},

Your course fee payment is now overdue and requires immediate attention.

💰 *Outstanding Amount:* {amount}
📅 *Days Overdue:* {days} days
{course_line}
Please settle your outstanding balance to avoid any disruption to your studies.

*Payment is required within the next 7 days.*

*{institution} - {tagline}*
Contact us immediately for payment arrangements."""

URGENT_TEMPLATE = """🚨 *{institution} - URGENT Payment Notice*

Dear {name},

Your course fee payment is significantly overdue and requires IMMEDIATE action.

💰 *Outstanding Amount:* {amount}
📅 *Days Overdue:* {days} days
{course_line}
⚠️ *IMPORTANT:* Your enrollment may be suspended if payment is not received within 3 days.

Please contact us IMMEDIATELY to resolve this matter.

*{institution} - {tagline}*
URGENT: Call us now for immediate assistance."""

TEMPLATES = {
    URGENCY_GENTLE: GENTLE_TEMPLATE,
    URGENCY_MODERATE: MODERATE_TEMPLATE,
    URGENCY_URGENT: URGENT_TEMPLATE,
}


# --------------------------
# Pure date arithmetic
# --------------------------
def calculate_urgency_level(days_overdue: int) -> str:
    if days_overdue <= 7:
        return URGENCY_GENTLE
    if days_overdue <= 30:
        return URGENCY_MODERATE
    return URGENCY_URGENT


def calculate_due_date(payment_date: Any, grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS) -> date:
    paid_on = parse_date(payment_date)
    if paid_on is None:
        raise ValueError(f"Invalid payment date: {payment_date!r}")
    return paid_on + timedelta(days=grace_period_days)


def calculate_days_overdue(
    payment_date: Any,
    grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS,
    today: Optional[date] = None,
) -> int:
    today = today or local_today()
    return max(0, (today - calculate_due_date(payment_date, grace_period_days)).days)


def calculate_next_reminder_date(
    last_reminder_date: Any,
    interval_days: int = DEFAULT_INTERVAL_DAYS,
    today: Optional[date] = None,
) -> date:
    """Next day a reminder may go out for the same balance.

    No history, or a next date that is already today or past, means the
    reminder is due today; missed reminders are never queued up.
    """
    today = today or local_today()
    last = parse_date(last_reminder_date)
    if last is None:
        return today
    next_date = last + timedelta(days=interval_days)
    return next_date if next_date > today else today


# --------------------------
# Overdue listing
# --------------------------
def overdue_row(receipt, days_overdue: int, last_reminder_date: Any = None) -> Dict[str, Any]:
    student = receipt.student
    return {
        "student_id": student.id,
        "student_name": student.student_name,
        "roll_number": student.roll_number,
        "class": student.class_name,
        "course": student.course,
        "parent_phone": student.parent_phone or "",
        "parent_email": student.parent_email or "",
        "receipt_id": receipt.id,
        "receipt_number": receipt.receipt_number,
        "payment_date": parse_date(receipt.payment_date).isoformat(),
        "total_fee": float(to_decimal(receipt.total_fee)),
        "paid_amount": float(to_decimal(receipt.paid_amount)),
        "remaining_due": float(to_decimal(receipt.remaining_due)),
        "days_overdue": days_overdue,
        "last_reminder_date": _iso(last_reminder_date),
    }


def build_overdue_rows(
    receipts: Iterable[Any],
    grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Local equivalent of the ``get_overdue_payments`` database function."""
    today = today or local_today()
    rows = []
    for receipt in receipts:
        if to_decimal(receipt.remaining_due) <= 0:
            continue
        if getattr(receipt, "student", None) is None:
            _log_warning("Skipping receipt %s without a student", getattr(receipt, "id", "?"))
            continue
        if parse_date(receipt.payment_date) is None:
            _log_warning("Skipping receipt %s without a payment date", getattr(receipt, "id", "?"))
            continue
        days = calculate_days_overdue(receipt.payment_date, grace_period_days, today)
        if days > 0:
            rows.append(overdue_row(receipt, days))
    return rows


def normalize_overdue_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce a row returned by the database function into the local row shape."""
    data = dict(row)
    for key in ("total_fee", "paid_amount", "remaining_due"):
        data[key] = float(to_decimal(data.get(key)))
    data["days_overdue"] = int(data.get("days_overdue") or 0)
    data["payment_date"] = _iso(data.get("payment_date"))
    data["last_reminder_date"] = _iso(data.get("last_reminder_date"))
    data["parent_phone"] = data.get("parent_phone") or ""
    data["parent_email"] = data.get("parent_email") or ""
    return data


def get_overdue_payments(
    grace_period_days: Optional[int] = None,
    today: Optional[date] = None,
) -> FetchResult:
    grace = _grace_period(grace_period_days)
    today = today or local_today()

    def remote():
        rows = store.rpc("get_overdue_payments", grace_period_days=grace)
        return [r for r in map(normalize_overdue_row, rows) if r["days_overdue"] > 0]

    def local():
        cutoff = today - timedelta(days=grace)
        receipts = store.all(
            "fee_receipts",
            FeeReceipt.remaining_due > 0,
            FeeReceipt.payment_date < cutoff,
        )
        return build_overdue_rows(receipts, grace, today)

    return with_fallback(remote, local, default=[], label="overdue payments")


# --------------------------
# Reminder history and cadence
# --------------------------
def get_reminder_history(student_id: Any = None, receipt_id: Any = None) -> List[FeeReminder]:
    filters = {}
    if student_id is not None:
        filters["student_id"] = student_id
    if receipt_id is not None:
        filters["receipt_id"] = receipt_id
    return store.all("fee_reminders", order_by=FeeReminder.created_at.desc(), **filters)


def last_sent_reminder_date(history: Iterable[Any]) -> Optional[date]:
    sent_dates = [
        to_local_date(r.sent_at) or parse_date(r.reminder_date)
        for r in history
        if r.status == "sent"
    ]
    sent_dates = [d for d in sent_dates if d is not None]
    return max(sent_dates) if sent_dates else None


def attach_reminder_info(
    overdue_rows: Iterable[Dict[str, Any]],
    reminders: Iterable[Any],
    interval_days: int = DEFAULT_INTERVAL_DAYS,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    today = today or local_today()
    by_pair = defaultdict(list)
    for reminder in reminders:
        by_pair[(str(reminder.student_id), str(reminder.receipt_id))].append(reminder)

    rows = []
    for payment in overdue_rows:
        history = by_pair[(str(payment["student_id"]), str(payment["receipt_id"]))]
        last = parse_date(payment.get("last_reminder_date")) or last_sent_reminder_date(history)
        rows.append({
            **payment,
            "last_reminder_date": _iso(last),
            "next_reminder_date": calculate_next_reminder_date(last, interval_days, today).isoformat(),
            "reminder_count": len(history),
            "urgency_level": calculate_urgency_level(payment["days_overdue"]),
        })
    rows.sort(key=lambda r: r["days_overdue"], reverse=True)
    return rows


def get_students_with_overdue_info(
    grace_period_days: Optional[int] = None,
    interval_days: Optional[int] = None,
    today: Optional[date] = None,
) -> FetchResult:
    today = today or local_today()
    overdue = get_overdue_payments(grace_period_days, today)
    if not overdue.ok:
        return overdue
    rows = attach_reminder_info(overdue.data, _reminders_or_empty(), _interval(interval_days), today)
    return FetchResult(rows, source=overdue.source)


def reminders_due_today(rows: Iterable[Dict[str, Any]], today: Optional[date] = None) -> List[Dict[str, Any]]:
    today = (today or local_today()).isoformat()
    return [r for r in rows if r.get("next_reminder_date") == today]


# --------------------------
# Messages
# --------------------------
def build_reminder_message(
    student_name: str,
    remaining_due: Any,
    days_overdue: int,
    course: Optional[str] = None,
    institution: str = "COM-TECH ACADEMY",
    tagline: str = "Digital Skills",
    currency: str = "PKR",
) -> str:
    template = TEMPLATES[calculate_urgency_level(days_overdue)]
    return template.format(
        institution=institution,
        tagline=tagline,
        name=student_name,
        amount=format_currency(remaining_due, currency),
        days=days_overdue,
        course_line=f"📚 *Course:* {course}\n" if course else "",
    )


def generate_reminder_message(
    student_name: str,
    remaining_due: Any,
    days_overdue: int,
    course: Optional[str] = None,
) -> str:
    settings = message_settings()

    def remote():
        rows = store.rpc(
            "generate_reminder_message",
            student_name_param=student_name,
            remaining_due_param=float(to_decimal(remaining_due)),
            days_overdue_param=int(days_overdue),
            course_param=course or None,
        )
        message = _scalar(rows)
        if not message:
            raise FeatureUnavailable("generate_reminder_message returned nothing")
        return str(message)

    def local():
        return build_reminder_message(student_name, remaining_due, days_overdue, course, **settings)

    result = with_fallback(remote, local, label="reminder message")
    return result.data if result.ok else local()


def message_settings() -> Dict[str, str]:
    cfg = current_app.config
    return {
        "institution": cfg.get("INSTITUTION_NAME", "COM-TECH ACADEMY"),
        "tagline": cfg.get("INSTITUTION_TAGLINE", "Digital Skills"),
        "currency": cfg.get("CURRENCY", "PKR"),
    }


# --------------------------
# Scheduling and dispatch
# --------------------------
def schedule_reminder(
    student_id: Any,
    receipt_id: Any,
    interval_days: Optional[int] = None,
    grace_period_days: Optional[int] = None,
    today: Optional[date] = None,
) -> FeeReminder:
    interval = _interval(interval_days)
    try:
        rows = store.rpc(
            "schedule_next_reminder",
            student_id_param=student_id,
            receipt_id_param=receipt_id,
            interval_days=interval,
        )
        reminder_id = _scalar(rows)
        if reminder_id is None:
            raise FeatureUnavailable("schedule_next_reminder returned no id")
        store.commit("schedule reminder")
        reminder = store.get("fee_reminders", reminder_id)
        if reminder is not None:
            return reminder
        raise FeatureUnavailable(f"scheduled reminder {reminder_id} not found")
    except (FeatureUnavailable, StoreUnavailable) as e:
        current_app.logger.warning("schedule reminder: precomputed path unavailable (%s); scheduling locally", e)
    return schedule_reminder_locally(student_id, receipt_id, interval, grace_period_days, today)


def schedule_reminder_locally(
    student_id: Any,
    receipt_id: Any,
    interval_days: int = DEFAULT_INTERVAL_DAYS,
    grace_period_days: Optional[int] = None,
    today: Optional[date] = None,
) -> FeeReminder:
    today = today or local_today()
    receipt = store.first("fee_receipts", id=receipt_id, student_id=student_id)
    if receipt is None or receipt.student is None:
        raise RecordNotFound(f"Receipt {receipt_id} not found for student {student_id}")

    days = calculate_days_overdue(receipt.payment_date, _grace_period(grace_period_days), today)
    message = build_reminder_message(
        receipt.student.student_name,
        receipt.remaining_due,
        days,
        receipt.student.course,
        **message_settings(),
    )
    return store.insert(
        "fee_reminders",
        student_id=receipt.student_id,
        receipt_id=receipt.id,
        reminder_type="overdue_payment",
        reminder_date=today + timedelta(days=interval_days),
        due_amount=receipt.remaining_due,
        days_overdue=days,
        message_template=message,
        status="pending",
    )


def mark_reminder_sent(
    reminder_id: Any,
    sent_via: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FeeReminder:
    if sent_via not in REMINDER_CHANNELS:
        raise ValueError(f"Unsupported channel: {sent_via}")
    reminder = _pending_reminder(reminder_id)
    return store.update(
        reminder,
        status="sent",
        sent_at=now or utc_now(),
        sent_via=sent_via,
        notes=notes or None,
    )


def mark_reminder_failed(reminder_id: Any, notes: Optional[str] = None) -> FeeReminder:
    reminder = _pending_reminder(reminder_id)
    return store.update(reminder, status="failed", notes=notes or None)


def send_reminder(
    student_id: Any,
    receipt_id: Any,
    sent_via: str,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> FeeReminder:
    """Record that a reminder went out now.

    Reuses a pending reminder already due for the pair, otherwise schedules an
    immediate one, then marks it sent. Delivery over the channel itself is the
    caller's business.
    """
    if sent_via not in REMINDER_CHANNELS:
        raise ValueError(f"Unsupported channel: {sent_via}")
    today = today or local_today()
    reminder = pending_reminder_for(student_id, receipt_id, today)
    if reminder is None:
        reminder = schedule_reminder(student_id, receipt_id, interval_days=0, today=today)
    return mark_reminder_sent(reminder.id, sent_via, notes or f"Sent via {sent_via}")


def pending_reminder_for(student_id: Any, receipt_id: Any, today: Optional[date] = None) -> Optional[FeeReminder]:
    """Latest pending reminder for the pair that is already due."""
    return store.first(
        "fee_reminders",
        FeeReminder.reminder_date <= (today or local_today()),
        order_by=FeeReminder.reminder_date.desc(),
        student_id=student_id,
        receipt_id=receipt_id,
        status="pending",
    )


# --------------------------
# Statistics
# --------------------------
def compute_reminder_stats(
    overdue_rows: Iterable[Dict[str, Any]],
    reminders: Iterable[Any],
    day_start: datetime,
    day_end: datetime,
) -> Dict[str, Any]:
    overdue_rows = list(overdue_rows)
    reminders = list(reminders)
    return {
        "total_overdue": len({str(r["student_id"]) for r in overdue_rows}),
        "total_overdue_amount": float(sum(to_decimal(r["remaining_due"]) for r in overdue_rows)),
        "pending_reminders": sum(1 for r in reminders if r.status == "pending"),
        "sent_today": sum(
            1
            for r in reminders
            if r.status == "sent" and r.sent_at is not None and day_start <= r.sent_at < day_end
        ),
    }


def get_reminder_stats(
    grace_period_days: Optional[int] = None,
    today: Optional[date] = None,
) -> FetchResult:
    today = today or local_today()
    overdue = get_overdue_payments(grace_period_days, today)
    if not overdue.ok:
        return FetchResult(dict(EMPTY_STATS), error=overdue.error, source=overdue.source)
    day_start, day_end = local_day_bounds(today)
    stats = compute_reminder_stats(overdue.data, _reminders_or_empty(), day_start, day_end)
    return FetchResult(stats, source=overdue.source)


# --------------------------
# Helpers
# --------------------------
def _pending_reminder(reminder_id: Any) -> FeeReminder:
    reminder = store.get("fee_reminders", reminder_id)
    if reminder is None:
        raise RecordNotFound(f"Reminder {reminder_id} not found")
    if reminder.status != "pending":
        raise ValueError(f"Reminder {reminder_id} is already {reminder.status}")
    return reminder


def _reminders_or_empty() -> List[FeeReminder]:
    try:
        return store.all("fee_reminders")
    except StoreUnavailable as e:
        current_app.logger.warning("fee_reminders not available, counting no reminders: %s", e)
        return []


def _grace_period(value: Optional[int]) -> int:
    if value is None:
        value = current_app.config.get("GRACE_PERIOD_DAYS", DEFAULT_GRACE_PERIOD_DAYS)
    value = int(value)
    if value < 0:
        raise ValueError("Grace period cannot be negative")
    return value


def _interval(value: Optional[int]) -> int:
    if value is None:
        value = current_app.config.get("REMINDER_INTERVAL_DAYS", DEFAULT_INTERVAL_DAYS)
    value = int(value)
    if value < 0:
        raise ValueError("Reminder interval cannot be negative")
    return value


def _scalar(rows: List[Dict[str, Any]]):
    if not rows:
        return None
    values = list(rows[0].values())
    return values[0] if values else None


def _iso(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def _log_warning(message: str, *args) -> None:
    if has_app_context():
        current_app.logger.warning(message, *args)
