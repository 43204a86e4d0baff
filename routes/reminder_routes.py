from flask import Blueprint, current_app, jsonify, request

from extensions import limiter
from models import REMINDER_CHANNELS
from utils.fee_reminders import (
    EMPTY_STATS,
    calculate_urgency_level,
    generate_reminder_message,
    get_reminder_history,
    get_reminder_stats,
    get_students_with_overdue_info,
    mark_reminder_failed,
    mark_reminder_sent,
    reminders_due_today,
    schedule_reminder,
    send_reminder,
)

reminder_bp = Blueprint('reminders', __name__, url_prefix='/reminders')


def _send_limit():
    return current_app.config.get("REMINDER_SEND_LIMIT", "30 per minute")


def _optional_int(name):
    value = request.args.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer")


def _require(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")


@reminder_bp.route('/overdue')
def overdue():
    result = get_students_with_overdue_info(
        grace_period_days=_optional_int('grace_period_days'),
        interval_days=_optional_int('interval_days'),
    )
    rows = result.data or []
    urgency = request.args.get('urgency')
    if urgency:
        rows = [r for r in rows if r["urgency_level"] == urgency]
    if request.args.get('due_today') in ('1', 'true'):
        rows = reminders_due_today(rows)
    return jsonify({"overdue": rows, "count": len(rows), "source": result.source, "error": result.error})


@reminder_bp.route('/stats')
def stats():
    result = get_reminder_stats(grace_period_days=_optional_int('grace_period_days'))
    return jsonify({**(result.data or EMPTY_STATS), "source": result.source, "error": result.error})


@reminder_bp.route('/history')
def history():
    reminders = get_reminder_history(
        student_id=request.args.get('student_id', type=int),
        receipt_id=request.args.get('receipt_id', type=int),
    )
    return jsonify({"reminders": [r.to_dict() for r in reminders], "count": len(reminders)})


@reminder_bp.route('/message', methods=['POST'])
def preview_message():
    data = request.get_json(silent=True) or {}
    _require(data, 'student_name', 'remaining_due', 'days_overdue')
    days = int(data['days_overdue'])
    message = generate_reminder_message(
        data['student_name'],
        data['remaining_due'],
        days,
        data.get('course'),
    )
    return jsonify({"message": message, "urgency_level": calculate_urgency_level(days)})


@reminder_bp.route('/schedule', methods=['POST'])
@limiter.limit(_send_limit)
def schedule():
    data = request.get_json(silent=True) or {}
    _require(data, 'student_id', 'receipt_id')
    reminder = schedule_reminder(
        data['student_id'],
        data['receipt_id'],
        interval_days=data.get('interval_days'),
    )
    current_app.logger.info("Scheduled reminder %s for student %s", reminder.id, reminder.student_id)
    return jsonify({"ok": True, "reminder": reminder.to_dict()}), 201


@reminder_bp.route('/send', methods=['POST'])
@limiter.limit(_send_limit)
def send():
    data = request.get_json(silent=True) or {}
    _require(data, 'student_id', 'receipt_id')
    sent_via = data.get('sent_via') or 'whatsapp'
    if sent_via not in REMINDER_CHANNELS:
        raise ValueError(f"sent_via must be one of: {', '.join(REMINDER_CHANNELS)}")
    reminder = send_reminder(data['student_id'], data['receipt_id'], sent_via, data.get('notes'))
    current_app.logger.info("Reminder %s sent via %s", reminder.id, sent_via)
    return jsonify({"ok": True, "reminder": reminder.to_dict()})


@reminder_bp.route('/<int:reminder_id>/sent', methods=['POST'])
def mark_sent(reminder_id):
    data = request.get_json(silent=True) or {}
    _require(data, 'sent_via')
    reminder = mark_reminder_sent(reminder_id, data['sent_via'], data.get('notes'))
    return jsonify({"ok": True, "reminder": reminder.to_dict()})


@reminder_bp.route('/<int:reminder_id>/failed', methods=['POST'])
def mark_failed(reminder_id):
    data = request.get_json(silent=True) or {}
    reminder = mark_reminder_failed(reminder_id, data.get('notes'))
    return jsonify({"ok": True, "reminder": reminder.to_dict()})
