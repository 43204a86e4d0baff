from apscheduler.schedulers.background import BackgroundScheduler
from flask import current_app

from utils.fee_reminders import (
    get_students_with_overdue_info,
    mark_reminder_failed,
    mark_reminder_sent,
    pending_reminder_for,
    reminders_due_today,
    schedule_reminder,
)
from utils.notify import DeliveryError, send_reminder_email
from utils.store import RecordNotFound, StoreUnavailable
from utils.timezone_helpers import local_today


def daily_job(app):
    """Schedule today's reminders and, when enabled, email them to parents.

    Returns a small summary so the job can be run by hand and inspected.
    """
    with app.app_context():
        today = local_today()
        result = get_students_with_overdue_info(today=today)
        if not result.ok:
            current_app.logger.error("Reminder job skipped, overdue list unavailable: %s", result.error)
            return {"due": 0, "scheduled": 0, "sent": 0, "failed": 0, "error": result.error}

        due = reminders_due_today(result.data, today)
        summary = {"due": len(due), "scheduled": 0, "sent": 0, "failed": 0, "error": None}
        email_enabled = current_app.config.get("REMINDER_EMAIL_ENABLED", False)
        for row in due:
            reminder = pending_reminder_for(row["student_id"], row["receipt_id"], today)
            if reminder is None:
                try:
                    reminder = schedule_reminder(row["student_id"], row["receipt_id"], interval_days=0, today=today)
                except (RecordNotFound, ValueError, StoreUnavailable) as e:
                    current_app.logger.warning("Could not schedule reminder for receipt %s: %s", row["receipt_id"], e)
                    continue
                summary["scheduled"] += 1

            if not email_enabled or not row.get("parent_email"):
                continue
            try:
                send_reminder_email(row["parent_email"], row["student_name"], reminder.message_template or "")
            except DeliveryError as e:
                summary["failed"] += 1
                try:
                    mark_reminder_failed(reminder.id, f"Email delivery failed: {e}")
                except (RecordNotFound, ValueError, StoreUnavailable) as mark_error:
                    current_app.logger.error("Could not mark reminder %s failed: %s", reminder.id, mark_error)
                continue
            try:
                mark_reminder_sent(reminder.id, "email", f"Emailed to {row['parent_email']}")
            except (RecordNotFound, ValueError, StoreUnavailable) as e:
                # the email went out but the reminder is still pending
                current_app.logger.error("Could not mark reminder %s sent: %s", reminder.id, e)
                summary["failed"] += 1
                continue
            summary["sent"] += 1

        current_app.logger.info(
            "Reminder job: %(due)s due, %(scheduled)s scheduled, %(sent)s emailed, %(failed)s failed", summary
        )
        return summary


def start_scheduler(app):
    scheduler = BackgroundScheduler(timezone=app.config.get("TIMEZONE", "Asia/Karachi"))
    hours = app.config.get("REMINDER_JOB_HOURS", 24)
    scheduler.add_job(lambda: daily_job(app), 'interval', hours=hours, id='daily_reminder', replace_existing=True)
    scheduler.start()
    app.logger.info("Reminder scheduler started (every %s h)", hours)
    return scheduler
