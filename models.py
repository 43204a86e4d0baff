import uuid

from sqlalchemy import event

from extensions import db
from utils.fees import compute_remaining_due
from utils.timezone_helpers import utc_now

PAYMENT_METHODS = ("Cash", "Bank Transfer", "Online", "Cheque")
REMINDER_STATUSES = ("pending", "sent", "failed")
REMINDER_CHANNELS = ("whatsapp", "email", "sms")


def generate_receipt_number() -> str:
    return f"RCP-{utc_now():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class Student(db.Model):
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    student_name = db.Column(db.String(100), nullable=False)
    roll_number = db.Column(db.String(50), unique=True, nullable=False)
    # Stored in DB column 'class' but exposed as attribute 'class_name'
    class_name = db.Column('class', db.String(50), nullable=False, index=True)
    course = db.Column(db.String(100))
    joining_date = db.Column(db.Date, nullable=False)
    parent_phone = db.Column(db.String(20))
    parent_email = db.Column(db.String(120))
    address = db.Column(db.Text)
    notes = db.Column(db.Text)
    # Negotiated fee; when final_fee_amount is set it is authoritative for billing
    final_fee_amount = db.Column(db.Numeric(10, 2))
    standard_fee_amount = db.Column(db.Numeric(10, 2))
    discount_amount = db.Column(db.Numeric(10, 2))
    discount_percentage = db.Column(db.Numeric(5, 2))
    created_at = db.Column(db.DateTime, default=utc_now)

    receipts = db.relationship('FeeReceipt', backref='student', cascade="all, delete")
    reminders = db.relationship('FeeReminder', backref='student', cascade="all, delete")

    def to_dict(self):
        return {
            "id": self.id,
            "student_name": self.student_name,
            "roll_number": self.roll_number,
            "class": self.class_name,
            "course": self.course,
            "joining_date": self.joining_date.isoformat() if self.joining_date else None,
            "parent_phone": self.parent_phone,
            "parent_email": self.parent_email,
            "address": self.address,
            "notes": self.notes,
            "final_fee_amount": _num(self.final_fee_amount),
            "standard_fee_amount": _num(self.standard_fee_amount),
            "discount_amount": _num(self.discount_amount),
            "discount_percentage": _num(self.discount_percentage),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Student {self.student_name} ({self.roll_number})>'


class SchoolClass(db.Model):
    __tablename__ = 'classes'

    id = db.Column(db.Integer, primary_key=True)
    class_name = db.Column(db.String(50), unique=True, nullable=False)
    course_name = db.Column(db.String(100))
    fee_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "class_name": self.class_name,
            "course_name": self.course_name,
            "fee_amount": _num(self.fee_amount),
        }

    def __repr__(self):
        return f'<SchoolClass {self.class_name}>'


class FeeReceipt(db.Model):
    __tablename__ = 'fee_receipts'

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(40), unique=True, nullable=False, default=generate_receipt_number)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(20), nullable=False, default="Cash")
    total_fee = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    paid_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    remaining_due = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    description = db.Column(db.Text)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)

    reminders = db.relationship('FeeReminder', backref='receipt', cascade="all, delete")

    def recompute_remaining_due(self):
        self.remaining_due = compute_remaining_due(self.total_fee, self.paid_amount)
        return self.remaining_due

    def to_dict(self, include_student=True):
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "student_id": self.student_id,
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "payment_method": self.payment_method,
            "total_fee": _num(self.total_fee),
            "paid_amount": _num(self.paid_amount),
            "remaining_due": _num(self.remaining_due),
            "description": self.description,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_student and self.student is not None:
            data["students"] = {
                "student_name": self.student.student_name,
                "roll_number": self.student.roll_number,
                "class": self.student.class_name,
                "course": self.student.course,
                "parent_phone": self.student.parent_phone,
                "parent_email": self.student.parent_email,
            }
        return data

    def __repr__(self):
        return f'<FeeReceipt {self.receipt_number} Due={self.remaining_due}>'


class FeeReminder(db.Model):
    __tablename__ = 'fee_reminders'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey('fee_receipts.id', ondelete='CASCADE'), nullable=False, index=True)
    reminder_type = db.Column(db.String(40), nullable=False, default="overdue_payment")
    reminder_date = db.Column(db.Date, nullable=False)
    due_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    days_overdue = db.Column(db.Integer, nullable=False, default=0)
    message_template = db.Column(db.Text)
    status = db.Column(db.String(10), nullable=False, default="pending", index=True)
    sent_at = db.Column(db.DateTime)
    sent_via = db.Column(db.String(10))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "receipt_id": self.receipt_id,
            "reminder_type": self.reminder_type,
            "reminder_date": self.reminder_date.isoformat() if self.reminder_date else None,
            "due_amount": _num(self.due_amount),
            "days_overdue": self.days_overdue,
            "message_template": self.message_template,
            "status": self.status,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "sent_via": self.sent_via,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<FeeReminder {self.id} {self.status}>'


@event.listens_for(FeeReceipt, "before_insert")
@event.listens_for(FeeReceipt, "before_update")
def _receipt_remaining_due(mapper, connection, target):
    target.recompute_remaining_due()


def _num(value):
    return float(value) if value is not None else None
