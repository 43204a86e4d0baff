"""Create students, classes, fee_receipts and fee_reminders.

Revision ID: 5b1f0c2d9a10
Revises:
Create Date: 2025-09-07 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5b1f0c2d9a10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_name", sa.String(length=100), nullable=False),
        sa.Column("roll_number", sa.String(length=50), nullable=False),
        sa.Column("class", sa.String(length=50), nullable=False),
        sa.Column("course", sa.String(length=100)),
        sa.Column("joining_date", sa.Date(), nullable=False),
        sa.Column("parent_phone", sa.String(length=20)),
        sa.Column("parent_email", sa.String(length=120)),
        sa.Column("address", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("final_fee_amount", sa.Numeric(10, 2)),
        sa.Column("standard_fee_amount", sa.Numeric(10, 2)),
        sa.Column("discount_amount", sa.Numeric(10, 2)),
        sa.Column("discount_percentage", sa.Numeric(5, 2)),
        sa.Column("created_at", sa.DateTime()),
        sa.UniqueConstraint("roll_number"),
    )
    op.create_index("ix_students_class", "students", ["class"])

    op.create_table(
        "classes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("class_name", sa.String(length=50), nullable=False),
        sa.Column("course_name", sa.String(length=100)),
        sa.Column("fee_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.UniqueConstraint("class_name"),
    )

    op.create_table(
        "fee_receipts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("receipt_number", sa.String(length=40), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=False, server_default="Cash"),
        sa.Column("total_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("paid_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("remaining_due", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("description", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime()),
        sa.UniqueConstraint("receipt_number"),
    )
    op.create_index("ix_fee_receipts_student_id", "fee_receipts", ["student_id"])

    op.create_table(
        "fee_reminders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("receipt_id", sa.Integer(), sa.ForeignKey("fee_receipts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reminder_type", sa.String(length=40), nullable=False, server_default="overdue_payment"),
        sa.Column("reminder_date", sa.Date(), nullable=False),
        sa.Column("due_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("days_overdue", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("message_template", sa.Text()),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="pending"),
        sa.Column("sent_at", sa.DateTime()),
        sa.Column("sent_via", sa.String(length=10)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_fee_reminders_student_id", "fee_reminders", ["student_id"])
    op.create_index("ix_fee_reminders_receipt_id", "fee_reminders", ["receipt_id"])
    op.create_index("ix_fee_reminders_status", "fee_reminders", ["status"])


def downgrade():
    op.drop_table("fee_reminders")
    op.drop_table("fee_receipts")
    op.drop_table("classes")
    op.drop_table("students")
