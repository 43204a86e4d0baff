import os
import sys
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app  # noqa: E402
from config import TestingConfig  # noqa: E402
from extensions import db  # noqa: E402
from models import FeeReceipt, SchoolClass, Student  # noqa: E402


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        app.extensions["dashboard_feed"].stop()
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_class(app):
    def _make(class_name="9th", fee_amount=10000, course_name="Computer Science Fundamentals"):
        school_class = SchoolClass(class_name=class_name, fee_amount=Decimal(str(fee_amount)), course_name=course_name)
        db.session.add(school_class)
        db.session.commit()
        return school_class
    return _make


@pytest.fixture
def make_student(app):
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        values = {
            "student_name": f"Student {counter['n']}",
            "roll_number": f"{counter['n']:02d}",
            "class_name": "9th",
            "course": "Computer Science Fundamentals",
            "joining_date": date(2025, 1, 10),
            "parent_phone": "03074065110",
            "parent_email": f"parent{counter['n']}@email.com",
        }
        values.update(kwargs)
        student = Student(**values)
        db.session.add(student)
        db.session.commit()
        return student
    return _make


@pytest.fixture
def make_receipt(app):
    def _make(student, **kwargs):
        values = {
            "student_id": student.id,
            "payment_date": date(2025, 1, 1),
            "payment_method": "Cash",
            "total_fee": Decimal("10000"),
            "paid_amount": Decimal("4000"),
        }
        values.update(kwargs)
        receipt = FeeReceipt(**values)
        db.session.add(receipt)
        db.session.commit()
        return receipt
    return _make
