from flask import Blueprint, jsonify, request

from models import SchoolClass
from utils.analytics import class_distribution, class_fee_summary, orphaned_class_labels
from utils.fees import to_decimal
from utils.store import store

class_bp = Blueprint('classes', __name__, url_prefix='/classes')


@class_bp.route('/')
def list_classes():
    classes = store.all('classes', order_by=SchoolClass.class_name)
    students = store.all('students')
    distribution = class_distribution(students)
    return jsonify({
        "classes": [{**c.to_dict(), "student_count": distribution.get(c.class_name, 0)} for c in classes],
        "summary": class_fee_summary(classes, distribution),
        "orphaned_class_labels": orphaned_class_labels(students, classes),
    })


@class_bp.route('/', methods=['POST'])
def add_class():
    data = request.get_json(silent=True) or {}
    class_name = (data.get('class_name') or '').strip()
    if not class_name:
        raise ValueError("class_name is required")
    fee_amount = to_decimal(data.get('fee_amount'))
    if fee_amount < 0:
        raise ValueError("fee_amount cannot be negative")
    school_class = store.insert(
        'classes',
        class_name=class_name,
        course_name=(data.get('course_name') or '').strip() or None,
        fee_amount=fee_amount,
    )
    return jsonify({"ok": True, "class": school_class.to_dict()}), 201
