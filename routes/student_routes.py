from flask import Blueprint, g, jsonify, request
from sqlalchemy import or_

from extensions import db
from models import SchoolClass, Student
from utils.fees import apply_negotiated_fee, discount_info, to_decimal
from utils.store import RecordNotFound, store
from utils.timezone_helpers import parse_date

student_bp = Blueprint('students', __name__, url_prefix='/students')

EDITABLE_FIELDS = ('student_name', 'roll_number', 'course', 'parent_phone', 'parent_email', 'address', 'notes')


def _class_fee(class_name):
    with db.session.no_autoflush:
        school_class = store.first('classes', class_name=class_name)
    return school_class.fee_amount if school_class else 0


def _apply_payload(student, data, creating=False):
    for field in EDITABLE_FIELDS:
        if field in data:
            value = data.get(field)
            setattr(student, field, value.strip() if isinstance(value, str) else value)
    if 'class' in data or 'class_name' in data:
        student.class_name = (data.get('class') or data.get('class_name') or '').strip()
    if 'joining_date' in data:
        joining_date = parse_date(data.get('joining_date'))
        if joining_date is None:
            raise ValueError("joining_date must be YYYY-MM-DD")
        student.joining_date = joining_date

    if creating:
        missing = [f for f in ('student_name', 'roll_number', 'class_name', 'joining_date') if not getattr(student, f)]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

    if 'final_fee_amount' in data:
        value = data.get('final_fee_amount')
        student.final_fee_amount = None if value in (None, '') else to_decimal(value)
        standard = data.get("standard_fee_amount")
        # blank standard fee means the class fee
        student.standard_fee_amount = None if standard in (None, "") else to_decimal(standard)
    apply_negotiated_fee(student, _class_fee(student.class_name))


def _get_student(student_id):
    student = store.get('students', student_id)
    if student is None:
        raise RecordNotFound(f"Student {student_id} not found")
    return student


@student_bp.route('/')
def list_students():
    q = (request.args.get('q') or '').strip()
    class_name = (request.args.get('class') or '').strip()

    criteria = []
    if q:
        like = f"%{q}%"
        criteria.append(or_(Student.student_name.ilike(like), Student.roll_number.ilike(like)))
        g.session_context.add_search(q)
    filters = {}
    if class_name:
        filters['class_name'] = class_name
        g.session_context.save_filters('students', {'class': class_name})

    students = store.all('students', *criteria, order_by=Student.student_name, **filters)
    return jsonify({"students": [s.to_dict() for s in students], "count": len(students)})


@student_bp.route('/', methods=['POST'])
def add_student():
    data = request.get_json(silent=True) or {}
    student = Student()
    _apply_payload(student, data, creating=True)
    store.add(student)
    return jsonify({"ok": True, "student": student.to_dict()}), 201


@student_bp.route('/<int:student_id>')
def get_student(student_id):
    student = _get_student(student_id)
    data = student.to_dict()
    data["fee"] = discount_info(student, _class_fee(student.class_name))
    data["receipts"] = [r.to_dict(include_student=False) for r in student.receipts]
    return jsonify({"student": data})


@student_bp.route('/<int:student_id>', methods=['PUT', 'PATCH'])
def update_student(student_id):
    student = _get_student(student_id)
    data = request.get_json(silent=True) or {}
    _apply_payload(student, data)
    store.commit(f"update {student!r}")
    return jsonify({"ok": True, "student": student.to_dict()})


@student_bp.route('/<int:student_id>', methods=['DELETE'])
def delete_student(student_id):
    store.delete(_get_student(student_id))
    return jsonify({"ok": True})


@student_bp.route('/classes/<path:class_name>/reprice', methods=['POST'])
def reprice_class(class_name):
    """Re-derive discount columns for every negotiated student in a class."""
    school_class = store.first("classes", SchoolClass.class_name == class_name)
    if school_class is None:
        raise RecordNotFound(f"Class {class_name} not found")
    fee = school_class.fee_amount
    students = store.all('students', Student.final_fee_amount.isnot(None), class_name=class_name)
    for s in students:
        s.standard_fee_amount = None
        apply_negotiated_fee(s, fee)
    store.commit(f"reprice {class_name}")
    return jsonify({"ok": True, "updated": len(students)})
