from flask import Blueprint, jsonify, request

from models import PAYMENT_METHODS, FeeReceipt, Student
from utils.fees import to_decimal
from utils.store import RecordNotFound, store
from utils.timezone_helpers import local_today, parse_date

fee_bp = Blueprint('receipts', __name__, url_prefix='/receipts')


def _get_receipt(receipt_id):
    receipt = store.get('fee_receipts', receipt_id)
    if receipt is None:
        raise RecordNotFound(f"Receipt {receipt_id} not found")
    return receipt


def _apply_payload(receipt, data):
    if 'student_id' in data:
        student = store.get('students', data.get('student_id'))
        if student is None:
            raise RecordNotFound(f"Student {data.get('student_id')} not found")
        receipt.student_id = student.id
    if 'payment_date' in data:
        payment_date = parse_date(data.get('payment_date'))
        if payment_date is None:
            raise ValueError("payment_date must be YYYY-MM-DD")
        receipt.payment_date = payment_date
    if 'payment_method' in data:
        method = data.get('payment_method')
        if method not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
        receipt.payment_method = method
    for field in ('total_fee', 'paid_amount'):
        if field in data:
            amount = to_decimal(data.get(field))
            if amount < 0:
                raise ValueError(f"{field} cannot be negative")
            setattr(receipt, field, amount)
    for field in ('description', 'notes'):
        if field in data:
            setattr(receipt, field, (data.get(field) or '').strip() or None)
    # remaining_due is never taken from the client
    receipt.recompute_remaining_due()


@fee_bp.route('/')
def list_receipts():
    criteria = []
    student_id = request.args.get('student_id', type=int)
    if student_id is not None:
        criteria.append(FeeReceipt.student_id == student_id)
    if request.args.get('outstanding') in ('1', 'true'):
        criteria.append(FeeReceipt.remaining_due > 0)
    class_name = (request.args.get('class') or '').strip()
    if class_name:
        criteria.append(FeeReceipt.student.has(Student.class_name == class_name))

    receipts = store.all('fee_receipts', *criteria, order_by=FeeReceipt.payment_date.desc())
    return jsonify({"receipts": [r.to_dict() for r in receipts], "count": len(receipts)})


@fee_bp.route('/', methods=['POST'])
def add_receipt():
    data = request.get_json(silent=True) or {}
    if not data.get('student_id'):
        raise ValueError("student_id is required")
    if 'total_fee' not in data:
        raise ValueError("total_fee is required")
    receipt = FeeReceipt(payment_date=local_today(), payment_method='Cash')
    _apply_payload(receipt, data)
    store.add(receipt)
    return jsonify({"ok": True, "receipt": receipt.to_dict()}), 201


@fee_bp.route('/<int:receipt_id>')
def get_receipt(receipt_id):
    return jsonify({"receipt": _get_receipt(receipt_id).to_dict()})


@fee_bp.route('/<int:receipt_id>', methods=['PUT', 'PATCH'])
def update_receipt(receipt_id):
    receipt = _get_receipt(receipt_id)
    _apply_payload(receipt, request.get_json(silent=True) or {})
    store.commit(f"update {receipt!r}")
    return jsonify({"ok": True, "receipt": receipt.to_dict()})


@fee_bp.route('/<int:receipt_id>', methods=['DELETE'])
def delete_receipt(receipt_id):
    store.delete(_get_receipt(receipt_id))
    return jsonify({"ok": True})
