from __future__ import annotations

import csv
from io import StringIO
from typing import Any, Dict, List

from models import PAYMENT_METHODS, FeeReceipt, Student
from utils.fees import apply_negotiated_fee, to_decimal
from utils.store import store
from utils.timezone_helpers import parse_date

STUDENT_COLUMNS = [
    "student_name",
    "roll_number",
    "class",
    "course",
    "joining_date",
    "parent_phone",
    "parent_email",
    "address",
    "notes",
]
STUDENT_REQUIRED = ("student_name", "roll_number", "class")

RECEIPT_COLUMNS = [
    "student_roll_number",
    "payment_date",
    "payment_method",
    "total_fee",
    "paid_amount",
    "description",
    "notes",
]
RECEIPT_REQUIRED = ("student_roll_number", "payment_date", "total_fee")

STUDENT_EXPORT_COLUMNS = STUDENT_COLUMNS + ["final_fee_amount", "created_at"]
RECEIPT_EXPORT_COLUMNS = [
    "receipt_number",
    "student_name",
    "student_roll_number",
    "student_class",
    "payment_date",
    "payment_method",
    "total_fee",
    "paid_amount",
    "remaining_due",
    "description",
    "notes",
    "created_at",
]


def _to_csv(header: List[str], rows: List[List[Any]]) -> str:
    si = StringIO()
    writer = csv.writer(si)
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return si.getvalue()


def student_template() -> str:
    return _to_csv(STUDENT_COLUMNS, [
        ["Muhammad Ali", "01", "9th", "Computer Science Fundamentals", "2024-03-22",
         "03074065110", "ali.parent@email.com", "Lahore Pakistan", "Sample student record"],
        ["Fatima Khan", "02", "10th", "Advanced Computer Science", "2024-01-15",
         "03001234567", "fatima.parent@email.com", "Karachi Pakistan", "Another sample record"],
    ])


def receipt_template() -> str:
    return _to_csv(RECEIPT_COLUMNS, [
        ["01", "2025-09-07", "Cash", "1000.00", "900.00", "Course Fee", "Partial payment"],
        ["02", "2025-09-06", "Bank Transfer", "1200.00", "1200.00", "Course Fee", "Full payment"],
    ])


def read_rows(text: str) -> List[Dict[str, str]]:
    reader = csv.DictReader(StringIO((text or "").lstrip("\ufeff")))
    if reader.fieldnames is None:
        return []
    reader.fieldnames = [(name or "").strip() for name in reader.fieldnames]
    rows = []
    for row in reader:
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        rows.append({k: (v or "").strip() if isinstance(v, str) else "" for k, v in row.items() if k})
    return rows


def import_students(text: str) -> Dict[str, Any]:
    results: Dict[str, Any] = {"success": 0, "errors": []}
    class_fees = {c.class_name: c.fee_amount for c in store.all("classes")}
    seen = {s.roll_number for s in store.all("students")}

    for line_no, row in enumerate(read_rows(text), start=2):
        missing = [col for col in STUDENT_REQUIRED if not row.get(col)]
        if missing:
            results["errors"].append(f"Row {line_no}: Missing required fields ({', '.join(missing)})")
            continue
        roll = row["roll_number"]
        if roll in seen:
            results["errors"].append(f"Row {line_no}: Roll number {roll} already exists")
            continue
        joining_date = parse_date(row.get("joining_date"))
        if joining_date is None:
            results["errors"].append(f"Row {line_no}: Invalid joining_date {row.get('joining_date')!r}")
            continue

        student = Student(
            student_name=row["student_name"],
            roll_number=roll,
            class_name=row["class"],
            course=row.get("course") or None,
            joining_date=joining_date,
            parent_phone=row.get("parent_phone") or None,
            parent_email=row.get("parent_email") or None,
            address=row.get("address") or None,
            notes=row.get("notes") or None,
        )
        try:
            if row.get("final_fee_amount"):
                student.final_fee_amount = to_decimal(row["final_fee_amount"])
            apply_negotiated_fee(student, class_fees.get(student.class_name, 0))
            store.add(student)
        except ValueError as e:
            results["errors"].append(f"Row {line_no}: {e}")
            continue
        seen.add(roll)
        results["success"] += 1
    return results


def import_receipts(text: str) -> Dict[str, Any]:
    results: Dict[str, Any] = {"success": 0, "errors": []}
    students = {s.roll_number: s for s in store.all("students")}

    for line_no, row in enumerate(read_rows(text), start=2):
        missing = [col for col in RECEIPT_REQUIRED if not row.get(col)]
        if missing:
            results["errors"].append(f"Row {line_no}: Missing required fields ({', '.join(missing)})")
            continue
        student = students.get(row["student_roll_number"])
        if student is None:
            results["errors"].append(f"Row {line_no}: No student with roll number {row['student_roll_number']}")
            continue
        payment_date = parse_date(row["payment_date"])
        if payment_date is None:
            results["errors"].append(f"Row {line_no}: Invalid payment_date {row['payment_date']!r}")
            continue
        method = row.get("payment_method") or "Cash"
        if method not in PAYMENT_METHODS:
            results["errors"].append(f"Row {line_no}: Unknown payment method {method!r}")
            continue
        try:
            receipt = FeeReceipt(
                student_id=student.id,
                payment_date=payment_date,
                payment_method=method,
                total_fee=to_decimal(row["total_fee"]),
                paid_amount=to_decimal(row.get("paid_amount")),
                description=row.get("description") or None,
                notes=row.get("notes") or None,
            )
            receipt.recompute_remaining_due()
            store.add(receipt)
        except ValueError as e:
            results["errors"].append(f"Row {line_no}: {e}")
            continue
        results["success"] += 1
    return results


def export_students() -> str:
    rows = []
    for s in store.all("students", order_by=Student.created_at):
        rows.append([
            s.student_name,
            s.roll_number,
            s.class_name,
            s.course,
            s.joining_date.isoformat() if s.joining_date else "",
            s.parent_phone,
            s.parent_email,
            s.address,
            s.notes,
            f"{to_decimal(s.final_fee_amount):.2f}" if s.final_fee_amount is not None else "",
            s.created_at.isoformat() if s.created_at else "",
        ])
    return _to_csv(STUDENT_EXPORT_COLUMNS, rows)


def export_receipts() -> str:
    rows = []
    for r in store.all("fee_receipts", order_by=FeeReceipt.created_at):
        student = r.student
        rows.append([
            r.receipt_number,
            student.student_name if student else "",
            student.roll_number if student else "",
            student.class_name if student else "",
            r.payment_date.isoformat() if r.payment_date else "",
            r.payment_method,
            f"{to_decimal(r.total_fee):.2f}",
            f"{to_decimal(r.paid_amount):.2f}",
            f"{to_decimal(r.remaining_due):.2f}",
            r.description,
            r.notes,
            r.created_at.isoformat() if r.created_at else "",
        ])
    return _to_csv(RECEIPT_EXPORT_COLUMNS, rows)
