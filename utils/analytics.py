"""Dashboard analytics.

Pure folds over the student, receipt and class collections. Nothing here keeps
state between calls: every figure is re-derived from the snapshot passed in.
"""
from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from utils.fallback import FetchResult, with_fallback
from utils.fees import ZERO, discount_info, has_fee_structure, to_decimal
from utils.formatting import month_label
from utils.store import FeatureUnavailable, store
from utils.timezone_helpers import local_today, parse_date

NOT_AVAILABLE = "N/A"
DEFAULT_TREND_MONTHS = 6
RETENTION_WINDOW_MONTHS = 3


# --------------------------
# Small helpers
# --------------------------
def _month_key(value: Any) -> Optional[str]:
    d = parse_date(value)
    return f"{d.year:04d}-{d.month:02d}" if d else None


def _shift_months(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    # clamp to the last day of the target month
    for candidate in (day.day, 30, 29, 28):
        try:
            return date(year, month, candidate)
        except ValueError:
            continue
    return date(year, month, 28)


def _percent(part: Any, whole: Any) -> float:
    whole = to_decimal(whole)
    if whole <= 0:
        return 0.0
    return float(to_decimal(part) / whole * 100)


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _sum(values: Iterable[Any]) -> Decimal:
    return sum((to_decimal(v) for v in values), ZERO)


def _recent_buckets(buckets: Dict[str, Any], last_n: Optional[int]) -> List[tuple]:
    ordered = sorted(buckets.items())
    if last_n is not None and last_n >= 0:
        ordered = ordered[-last_n:] if last_n else []
    return ordered


def _student_key(receipt) -> str:
    student = getattr(receipt, "student", None)
    if student is not None and student.roll_number:
        return str(student.roll_number)
    return str(receipt.student_id)


# --------------------------
# Distributions
# --------------------------
def class_distribution(students: Iterable[Any]) -> Dict[str, int]:
    return dict(Counter(s.class_name for s in students))


def course_distribution(students: Iterable[Any]) -> Dict[str, int]:
    return dict(Counter(s.course or NOT_AVAILABLE for s in students))


def payment_method_distribution(receipts: Iterable[Any]) -> Dict[str, int]:
    return dict(Counter(r.payment_method for r in receipts))


def most_popular(distribution: Dict[str, int]) -> str:
    """Label with the highest count; equal counts resolve to the label that sorts first."""
    if not distribution:
        return NOT_AVAILABLE
    label, _ = min(distribution.items(), key=lambda item: (-item[1], str(item[0])))
    return label if label else NOT_AVAILABLE


# --------------------------
# Monthly trends
# --------------------------
def monthly_enrollment(students: Iterable[Any], last_n: Optional[int] = DEFAULT_TREND_MONTHS) -> List[Dict[str, Any]]:
    buckets: Dict[str, int] = defaultdict(int)
    for s in students:
        key = _month_key(s.joining_date)
        if key:
            buckets[key] += 1
    return [
        {"month": month, "label": month_label(month), "enrollments": count}
        for month, count in _recent_buckets(buckets, last_n)
    ]


def monthly_collection(receipts: Iterable[Any], last_n: Optional[int] = DEFAULT_TREND_MONTHS) -> List[Dict[str, Any]]:
    buckets: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for r in receipts:
        key = _month_key(r.payment_date)
        if key:
            buckets[key] += to_decimal(r.paid_amount)
    return [
        {"month": month, "label": month_label(month), "collection": float(amount)}
        for month, amount in _recent_buckets(buckets, last_n)
    ]


def collection_vs_due(receipts: Iterable[Any], last_n: Optional[int] = DEFAULT_TREND_MONTHS) -> List[Dict[str, Any]]:
    collected: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    due: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for r in receipts:
        key = _month_key(r.payment_date)
        if key:
            collected[key] += to_decimal(r.paid_amount)
            due[key] += to_decimal(r.remaining_due)
    rows = []
    for month, amount in _recent_buckets(collected, last_n):
        rows.append({
            "month": month,
            "label": month_label(month),
            "collected": float(amount),
            "due": float(due[month]),
            "total": float(amount + due[month]),
        })
    return rows


# --------------------------
# Rates
# --------------------------
def collection_rate(receipts: Iterable[Any]) -> float:
    receipts = list(receipts)
    return _percent(_sum(r.paid_amount for r in receipts), _sum(r.total_fee for r in receipts))


def retention_rate(students: Iterable[Any], receipts: Iterable[Any], today: Optional[date] = None) -> float:
    """Share of students with at least one payment in the trailing three months."""
    students = list(students)
    if not students:
        return 0.0
    since = _shift_months(today or local_today(), -RETENTION_WINDOW_MONTHS)
    active = {
        _student_key(r)
        for r in receipts
        if parse_date(r.payment_date) and parse_date(r.payment_date) >= since
    }
    return len(active) / len(students) * 100


def student_growth(students: Iterable[Any], today: Optional[date] = None) -> float:
    """Month-over-month change in new enrollments, in percent."""
    today = today or local_today()
    this_month = _month_key(today)
    last_month = _month_key(_shift_months(today.replace(day=1), -1))
    joins = Counter(_month_key(s.joining_date) for s in students)
    if joins[last_month] == 0:
        return 0.0
    return (joins[this_month] - joins[last_month]) / joins[last_month] * 100


def revenue_per_student(students: Iterable[Any], receipts: Iterable[Any]) -> float:
    students = list(students)
    if not students:
        return 0.0
    return float(_sum(r.paid_amount for r in receipts) / len(students))


def average_payment_day(receipts: Iterable[Any]) -> int:
    days = [parse_date(r.payment_date).day for r in receipts if parse_date(r.payment_date)]
    if not days:
        return 0
    return _round_half_up(sum(days) / len(days))


def monthly_efficiency(receipts: Iterable[Any], today: Optional[date] = None) -> float:
    """Collection rate restricted to receipts dated in the current month."""
    current = _month_key(today or local_today())
    return collection_rate(r for r in receipts if _month_key(r.payment_date) == current)


# --------------------------
# Course / class breakdowns
# --------------------------
def course_performance(students: Iterable[Any], receipts: Iterable[Any]) -> List[Dict[str, Any]]:
    paid_by_student: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for r in receipts:
        paid_by_student[_student_key(r)] += to_decimal(r.paid_amount)

    courses: Dict[str, Dict[str, Any]] = {}
    for s in students:
        entry = courses.setdefault(s.course, {"students": 0, "revenue": ZERO})
        entry["students"] += 1
        entry["revenue"] += paid_by_student.get(str(s.roll_number), ZERO)

    return [
        {
            "course": course,
            "students": data["students"],
            "revenue": float(data["revenue"]),
            "avg_revenue": _round_half_up(float(data["revenue"]) / data["students"]),
        }
        for course, data in courses.items()
    ]


def payment_timing(receipts: Iterable[Any]) -> List[Dict[str, Any]]:
    counts: Counter = Counter()
    amounts: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for r in receipts:
        d = parse_date(r.payment_date)
        if d:
            counts[d.day] += 1
            amounts[d.day] += to_decimal(r.paid_amount)
    return [
        {"day": day, "payments": counts[day], "amount": float(amounts[day])}
        for day in range(1, 32)
        if counts[day] > 0
    ]


def fee_structure_by_class(classes: Iterable[Any], distribution: Dict[str, int]) -> List[Dict[str, Any]]:
    return [
        {
            "class": c.class_name,
            "course": c.course_name,
            "fee": float(to_decimal(c.fee_amount)),
            "students": distribution.get(c.class_name, 0),
        }
        for c in classes
    ]


def class_fee_summary(classes: Iterable[Any], distribution: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    classes = list(classes)
    distribution = distribution or {}
    if not classes:
        return {"average_fee": 0, "highest_fee": 0.0, "lowest_fee": 0.0, "revenue_potential": 0.0}
    fees = [to_decimal(c.fee_amount) for c in classes]
    return {
        "average_fee": _round_half_up(float(sum(fees, ZERO) / len(fees))),
        "highest_fee": float(max(fees)),
        "lowest_fee": float(min(fees)),
        "revenue_potential": float(sum(
            (to_decimal(c.fee_amount) * distribution.get(c.class_name, 0) for c in classes),
            ZERO,
        )),
    }


def orphaned_class_labels(students: Iterable[Any], classes: Iterable[Any]) -> List[str]:
    """Class labels used by students that have no row in ``classes``."""
    known = {c.class_name for c in classes}
    return sorted({s.class_name for s in students if s.class_name not in known})


# --------------------------
# Discounts
# --------------------------
def fee_structure_analytics(students: Iterable[Any], classes: Iterable[Any]) -> Dict[str, Any]:
    students = list(students)
    class_fees = {c.class_name: to_decimal(c.fee_amount) for c in classes}

    with_discount = 0
    percentage_total = 0.0
    standard_total = ZERO
    actual_total = ZERO
    discount_total = ZERO
    for s in students:
        info = discount_info(s, class_fees.get(s.class_name, ZERO))
        standard_total += to_decimal(info["standard_fee"])
        actual_total += to_decimal(info["final_fee"])
        percentage_total += info["discount_percentage"]
        if has_fee_structure(s):
            discount_total += to_decimal(info["discount_amount"])
        if info["discount_percentage"] > 0:
            with_discount += 1

    return with_discount_impact({
        "total_students": len(students),
        "students_with_discounts": with_discount,
        "average_discount_percentage": percentage_total / len(students) if students else 0.0,
        "total_standard_revenue": float(standard_total),
        "total_actual_revenue": float(actual_total),
        "total_discount_amount": float(discount_total),
    })


def with_discount_impact(analytics: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(analytics)
    for key in ("total_standard_revenue", "total_actual_revenue", "total_discount_amount", "average_discount_percentage"):
        data[key] = float(to_decimal(data.get(key)))
    for key in ("total_students", "students_with_discounts"):
        data[key] = int(data.get(key) or 0)
    data["discount_rate"] = _percent(data["students_with_discounts"], data["total_students"])
    data["revenue_impact"] = _percent(data["total_discount_amount"], data["total_standard_revenue"])
    return data


def get_fee_structure_analytics() -> FetchResult:
    def remote():
        rows = store.rpc("get_fee_structure_analytics")
        if not rows:
            raise FeatureUnavailable("get_fee_structure_analytics returned no rows")
        return with_discount_impact(rows[0])

    def local():
        return fee_structure_analytics(store.all("students"), store.all("classes"))

    return with_fallback(remote, local, default=None, label="fee structure analytics")


# --------------------------
# Roll-ups
# --------------------------
def dashboard_metrics(students: Iterable[Any], receipts: Iterable[Any], today: Optional[date] = None) -> Dict[str, Any]:
    students = list(students)
    receipts = list(receipts)
    return {
        "total_students": len(students),
        "total_collection": float(_sum(r.paid_amount for r in receipts)),
        "total_due": float(_sum(r.remaining_due for r in receipts)),
        "total_receipts": len(receipts),
        "monthly_growth": student_growth(students, today),
        "collection_rate": collection_rate(receipts),
    }


def build_analytics_summary(
    snapshot: Dict[str, List[Any]],
    today: Optional[date] = None,
    last_n: Optional[int] = DEFAULT_TREND_MONTHS,
) -> Dict[str, Any]:
    today = today or local_today()
    students = snapshot.get("students", [])
    receipts = snapshot.get("receipts", [])
    classes = snapshot.get("classes", [])

    classes_count = class_distribution(students)
    courses_count = course_distribution(students)
    methods_count = payment_method_distribution(receipts)
    return {
        "metrics": {
            **dashboard_metrics(students, receipts, today),
            "students_with_dues": sum(1 for r in receipts if to_decimal(r.remaining_due) > 0),
            "retention_rate": retention_rate(students, receipts, today),
            "revenue_per_student": revenue_per_student(students, receipts),
            "average_payment_day": average_payment_day(receipts),
            "monthly_efficiency": monthly_efficiency(receipts, today),
            "most_popular_class": most_popular(classes_count),
            "most_popular_course": most_popular(courses_count),
            "most_used_payment_method": most_popular(methods_count),
        },
        "class_distribution": classes_count,
        "course_distribution": courses_count,
        "payment_methods": methods_count,
        "enrollment_trend": monthly_enrollment(students, last_n),
        "collection_trend": monthly_collection(receipts, last_n),
        "collection_vs_due": collection_vs_due(receipts, last_n),
        "course_performance": course_performance(students, receipts),
        "payment_timing": payment_timing(receipts),
        "fee_structure": fee_structure_by_class(classes, classes_count),
        "class_fees": class_fee_summary(classes, classes_count),
        "fee_analytics": fee_structure_analytics(students, classes),
        "orphaned_class_labels": orphaned_class_labels(students, classes),
    }
