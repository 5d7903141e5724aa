"""Building, updating and reconciling student records.

Every function takes an explicit `now` so that all records touched by one
call share a timestamp. None of them mutate their inputs.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from risk_tracker.models import StudentRecord, WeeklySnapshot


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def new_student(
    name: str,
    attendance_percent: float,
    marks_percent: float,
    fees_paid: bool,
    guardian_phone: str,
    now: datetime,
    id_factory: Optional[Callable[[], str]] = None
) -> StudentRecord:
    """Create a record whose history holds a single snapshot taken at `now`."""
    snapshot = WeeklySnapshot(
        timestamp=now,
        attendance_percent=attendance_percent,
        marks_percent=marks_percent,
        fees_paid=fees_paid
    )
    return StudentRecord(
        id=(id_factory or new_id)(),
        name=name,
        attendance_percent=attendance_percent,
        marks_percent=marks_percent,
        fees_paid=fees_paid,
        guardian_phone=guardian_phone,
        last_updated=now,
        history=[snapshot]
    )


def record_update(
    student: StudentRecord,
    attendance_percent: float,
    marks_percent: float,
    fees_paid: bool,
    now: datetime,
    name: Optional[str] = None,
    guardian_phone: Optional[str] = None
) -> StudentRecord:
    """
    Return a copy of `student` with new latest metrics and one more snapshot.

    `id` and prior history are kept. `name` and `guardian_phone` change only
    when given.
    """
    snapshot = WeeklySnapshot(
        timestamp=now,
        attendance_percent=attendance_percent,
        marks_percent=marks_percent,
        fees_paid=fees_paid
    )
    update = {
        'attendance_percent': attendance_percent,
        'marks_percent': marks_percent,
        'fees_paid': fees_paid,
        'last_updated': now,
        'history': [*student.history, snapshot],
    }
    if name is not None:
        update['name'] = name
    if guardian_phone is not None:
        update['guardian_phone'] = guardian_phone
    return student.model_copy(update=update)


def mark_fees_paid(student: StudentRecord, now: datetime) -> StudentRecord:
    """Record that fees are paid, keeping the current attendance and marks."""
    return record_update(
        student,
        attendance_percent=student.attendance_percent,
        marks_percent=student.marks_percent,
        fees_paid=True,
        now=now
    )


def latest_snapshot(student: StudentRecord) -> WeeklySnapshot:
    return student.history[-1]


def _find_match(students: List[StudentRecord], incoming: StudentRecord) -> int:
    """Index of the record `incoming` should update, or -1."""
    for idx, student in enumerate(students):
        if student.guardian_phone == incoming.guardian_phone:
            return idx

    incoming_name = incoming.name.lower()
    for idx, student in enumerate(students):
        if student.name.lower() == incoming_name:
            return idx

    return -1


def merge_students(
    existing: List[StudentRecord],
    incoming: List[StudentRecord],
    now: Optional[datetime] = None
) -> List[StudentRecord]:
    """
    Fold imported records into an existing roster.

    Each incoming record is matched against the pre-existing records (with
    any updates already applied in this call): first by exact guardian
    phone, then by case-insensitive name. The first match gets the incoming
    metrics and a new snapshot at `now`; otherwise the incoming record is
    appended unchanged. Records appended in this call are never matched, so
    two new rows sharing a phone stay two records.

    Args:
        existing: Current roster (not modified)
        incoming: Validated records from an import, in file order
        now: Timestamp shared by every update in this call

    Returns:
        New list with the merged roster
    """
    if now is None:
        now = utc_now()

    merged = list(existing)
    existing_count = len(merged)

    for record in incoming:
        match_idx = _find_match(merged[:existing_count], record)
        if match_idx != -1:
            merged[match_idx] = record_update(
                merged[match_idx],
                attendance_percent=record.attendance_percent,
                marks_percent=record.marks_percent,
                fees_paid=record.fees_paid,
                now=now
            )
        else:
            merged.append(record)

    return merged
