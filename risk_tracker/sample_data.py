"""Demo roster and sample CSV for trying the tracker out."""

from datetime import datetime, timedelta
from typing import List, Optional

from risk_tracker.merge import new_student, record_update, utc_now
from risk_tracker.models import StudentRecord

SAMPLE_CSV = """name,attendance,marks,fees_paid,guardian_phone
राज कुमार,72,54,No,9123456789
प्रिया सिंह,85,76,Yes,9876543210
अमित शर्मा,68,61,Yes,9555444333
सुनीता पटेल,92,89,Yes,9888777666
रोहित गुप्ता,58,45,No,9777888999
"""

# (name, phone, fees_paid, last week's (attendance, marks), this week's (attendance, marks))
_SAMPLE_ROWS = [
    ("राज कुमार", "9123456789", False, (48, 32), (45, 35)),
    ("प्रिया सिंह", "9876543210", True, (82, 74), (85, 76)),
    ("अमित शर्मा", "9555444333", True, (70, 60), (65, 58)),
    ("सुनीता पटेल", "9888777666", True, (90, 87), (92, 89)),
    ("रोहित गुप्ता", "9777888999", False, (58, 45), (55, 42)),
]


def sample_students(now: Optional[datetime] = None) -> List[StudentRecord]:
    """Five students, each with a snapshot from a week ago and one at `now`."""
    if now is None:
        now = utc_now()
    last_week = now - timedelta(days=7)

    students = []
    for name, phone, fees_paid, previous, current in _SAMPLE_ROWS:
        student = new_student(
            name=name,
            attendance_percent=previous[0],
            marks_percent=previous[1],
            fees_paid=fees_paid,
            guardian_phone=phone,
            now=last_week
        )
        students.append(record_update(
            student,
            attendance_percent=current[0],
            marks_percent=current[1],
            fees_paid=fees_paid,
            now=now
        ))
    return students
