"""CSV parsing and row validation for student imports.

Fields are split strictly on commas. There is no quoting or escaping, so a
value containing a comma (e.g. "Kumar, Raj") shifts the columns and the row
is reported as a column count mismatch.
"""

import logging
import re
from datetime import datetime
from typing import Callable, Dict, List, Optional

from risk_tracker.merge import new_student, utc_now
from risk_tracker.models import ImportErrorEntry, ImportResult, StudentRecord

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['name', 'attendance', 'marks', 'fees_paid', 'guardian_phone']

CSV_TEMPLATE = ','.join(REQUIRED_COLUMNS) + '\n'

TRUE_VALUES = {'yes', 'true', '1'}
FALSE_VALUES = {'no', 'false', '0'}

# Leading decimal literal, as a lenient float parser reads it ('72abc' -> 72)
_NUMBER_PREFIX = re.compile(r'^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?')
_NON_DIGITS = re.compile(r'[^0-9]')


def parse_number(value: str) -> Optional[float]:
    """
    Read the leading number of a cell.

    Args:
        value: Raw cell text

    Returns:
        The number, or None when the cell does not start with one
    """
    match = _NUMBER_PREFIX.match(value.strip())
    if not match:
        return None
    return float(match.group(0))


def validate_percent(value: str) -> Optional[float]:
    """Percentage in 0-100 inclusive, or None."""
    num = parse_number(value)
    if num is None or num < 0 or num > 100:
        return None
    return num


def validate_fees_paid(value: str) -> Optional[bool]:
    """
    Interpret a fees_paid cell.

    Yes/True/1 and No/False/0 are accepted in any case.
    """
    lower = value.strip().lower()
    if lower in TRUE_VALUES:
        return True
    if lower in FALSE_VALUES:
        return False
    return None


def validate_phone(value: str) -> Optional[str]:
    """
    Strip formatting from a phone number.

    Returns:
        The 10 digits, or None when a different number of digits remain
    """
    cleaned = _NON_DIGITS.sub('', value)
    if len(cleaned) == 10:
        return cleaned
    return None


def split_lines(raw_text: str) -> List[str]:
    """Non-empty trimmed lines of the text."""
    return [line.strip() for line in raw_text.strip().split('\n') if line.strip()]


def split_cells(line: str) -> List[str]:
    return [cell.strip() for cell in line.split(',')]


def _file_error(field: str, message: str, value: str = '') -> ImportResult:
    return ImportResult(
        success=False,
        students_imported=0,
        errors=[ImportErrorEntry(row=0, field=field, message=message, value=value)],
        students=[]
    )


def validate_row(
    row_number: int,
    row: Dict[str, str],
    now: datetime,
    id_factory: Optional[Callable[[], str]] = None
):
    """
    Validate one mapped row.

    All five fields are checked even when an earlier one fails, so a single
    row can report several errors.

    Args:
        row_number: 1-based line number used in error entries
        row: Header name -> trimmed cell value
        now: Timestamp for the new record
        id_factory: Optional id generator

    Returns:
        Tuple of (StudentRecord or None, list of ImportErrorEntry)
    """
    errors = []

    def add_error(field, message, value):
        errors.append(ImportErrorEntry(row=row_number, field=field, message=message, value=value))

    name = row['name'].strip()
    if not name:
        add_error('name', 'Name is required', row['name'])

    attendance = validate_percent(row['attendance'])
    if attendance is None:
        add_error('attendance', 'Attendance must be 0-100', row['attendance'])

    marks = validate_percent(row['marks'])
    if marks is None:
        add_error('marks', 'Marks must be 0-100', row['marks'])

    fees_paid = validate_fees_paid(row['fees_paid'])
    if fees_paid is None:
        add_error('fees_paid', 'Fees paid must be Yes/No', row['fees_paid'])

    guardian_phone = validate_phone(row['guardian_phone'])
    if guardian_phone is None:
        add_error('guardian_phone', 'Phone must be 10 digits', row['guardian_phone'])

    if errors:
        return None, errors

    student = new_student(
        name=name,
        attendance_percent=attendance,
        marks_percent=marks,
        fees_paid=fees_paid,
        guardian_phone=guardian_phone,
        now=now,
        id_factory=id_factory
    )
    return student, []


def parse_csv(
    raw_text: str,
    now: Optional[datetime] = None,
    id_factory: Optional[Callable[[], str]] = None
) -> ImportResult:
    """
    Parse CSV text into validated student records.

    The header must contain name, attendance, marks, fees_paid and
    guardian_phone (any order, any case); extra columns are ignored.
    Rows with any error are left out of `students` but valid rows around
    them are still returned, so `students_imported` can be non-zero when
    `success` is False.

    Args:
        raw_text: Whole file content
        now: Timestamp shared by every record created in this call
        id_factory: Optional id generator (defaults to uuid4)

    Returns:
        ImportResult with records in file order and errors in row order
    """
    if now is None:
        now = utc_now()

    lines = split_lines(raw_text)
    if len(lines) < 2:
        return _file_error('file', 'CSV must have header and at least one data row')

    header = [cell.lower() for cell in split_cells(lines[0])]
    missing = [column for column in REQUIRED_COLUMNS if column not in header]
    if missing:
        return _file_error(
            'header',
            f"Missing required columns: {', '.join(missing)}",
            ', '.join(header)
        )

    errors: List[ImportErrorEntry] = []
    students: List[StudentRecord] = []

    for i, line in enumerate(lines[1:], start=1):
        cells = split_cells(line)
        row_number = i + 1

        if len(cells) != len(header):
            errors.append(ImportErrorEntry(
                row=row_number,
                field='row',
                message='Column count mismatch',
                value=', '.join(cells)
            ))
            continue

        row = dict(zip(header, cells))
        student, row_errors = validate_row(row_number, row, now, id_factory)
        if row_errors:
            errors.extend(row_errors)
            continue

        students.append(student)

    logger.info(
        "Parsed CSV: %d data rows, %d students, %d errors",
        len(lines) - 1, len(students), len(errors)
    )

    return ImportResult(
        success=len(errors) == 0,
        students_imported=len(students),
        errors=errors,
        students=students
    )


def decode_upload(file_bytes: bytes) -> Optional[str]:
    """
    Decode uploaded bytes as UTF-8 text.

    A byte order mark is dropped and Windows line endings are normalised.

    Returns:
        The text, or None when the bytes are not valid UTF-8
    """
    try:
        text = file_bytes.decode('utf-8-sig')
    except UnicodeDecodeError:
        logger.warning("Uploaded file is not valid UTF-8 (%d bytes)", len(file_bytes))
        return None
    return text.replace('\r\n', '\n').replace('\r', '\n')


def parse_upload(
    file_bytes: bytes,
    now: Optional[datetime] = None,
    id_factory: Optional[Callable[[], str]] = None
) -> ImportResult:
    """Decode an uploaded file and parse it; unreadable files give a file-level error."""
    text = decode_upload(file_bytes)
    if text is None:
        return _file_error('file', 'Failed to read file')
    return parse_csv(text, now=now, id_factory=id_factory)
