"""Guardian SMS and call-script drafts for each risk level."""

from typing import Dict

from risk_tracker import config
from risk_tracker.models import RiskAssessment, StudentRecord


def get_sender_info() -> Dict[str, str]:
    """Counsellor name, phone and school used to sign messages."""
    return {
        'name': config.COUNSELLOR_NAME,
        'phone': config.COUNSELLOR_PHONE,
        'school': config.SCHOOL_NAME,
    }


def _signature(sender: Dict[str, str]) -> str:
    if sender['phone']:
        return f"{sender['name']}, {sender['school']} ({sender['phone']})"
    return f"{sender['name']}, {sender['school']}"


def generate_message_draft(student: StudentRecord, assessment: RiskAssessment) -> Dict[str, str]:
    """Generate an SMS and a call script tailored to the student's risk level."""
    sender = get_sender_info()
    attendance_str = f"{student.attendance_percent:.0f}"
    marks_str = f"{student.marks_percent:.0f}"

    if assessment.level == 'high':
        draft = _high_risk_message(student, attendance_str, marks_str, sender)
    elif assessment.level == 'medium':
        draft = _medium_risk_message(student, attendance_str, marks_str, sender)
    else:
        draft = _low_risk_message(student, attendance_str, marks_str, sender)

    draft['phone'] = student.guardian_phone
    return draft


def _fees_line(student: StudentRecord) -> str:
    if student.fees_paid:
        return ""
    return " School fees are also pending."


def _low_risk_message(student: StudentRecord, attendance_pct: str, marks_pct: str, sender: Dict[str, str]) -> Dict[str, str]:
    sms = (
        f"Dear guardian, {student.name} is doing well: attendance {attendance_pct}%, "
        f"marks {marks_pct}%.{_fees_line(student)} Thank you for your support. - {_signature(sender)}"
    )
    call_script = f"""Greet the guardian and introduce yourself as {sender['name']} from {sender['school']}.

Share that {student.name} is on track with {attendance_pct}% attendance and {marks_pct}% marks.

Thank them for their support at home and ask whether they have any questions."""
    return {'sms': sms, 'call_script': call_script}


def _medium_risk_message(student: StudentRecord, attendance_pct: str, marks_pct: str, sender: Dict[str, str]) -> Dict[str, str]:
    sms = (
        f"Dear guardian, {student.name}'s attendance is {attendance_pct}% and marks are {marks_pct}%."
        f"{_fees_line(student)} Please encourage regular attendance and study at home. - {_signature(sender)}"
    )
    call_script = f"""Greet the guardian and introduce yourself as {sender['name']} from {sender['school']}.

Explain that {student.name} has {attendance_pct}% attendance and {marks_pct}% marks, which needs attention before it becomes serious.

Ask whether anything at home is affecting school, and agree on one step to take this week."""
    return {'sms': sms, 'call_script': call_script}


def _high_risk_message(student: StudentRecord, attendance_pct: str, marks_pct: str, sender: Dict[str, str]) -> Dict[str, str]:
    sms = (
        f"Urgent: Dear guardian, {student.name} is at high risk of dropping out. "
        f"Attendance {attendance_pct}%, marks {marks_pct}%.{_fees_line(student)} "
        f"Please visit the school or call us this week. - {_signature(sender)}"
    )
    call_script = f"""Greet the guardian and introduce yourself as {sender['name']} from {sender['school']}.

Explain calmly that {student.name} is at high risk: attendance is {attendance_pct}% and marks are {marks_pct}%.{_fees_line(student)}

Ask about reasons for absence (health, work, travel, fees) and invite the guardian to meet this week to agree a support plan."""
    return {'sms': sms, 'call_script': call_script}
