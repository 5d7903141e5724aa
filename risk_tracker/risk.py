"""Risk scoring: weighted score, level classification and roster summaries."""

import logging
from typing import Iterable, List

import numpy as np
import pandas as pd

from risk_tracker.models import RiskAssessment, RiskConfig, StudentRecord, StudentStats

logger = logging.getLogger(__name__)

RISK_LEVELS = ('high', 'medium', 'low')

RISK_COLORS = {
    'high': '#dc2626',
    'medium': '#f59e0b',
    'low': '#16a34a',
}


def score(student: StudentRecord, config: RiskConfig) -> float:
    """
    Weighted risk score: higher means more at risk.

    score = w_att*(100 - attendance) + w_marks*(100 - marks) + w_fees*(0 if paid else 100)

    Inputs are expected in 0-100 already; nothing is clamped.
    """
    attendance_score = 100.0 - student.attendance_percent
    marks_score = 100.0 - student.marks_percent
    fees_score = 0.0 if student.fees_paid else 100.0

    return (
        config.attendance_weight * attendance_score
        + config.marks_weight * marks_score
        + config.fees_weight * fees_score
    )


def classify(risk_score: float, config: RiskConfig) -> str:
    """
    Categorize a risk score into low/medium/high.

    The high cutoff is checked first, so with medium_threshold above
    high_threshold the medium band is unreachable for scores past high.
    """
    if risk_score >= config.high_threshold:
        return 'high'
    elif risk_score >= config.medium_threshold:
        return 'medium'
    else:
        return 'low'


def assess(student: StudentRecord, config: RiskConfig) -> RiskAssessment:
    risk_score = score(student, config)
    return RiskAssessment(level=classify(risk_score, config), score=risk_score)


def validate_config(config: RiskConfig) -> List[str]:
    """
    Check a RiskConfig for settings that make levels behave oddly.

    Thresholds are reported, never reordered.

    Returns:
        List of warning messages (empty when the config looks sane)
    """
    warnings = []
    if config.medium_threshold >= config.high_threshold:
        warnings.append(
            f"Medium threshold ({config.medium_threshold:g}) is not below high threshold "
            f"({config.high_threshold:g}); students can only be classified high or low"
        )
    for name in ('attendance_weight', 'marks_weight', 'fees_weight'):
        value = getattr(config, name)
        if value < 0:
            warnings.append(f"{name} is negative ({value:g}); a worse metric will lower the score")

    for message in warnings:
        logger.warning("Risk config: %s", message)
    return warnings


def compute_stats(students: Iterable[StudentRecord], config: RiskConfig) -> StudentStats:
    counts = {level: 0 for level in RISK_LEVELS}
    total = 0
    for student in students:
        counts[assess(student, config).level] += 1
        total += 1
    return StudentStats(total=total, **counts)


def filter_by_level(
    students: List[StudentRecord],
    level: str,
    config: RiskConfig
) -> List[StudentRecord]:
    """Students whose current level equals `level`; 'all' returns everything."""
    if level == 'all':
        return list(students)
    return [s for s in students if assess(s, config).level == level]


ROSTER_COLUMNS = [
    'id', 'name', 'guardian_phone', 'attendance_percent', 'marks_percent',
    'fees_paid', 'last_updated', 'weeks_tracked'
]


def roster_frame(students: Iterable[StudentRecord]) -> pd.DataFrame:
    """One row per student with the latest metrics."""
    rows = [
        {
            'id': s.id,
            'name': s.name,
            'guardian_phone': s.guardian_phone,
            'attendance_percent': s.attendance_percent,
            'marks_percent': s.marks_percent,
            'fees_paid': s.fees_paid,
            'last_updated': s.last_updated.isoformat(),
            'weeks_tracked': len(s.history),
        }
        for s in students
    ]
    return pd.DataFrame(rows, columns=ROSTER_COLUMNS)


def score_frame(df: pd.DataFrame, config: RiskConfig) -> pd.DataFrame:
    """
    Score a roster DataFrame in one pass.

    Args:
        df: DataFrame with attendance_percent, marks_percent and fees_paid columns
        config: Weights and thresholds

    Returns:
        Copy of df with risk_score and risk_level columns added
    """
    df = df.copy()
    if df.empty:
        df['risk_score'] = pd.Series(dtype=float)
        df['risk_level'] = pd.Series(dtype=str)
        return df

    attendance = df['attendance_percent'].astype(float)
    marks = df['marks_percent'].astype(float)
    fees_score = np.where(df['fees_paid'].astype(bool), 0.0, 100.0)

    df['risk_score'] = (
        config.attendance_weight * (100.0 - attendance)
        + config.marks_weight * (100.0 - marks)
        + config.fees_weight * fees_score
    )
    df['risk_level'] = np.select(
        [df['risk_score'] >= config.high_threshold, df['risk_score'] >= config.medium_threshold],
        ['high', 'medium'],
        default='low'
    )
    return df


def risk_label(level: str) -> str:
    return f"{level.capitalize()} Risk"


def risk_color(level: str) -> str:
    return RISK_COLORS.get(level, '#6b7280')
