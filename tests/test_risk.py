"""Unit tests for risk scoring module."""

import pytest
import pandas as pd
from datetime import datetime, timezone

from risk_tracker.merge import new_student
from risk_tracker.models import RiskConfig
from risk_tracker.risk import (
    score,
    classify,
    assess,
    validate_config,
    compute_stats,
    filter_by_level,
    roster_frame,
    score_frame,
    risk_label,
    risk_color
)


NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def make_student(name="Raj", attendance=45.0, marks=35.0, fees_paid=False, phone="9123456789"):
    return new_student(name, attendance, marks, fees_paid, phone, now=NOW)


def test_score_weighted_example():
    """Test the weighted score for a struggling student."""
    config = RiskConfig(
        attendance_weight=0.5, marks_weight=0.35, fees_weight=0.15,
        high_threshold=60, medium_threshold=30
    )
    student = make_student(attendance=45, marks=35, fees_paid=False)

    # 0.5*55 + 0.35*65 + 0.15*100
    assert score(student, config) == pytest.approx(65.25)

    risk = assess(student, config)
    assert risk.level == 'high'
    assert risk.score == pytest.approx(65.25)


def test_score_extremes():
    """Test perfect and worst-case students."""
    config = RiskConfig()

    assert score(make_student(attendance=100, marks=100, fees_paid=True), config) == 0.0
    assert score(make_student(attendance=0, marks=0, fees_paid=False), config) == pytest.approx(100.0)

    # Fees alone contribute fees_weight * 100
    assert score(make_student(attendance=100, marks=100, fees_paid=False), config) == pytest.approx(15.0)


def test_score_weights_not_normalised():
    """Test that weights summing past 1 are used as given."""
    config = RiskConfig(attendance_weight=1.0, marks_weight=1.0, fees_weight=1.0)
    student = make_student(attendance=50, marks=50, fees_paid=False)

    assert score(student, config) == pytest.approx(200.0)


def test_classify():
    """Test risk level assignment."""
    config = RiskConfig(high_threshold=60, medium_threshold=30)

    # High risk
    assert classify(60.0, config) == 'high'
    assert classify(95.0, config) == 'high'

    # Medium risk
    assert classify(30.0, config) == 'medium'
    assert classify(59.99, config) == 'medium'

    # Low risk
    assert classify(29.99, config) == 'low'
    assert classify(0.0, config) == 'low'


def test_classify_monotonic():
    """Test that a higher score never lowers the level."""
    config = RiskConfig(high_threshold=60, medium_threshold=30)
    order = {'low': 0, 'medium': 1, 'high': 2}

    levels = [order[classify(s / 4.0, config)] for s in range(0, 480)]
    assert levels == sorted(levels)


def test_classify_inverted_thresholds():
    """Test that the high check keeps precedence when thresholds are inverted."""
    config = RiskConfig(high_threshold=30, medium_threshold=60)

    assert classify(70.0, config) == 'high'
    assert classify(40.0, config) == 'high'
    assert classify(20.0, config) == 'low'


def test_validate_config():
    """Test config warnings."""
    assert validate_config(RiskConfig()) == []

    warnings = validate_config(RiskConfig(high_threshold=30, medium_threshold=60))
    assert len(warnings) == 1
    assert 'Medium threshold' in warnings[0]

    # Equal thresholds make medium unreachable too
    assert len(validate_config(RiskConfig(high_threshold=50, medium_threshold=50))) == 1

    warnings = validate_config(RiskConfig(marks_weight=-0.1))
    assert len(warnings) == 1
    assert 'marks_weight' in warnings[0]


def test_validate_config_does_not_reorder():
    """Test that validation leaves thresholds as they were."""
    config = RiskConfig(high_threshold=30, medium_threshold=60)
    validate_config(config)

    assert config.high_threshold == 30
    assert config.medium_threshold == 60


def test_compute_stats_and_filter():
    """Test roster counts and level filtering."""
    config = RiskConfig()
    students = [
        make_student("A", attendance=45, marks=35, fees_paid=False, phone="1111111111"),   # 65.25 high
        make_student("B", attendance=60, marks=50, fees_paid=True, phone="2222222222"),    # 37.5 medium
        make_student("C", attendance=95, marks=90, fees_paid=True, phone="3333333333"),    # 6.0 low
        make_student("D", attendance=92, marks=89, fees_paid=True, phone="4444444444"),    # low
    ]

    stats = compute_stats(students, config)
    assert stats.total == 4
    assert stats.high == 1
    assert stats.medium == 1
    assert stats.low == 2

    assert [s.name for s in filter_by_level(students, 'high', config)] == ['A']
    assert [s.name for s in filter_by_level(students, 'low', config)] == ['C', 'D']
    assert len(filter_by_level(students, 'all', config)) == 4


def test_compute_stats_empty():
    """Test stats for an empty roster."""
    stats = compute_stats([], RiskConfig())
    assert stats.total == 0
    assert stats.high == 0 and stats.medium == 0 and stats.low == 0


def test_score_frame_matches_score():
    """Test that vectorised scoring agrees with the per-student score."""
    config = RiskConfig()
    students = [
        make_student("A", attendance=45, marks=35, fees_paid=False, phone="1111111111"),
        make_student("B", attendance=60, marks=50, fees_paid=True, phone="2222222222"),
        make_student("C", attendance=95, marks=90, fees_paid=True, phone="3333333333"),
    ]

    df = score_frame(roster_frame(students), config)

    assert list(df['risk_level']) == ['high', 'medium', 'low']
    for student, frame_score in zip(students, df['risk_score']):
        assert frame_score == pytest.approx(score(student, config))

    assert list(df['weeks_tracked']) == [1, 1, 1]


def test_score_frame_empty():
    """Test scoring an empty roster."""
    df = score_frame(roster_frame([]), RiskConfig())

    assert len(df) == 0
    assert 'risk_score' in df.columns
    assert 'risk_level' in df.columns


def test_score_frame_does_not_modify_input():
    """Test that the input DataFrame is left alone."""
    df = pd.DataFrame({
        'attendance_percent': [50.0],
        'marks_percent': [50.0],
        'fees_paid': [True]
    })
    score_frame(df, RiskConfig())

    assert 'risk_score' not in df.columns


def test_risk_label_and_color():
    """Test presentation helpers."""
    assert risk_label('high') == 'High Risk'
    assert risk_label('low') == 'Low Risk'
    assert risk_color('high') != risk_color('low')
    assert risk_color('unknown') == '#6b7280'
