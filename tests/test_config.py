"""Unit tests for environment settings."""

import pytest

from risk_tracker.config import ConfigError, parse_key_values, risk_config_from_env


def test_parse_key_values():
    """Test 'key:value' parsing."""
    assert parse_key_values("medium:30,high:60", "RISK_THRESHOLDS") == {'medium': 30.0, 'high': 60.0}
    assert parse_key_values(" Attendance : 0.5 , marks:0.35,", "RISK_WEIGHTS") == {
        'attendance': 0.5, 'marks': 0.35
    }
    assert parse_key_values("", "RISK_WEIGHTS") == {}


def test_parse_key_values_malformed():
    """Test that bad items name the variable."""
    with pytest.raises(ConfigError, match="RISK_THRESHOLDS"):
        parse_key_values("medium=30", "RISK_THRESHOLDS")

    with pytest.raises(ConfigError):
        parse_key_values("high:sixty", "RISK_THRESHOLDS")


def test_risk_config_from_env(monkeypatch):
    """Test building the default config from the environment."""
    monkeypatch.setenv("RISK_WEIGHTS", "attendance:0.4,marks:0.4,fees:0.2")
    monkeypatch.setenv("RISK_THRESHOLDS", "high:70")

    config = risk_config_from_env()

    assert config.attendance_weight == 0.4
    assert config.fees_weight == 0.2
    assert config.high_threshold == 70.0
    # Unset keys keep their defaults
    assert config.medium_threshold == 30.0


def test_risk_config_from_env_defaults(monkeypatch):
    """Test defaults with nothing set."""
    monkeypatch.delenv("RISK_WEIGHTS", raising=False)
    monkeypatch.delenv("RISK_THRESHOLDS", raising=False)

    config = risk_config_from_env()

    assert config.attendance_weight == 0.5
    assert config.marks_weight == 0.35
    assert config.fees_weight == 0.15
    assert config.high_threshold == 60.0
