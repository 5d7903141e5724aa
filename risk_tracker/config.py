"""Environment-driven settings."""

import os
from typing import Dict

from dotenv import load_dotenv

from risk_tracker.models import RiskConfig

# Load environment variables
load_dotenv()


class ConfigError(ValueError):
    """Raised when an environment setting cannot be parsed."""


def parse_key_values(raw: str, variable: str) -> Dict[str, float]:
    """
    Parse a 'key:value,key:value' setting into a dict of floats.

    Args:
        raw: Raw setting text, e.g. 'medium:30,high:60'
        variable: Name of the environment variable, used in error messages

    Returns:
        Dict mapping lowercase keys to float values
    """
    values = {}
    for item in raw.split(','):
        if not item.strip():
            continue
        try:
            key, value = item.split(':')
            values[key.strip().lower()] = float(value.strip())
        except ValueError:
            raise ConfigError(f"{variable}: expected 'key:value' pairs, got '{item.strip()}'")
    return values


def risk_config_from_env() -> RiskConfig:
    """Build the default RiskConfig from RISK_WEIGHTS and RISK_THRESHOLDS."""
    defaults = RiskConfig()
    weights = parse_key_values(
        os.getenv('RISK_WEIGHTS', 'attendance:0.5,marks:0.35,fees:0.15'), 'RISK_WEIGHTS'
    )
    thresholds = parse_key_values(
        os.getenv('RISK_THRESHOLDS', 'medium:30,high:60'), 'RISK_THRESHOLDS'
    )
    return RiskConfig(
        attendance_weight=weights.get('attendance', defaults.attendance_weight),
        marks_weight=weights.get('marks', defaults.marks_weight),
        fees_weight=weights.get('fees', defaults.fees_weight),
        high_threshold=thresholds.get('high', defaults.high_threshold),
        medium_threshold=thresholds.get('medium', defaults.medium_threshold),
    )


# Empty STORE_PATH keeps records in memory only
STORE_PATH = os.getenv('STORE_PATH', os.path.join('data', 'students.json'))

DEFAULT_RISK_CONFIG = risk_config_from_env()

MAX_UPLOAD_SIZE_MB = int(os.getenv('MAX_UPLOAD_SIZE_MB', '10'))
MAX_UPLOAD_SIZE = MAX_UPLOAD_SIZE_MB * 1024 * 1024

ALLOW_ORIGINS = os.getenv('ALLOW_ORIGINS', '*').split(',')
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

SCHOOL_NAME = os.getenv('SCHOOL_NAME', 'School')
COUNSELLOR_NAME = os.getenv('COUNSELLOR_NAME', 'Class Teacher')
COUNSELLOR_PHONE = os.getenv('COUNSELLOR_PHONE', '')
