"""Data models for the Student Risk Tracker application."""

from datetime import datetime
from typing import Optional, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


RiskLevel = Literal['low', 'medium', 'high']


class WeeklySnapshot(BaseModel):
    """One immutable observation of a student's metrics."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    attendance_percent: float = Field(ge=0, le=100)
    marks_percent: float = Field(ge=0, le=100)
    fees_paid: bool


class StudentRecord(BaseModel):
    """A tracked student with the latest metrics and their history."""
    id: str
    name: str = Field(min_length=1)
    attendance_percent: float = Field(ge=0, le=100)
    marks_percent: float = Field(ge=0, le=100)
    fees_paid: bool
    guardian_phone: str = Field(pattern=r'^[0-9]{10}$')
    last_updated: datetime
    history: List[WeeklySnapshot] = Field(min_length=1)

    @model_validator(mode='after')
    def _latest_matches_history(self):
        last = self.history[-1]
        if (
            last.attendance_percent != self.attendance_percent
            or last.marks_percent != self.marks_percent
            or last.fees_paid != self.fees_paid
            or last.timestamp != self.last_updated
        ):
            raise ValueError('latest fields must match the last history snapshot')
        return self


class RiskConfig(BaseModel):
    """Weights and cutoffs used by the risk score."""
    attendance_weight: float = 0.5
    marks_weight: float = 0.35
    fees_weight: float = 0.15
    high_threshold: float = 60.0
    medium_threshold: float = 30.0


class RiskAssessment(BaseModel):
    """Derived risk for one student. Never persisted."""
    level: RiskLevel
    score: float


class ImportErrorEntry(BaseModel):
    """A problem found while importing a CSV file.

    `row` is the 1-based line number, or 0 for file-level problems.
    """
    row: int
    field: str
    message: str
    value: str


class ImportResult(BaseModel):
    """Outcome of parsing a CSV file."""
    success: bool
    students_imported: int
    errors: List[ImportErrorEntry]
    students: List[StudentRecord]


class StudentStats(BaseModel):
    """Risk level counts across a roster."""
    total: int
    high: int
    medium: int
    low: int


class SnapshotImportResult(BaseModel):
    """Outcome of restoring an exported snapshot."""
    success: bool
    error: Optional[str] = None


class StudentIn(BaseModel):
    """Request body for adding or editing a student by hand."""
    name: str
    attendance_percent: float = Field(ge=0, le=100)
    marks_percent: float = Field(ge=0, le=100)
    fees_paid: bool = False
    guardian_phone: str = Field(pattern=r'^[0-9]{10}$')

    @field_validator('name')
    @classmethod
    def _name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('Name is required')
        return value


class StudentWithRisk(BaseModel):
    """A student paired with its current assessment."""
    student: StudentRecord
    risk: RiskAssessment
    label: str
    color: str


class UploadResponse(BaseModel):
    """Response from the CSV import endpoint."""
    success: bool
    message: str
    students_imported: int
    merged: int
    errors: List[ImportErrorEntry]
    total_students: int


class ConfigResponse(BaseModel):
    """Stored risk configuration plus any validation warnings."""
    config: RiskConfig
    warnings: List[str]


class MessageDraftResponse(BaseModel):
    """Guardian contact draft."""
    phone: str
    sms: str
    call_script: str
    risk: RiskAssessment


class SampleDataResponse(BaseModel):
    """Response from loading the demo roster."""
    success: bool
    message: str
    summary: Dict[str, int]
