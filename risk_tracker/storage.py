"""Key-value persistence for student records and the risk configuration."""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from risk_tracker.models import RiskConfig, SnapshotImportResult, StudentRecord

logger = logging.getLogger(__name__)

STUDENTS_KEY = 'students'
RISK_CONFIG_KEY = 'risk_config'

_students_adapter = TypeAdapter(List[StudentRecord])


class StoreError(Exception):
    """Raised when the backing file cannot be read or written."""


class KeyValueBackend(ABC):
    """String key -> string value storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...


class MemoryBackend(KeyValueBackend):
    """Keeps values in a dict for the life of the process."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileBackend(KeyValueBackend):
    """
    Stores all keys in one JSON object on disk.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a crash never leaves a half-written file.
    """

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Store file %s is not valid JSON: %s", self.path, e)
            return {}
        except OSError as e:
            raise StoreError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            logger.error("Store file %s does not hold a JSON object", self.path)
            return {}
        return data

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value

        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
        except OSError as e:
            raise StoreError(f"Cannot write {self.path}: {e}") from e

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write {self.path}: {e}") from e
        finally:
            # Gone after a successful replace
            if os.path.exists(tmp_path):
                os.remove(tmp_path)


class RecordStore:
    """Student records and risk configuration on top of a KeyValueBackend."""

    def __init__(self, backend: KeyValueBackend, default_config: Optional[RiskConfig] = None):
        self.backend = backend
        self.default_config = default_config or RiskConfig()

    def get_all(self) -> List[StudentRecord]:
        data = self.backend.get(STUDENTS_KEY)
        if not data:
            return []
        try:
            return _students_adapter.validate_json(data)
        except ValidationError as e:
            logger.error("Stored students could not be loaded, treating as empty: %s", e)
            return []

    def save_all(self, records: List[StudentRecord]) -> None:
        self.backend.set(STUDENTS_KEY, _students_adapter.dump_json(records).decode('utf-8'))

    def get(self, record_id: str) -> Optional[StudentRecord]:
        for record in self.get_all():
            if record.id == record_id:
                return record
        return None

    def add(self, record: StudentRecord) -> None:
        records = self.get_all()
        records.append(record)
        self.save_all(records)

    def update(self, record: StudentRecord) -> bool:
        """Replace the stored record with the same id. Returns False if none exists."""
        records = self.get_all()
        for idx, existing in enumerate(records):
            if existing.id == record.id:
                records[idx] = record
                self.save_all(records)
                return True
        return False

    def delete(self, record_id: str) -> bool:
        records = self.get_all()
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            return False
        self.save_all(remaining)
        return True

    def get_config(self) -> RiskConfig:
        data = self.backend.get(RISK_CONFIG_KEY)
        if not data:
            return self.default_config
        try:
            return RiskConfig.model_validate_json(data)
        except ValidationError as e:
            logger.error("Stored risk config could not be loaded, using default: %s", e)
            return self.default_config

    def save_config(self, config: RiskConfig) -> None:
        self.backend.set(RISK_CONFIG_KEY, config.model_dump_json())

    def export_snapshot(self) -> str:
        """All records and the current config as one JSON document."""
        payload = {
            'students': _students_adapter.dump_python(self.get_all(), mode='json'),
            'config': self.get_config().model_dump(mode='json'),
        }
        return json.dumps(payload, ensure_ascii=False, indent=2)

    def import_snapshot(self, text: str) -> SnapshotImportResult:
        """
        Restore records and config from an exported snapshot.

        Either key may be absent; present keys overwrite what is stored.
        Nothing is written unless the whole snapshot is valid.
        """
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            return SnapshotImportResult(success=False, error='Invalid JSON format')

        if not isinstance(data, dict):
            return SnapshotImportResult(success=False, error='Invalid snapshot data: expected a JSON object')

        try:
            students = None
            config = None
            if data.get('students') is not None:
                students = _students_adapter.validate_python(data['students'])
            if data.get('config') is not None:
                config = RiskConfig.model_validate(data['config'])
        except ValidationError as e:
            return SnapshotImportResult(
                success=False,
                error=f"Invalid snapshot data: {e.error_count()} validation error(s)"
            )

        if students is not None:
            self.save_all(students)
        if config is not None:
            self.save_config(config)

        logger.info(
            "Restored snapshot: %s students, config %s",
            len(students) if students is not None else 'no',
            'replaced' if config is not None else 'kept'
        )
        return SnapshotImportResult(success=True)
