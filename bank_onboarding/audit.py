"""
Audit Trail Module

Append-only record of onboarding side effects. Each event carries the SHA-256
digest of its predecessor, so editing or removing a stored event breaks the
chain and shows up in verify_integrity().
"""

import hashlib
import json
import threading
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
from decimal import Decimal
import uuid

from .storage import StorageInterface, StorageRecord, ensure_no_secrets


class AuditEventType(Enum):
    """Types of audit events"""
    ONBOARDING_STARTED = "onboarding_started"
    ONBOARDING_HALTED = "onboarding_halted"
    ONBOARDING_COMPLETED = "onboarding_completed"
    ONBOARDING_ABANDONED = "onboarding_abandoned"
    RETRY_REQUESTED = "retry_requested"

    PROFILE_SUBMITTED = "profile_submitted"
    PROFILE_IMAGE_UPLOADED = "profile_image_uploaded"

    ACCOUNT_CREATED = "account_created"
    ACCOUNT_ORPHANED = "account_orphaned"
    ROLLBACK_COMPLETED = "rollback_completed"
    ROLLBACK_FAILED = "rollback_failed"

    CARD_ISSUED = "card_issued"
    CARD_ISSUE_FAILED = "card_issue_failed"
    SECRET_ACKNOWLEDGED = "secret_acknowledged"

    AUTH_FAILED = "auth_failed"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass
class AuditEvent(StorageRecord):
    """One link of the chain; current_hash seals every other field"""
    event_type: AuditEventType
    entity_type: str  # identity, account, card
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]
    attempt_id: Optional[str] = None

    def __post_init__(self):
        self.metadata = _jsonable(self.metadata or {})

    def calculate_hash(self) -> str:
        sealed = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'attempt_id': self.attempt_id,
            'previous_hash': self.previous_hash,
            'metadata': self.metadata,
        }
        canonical = json.dumps(sealed, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['event_type'] = self.event_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        fields = {key: value for key, value in data.items() if key != 'sequence'}
        for key in ('created_at', 'updated_at'):
            if isinstance(fields[key], str):
                fields[key] = datetime.fromisoformat(fields[key])
        fields['event_type'] = AuditEventType(fields['event_type'])
        return cls(**fields)


class AuditTrail:
    """
    Hash-chained audit trail over a storage backend.

    Stored rows carry a monotonically increasing `sequence`, which defines
    chain order independently of timestamps or backend ordering.
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()

        rows = self._rows()
        self._last_hash = rows[-1].get('current_hash', "") if rows else ""
        self._sequence = rows[-1].get('sequence', 0) if rows else 0

    def _rows(self) -> List[Dict[str, Any]]:
        return sorted(self.storage.load_all(self.table_name), key=lambda row: row.get('sequence', 0))

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        attempt_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an event to the chain.

        Raises:
            SensitiveDataError: If metadata carries a PIN or credential
        """
        metadata = metadata or {}
        ensure_no_secrets(metadata)

        with self._lock:
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=str(entity_id),
                previous_hash=self._last_hash,
                current_hash="",
                metadata=metadata,
                attempt_id=attempt_id
            )
            event.current_hash = event.calculate_hash()

            row = event.to_dict()
            row['sequence'] = self._sequence + 1
            self.storage.save(self.table_name, event.id, row)

            self._sequence += 1
            self._last_hash = event.current_hash
            return event

    def events(self, **criteria: Any) -> List[AuditEvent]:
        """Events in chain order whose attributes equal every given criterion"""
        selected = []
        for row in self._rows():
            event = AuditEvent.from_dict(row)
            if all(getattr(event, name) == value for name, value in criteria.items()):
                selected.append(event)
        return selected

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        return self.events(entity_type=entity_type, entity_id=str(entity_id))

    def get_events_by_type(self, event_type: AuditEventType,
                           attempt_id: Optional[str] = None) -> List[AuditEvent]:
        if attempt_id is None:
            return self.events(event_type=event_type)
        return self.events(event_type=event_type, attempt_id=attempt_id)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Walk the chain and report every event whose own hash or whose link
        to its predecessor does not match.
        """
        hash_errors = []
        chain_breaks = []
        expected_previous = ""

        chain = self.events()
        for position, event in enumerate(chain):
            recomputed = event.calculate_hash()
            if recomputed != event.current_hash:
                hash_errors.append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': recomputed,
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != expected_previous:
                chain_breaks.append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': expected_previous,
                    'actual_previous_hash': event.previous_hash
                })
            expected_previous = event.current_hash

        return {
            'valid': not hash_errors and not chain_breaks,
            'total_events': len(chain),
            'hash_errors': hash_errors,
            'chain_breaks': chain_breaks
        }

    def count_events(self) -> int:
        return self.storage.count(self.table_name)
