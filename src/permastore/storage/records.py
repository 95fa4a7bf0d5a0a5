"""
File record lifecycle.

A FileRecord owns the state machine of one upload:

    PENDING -> STORED -> VERIFIED
    PENDING -> FAILED
    STORED  -> FAILED

FAILED and VERIFIED are terminal. Every transition swaps in a new immutable
FileSnapshot under a lock, so a reader never observes a half-applied update
(e.g. STORED with an empty locator).

The persistence collaborator is abstracted as FileRecordStore; an in-memory
implementation backs tests and the default HTTP app.
"""

from __future__ import annotations

import secrets
import threading
import time
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Protocol

from permastore.errors.storage import InvalidStateTransitionError
from permastore.storage.types import (
    FileSnapshot,
    FileStatus,
    SecurityTier,
    VerificationRecord,
)
from permastore.utils.logging import get_logger

_logger = get_logger(__name__)

STATUS_TRANSITIONS: Dict[FileStatus, FrozenSet[FileStatus]] = {
    FileStatus.PENDING: frozenset({FileStatus.STORED, FileStatus.FAILED}),
    FileStatus.STORED: frozenset({FileStatus.VERIFIED, FileStatus.FAILED}),
    FileStatus.VERIFIED: frozenset(),
    FileStatus.FAILED: frozenset(),
}


def is_valid_transition(current: FileStatus, target: FileStatus) -> bool:
    """Check whether ``current -> target`` is an allowed edge."""
    return target in STATUS_TRANSITIONS[current]


def is_terminal_status(status: FileStatus) -> bool:
    return not STATUS_TRANSITIONS[status]


def generate_file_id() -> str:
    """Time-ordered, collision-resistant record id."""
    return f"{int(time.time() * 1000):x}{secrets.token_hex(6)}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord:
    """
    Durable record of one upload's lifecycle.

    Mutated only through the transition methods below. Use ``snapshot`` for
    a consistent read of all fields at once.

    Example:
        >>> record = FileRecord.create(
        ...     file_name="notes.txt", file_size=10240, file_type="text/plain",
        ...     user_id="u1", vault_id="v1",
        ... )
        >>> record.mark_stored("tx123", "https://arweave.net/tx123")
        >>> record.status
        <FileStatus.STORED: 'stored'>
    """

    def __init__(self, snapshot: FileSnapshot) -> None:
        self._snapshot = snapshot
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        *,
        file_name: str,
        file_size: int,
        file_type: str,
        user_id: str,
        vault_id: str,
        encryption_type: str = "none",
        security_tier: SecurityTier = "standard",
        file_id: Optional[str] = None,
    ) -> "FileRecord":
        """Create a record in PENDING."""
        now = _now()
        return cls(
            FileSnapshot(
                id=file_id or generate_file_id(),
                file_name=file_name,
                file_size=file_size,
                file_type=file_type,
                user_id=str(user_id),
                vault_id=str(vault_id),
                encryption_type=encryption_type,
                security_tier=security_tier,
                status=FileStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> FileSnapshot:
        return self._snapshot

    @property
    def id(self) -> str:
        return self._snapshot.id

    @property
    def status(self) -> FileStatus:
        return self._snapshot.status

    @property
    def locator(self) -> str:
        return self._snapshot.locator

    @property
    def permanent_uri(self) -> str:
        return self._snapshot.permanent_uri

    @property
    def verified(self) -> bool:
        return self._snapshot.verified

    @property
    def verified_networks(self) -> FrozenSet[str]:
        return frozenset(self._snapshot.verified_networks)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, target: FileStatus, **changes: object) -> FileSnapshot:
        # Caller holds self._lock
        current = self._snapshot
        if not is_valid_transition(current.status, target):
            raise InvalidStateTransitionError(
                current.status.value, target.value, file_id=current.id
            )
        self._snapshot = current.model_copy(
            update={"status": target, "updated_at": _now(), **changes}
        )
        _logger.debug(
            "File status changed",
            extra={
                "file_id": current.id,
                "from_status": current.status.value,
                "to_status": target.value,
            },
        )
        return self._snapshot

    def mark_stored(self, locator: str, permanent_uri: str) -> FileSnapshot:
        """PENDING -> STORED; locator and URI land in the same snapshot."""
        if not locator:
            raise ValueError("locator must be non-empty when marking a file stored")
        with self._lock:
            return self._transition(
                FileStatus.STORED,
                locator=locator,
                permanent_uri=permanent_uri,
            )

    def mark_failed(self, error_code: str) -> FileSnapshot:
        """PENDING|STORED -> FAILED."""
        with self._lock:
            return self._transition(FileStatus.FAILED, error_code=error_code)

    def add_verified_network(self, network: str, *, min_networks: int = 1) -> bool:
        """
        Count a confirmation from ``network``.

        Idempotent: a network already counted is a no-op. Moves the record to
        VERIFIED once ``min_networks`` distinct networks confirmed.

        Returns:
            True only for the call that performed STORED -> VERIFIED.
        """
        with self._lock:
            current = self._snapshot
            if current.status not in (FileStatus.STORED, FileStatus.VERIFIED):
                raise InvalidStateTransitionError(
                    current.status.value,
                    FileStatus.VERIFIED.value,
                    file_id=current.id,
                )
            if network in current.verified_networks:
                return False

            networks = current.verified_networks + (network,)
            changes = {"verified_networks": networks, "verified": True}

            if current.status == FileStatus.STORED and len(networks) >= min_networks:
                self._transition(FileStatus.VERIFIED, **changes)
                return True

            self._snapshot = current.model_copy(
                update={**changes, "updated_at": _now()}
            )
            return False

    def __repr__(self) -> str:
        snap = self._snapshot
        return (
            f"FileRecord(id={snap.id!r}, status={snap.status.value}, "
            f"locator={snap.locator!r})"
        )


class FileRecordStore(Protocol):
    """Boundary to the persistence collaborator that owns record storage."""

    def save(self, record: FileRecord) -> None:
        ...

    def get(self, file_id: str) -> Optional[FileRecord]:
        ...

    def get_by_locator(self, locator: str) -> Optional[FileRecord]:
        ...

    def add_verification(self, verification: VerificationRecord) -> None:
        ...

    def list_verifications(self, file_id: str) -> List[VerificationRecord]:
        ...


class InMemoryFileRecordStore:
    """Thread-safe in-process FileRecordStore."""

    def __init__(self) -> None:
        self._records: Dict[str, FileRecord] = {}
        self._verifications: Dict[str, List[VerificationRecord]] = {}
        self._lock = threading.Lock()

    def save(self, record: FileRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    def get(self, file_id: str) -> Optional[FileRecord]:
        with self._lock:
            return self._records.get(file_id)

    def get_by_locator(self, locator: str) -> Optional[FileRecord]:
        with self._lock:
            for record in self._records.values():
                if record.locator == locator:
                    return record
        return None

    def add_verification(self, verification: VerificationRecord) -> None:
        with self._lock:
            self._verifications.setdefault(verification.file_id, []).append(
                verification
            )

    def list_verifications(self, file_id: str) -> List[VerificationRecord]:
        with self._lock:
            return list(self._verifications.get(file_id, []))

    def all(self) -> List[FileRecord]:
        """Every record, oldest first."""
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
