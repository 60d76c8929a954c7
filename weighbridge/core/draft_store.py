"""
Weighing Draft Store
=====================
Durable, thread-safe collection of weighing drafts. Each store
has a name (one collection per operating context, e.g. the
gatehouse terminal or the driver self-service kiosk) and keeps
its records in `<directory>/<name>.json`. Without a directory
the store is memory-only.

The store enforces the one-open-draft-per-plate rule itself:
the duplicate check and the write happen under the same lock,
so concurrent callers cannot both open a trip for one plate.
"""

import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from weighbridge.core.errors import (
    DraftNotFoundError,
    DraftStateError,
    DuplicateDraftError,
)
from weighbridge.core.models import DraftStatus, WeighingDraft, normalize_plate

logger = logging.getLogger(__name__)

DEFAULT_STORE_NAME = "weighing_drafts"

# Fields a patch may not touch
_IMMUTABLE_FIELDS = ("id", "created_at")


class DraftStore:
    """
    Keyed collection of WeighingDraft records.

    Records handed out are copies; change them through update().
    """

    def __init__(self, directory: Optional[str] = None, name: str = DEFAULT_STORE_NAME):
        self.name = name
        self._path: Optional[Path] = None
        if directory:
            Path(directory).mkdir(parents=True, exist_ok=True)
            self._path = Path(directory) / f"{name}.json"
        self._lock = threading.RLock()
        self._plate_locks: dict[str, _PlateLock] = {}
        self._drafts: dict[str, WeighingDraft] = {}
        self._load()

    # ── Queries ──────────────────────────────────────────────

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._drafts)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def get(self, draft_id: str) -> Optional[WeighingDraft]:
        with self._lock:
            draft = self._drafts.get(draft_id)
            return _copy(draft) if draft else None

    def find_open_by_plate(self, plate: str) -> Optional[WeighingDraft]:
        """The open (DRAFT) record for a plate, if any."""
        key = normalize_plate(plate)
        if not key:
            return None
        with self._lock:
            draft = self._find_open(key)
            return _copy(draft) if draft else None

    def list(self, status: DraftStatus = None, plate: str = None) -> list:
        """All drafts, newest first, optionally filtered."""
        key = normalize_plate(plate) if plate else None
        with self._lock:
            drafts = [
                _copy(d) for d in self._drafts.values()
                if (status is None or d.status == status)
                and (key is None or d.vehicle_number == key)
            ]
        return sorted(drafts, key=lambda d: d.created_at, reverse=True)

    # ── Mutations ────────────────────────────────────────────

    def insert(self, draft: WeighingDraft) -> WeighingDraft:
        """
        Add a draft. Raises DuplicateDraftError for a second open trip
        and DraftStateError for an inconsistent record. Nothing
        changes in memory unless the write to disk succeeds.
        """
        with self._lock:
            if draft.id in self._drafts:
                raise DraftStateError(f"Draft id already exists: {draft.id}")
            _check_invariants(draft)
            if draft.is_open and self._find_open(draft.vehicle_number):
                raise DuplicateDraftError(draft.vehicle_number)
            drafts = dict(self._drafts)
            drafts[draft.id] = _copy(draft)
            self._save(drafts)
            self._drafts = drafts
        logger.info("Inserted draft %s for %s", draft.id, draft.vehicle_number)
        return _copy(draft)

    def update(self, draft_id: str, patch: dict) -> WeighingDraft:
        """
        Apply field changes to a draft and return the new record.

        Raises DraftNotFoundError for an unknown id, DraftStateError
        when a completed draft would be reopened or the result breaks
        the weighing invariants, and DuplicateDraftError when an open
        draft would move onto a plate that already has one.
        """
        with self._lock:
            current = self._drafts.get(draft_id)
            if current is None:
                raise DraftNotFoundError(draft_id)

            changes = {k: v for k, v in patch.items() if k not in _IMMUTABLE_FIELDS}
            unknown = set(changes) - set(WeighingDraft.__dataclass_fields__)
            if unknown:
                raise ValueError(f"Unknown draft fields: {sorted(unknown)}")

            updated = _copy(current)
            for key, value in changes.items():
                setattr(updated, key, value)
            updated.vehicle_number = normalize_plate(updated.vehicle_number)
            updated.status = DraftStatus(updated.status)
            updated.updated_at = time.time()

            if (current.status == DraftStatus.COMPLETED
                    and updated.status == DraftStatus.DRAFT):
                raise DraftStateError(f"Completed draft {draft_id} cannot be reopened")
            _check_invariants(updated)
            if updated.is_open:
                other = self._find_open(updated.vehicle_number)
                if other is not None and other.id != draft_id:
                    raise DuplicateDraftError(updated.vehicle_number)

            drafts = dict(self._drafts)
            drafts[draft_id] = updated
            self._save(drafts)
            self._drafts = drafts
            return _copy(updated)

    @contextmanager
    def plate_lock(self, plate: str):
        """
        Serialize a check-then-act sequence for one plate. The lock
        is dropped again once no caller holds or waits for it.
        """
        key = normalize_plate(plate)
        with self._lock:
            entry = self._plate_locks.get(key)
            if entry is None:
                entry = self._plate_locks[key] = _PlateLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._plate_locks[key]

    # ── Persistence ──────────────────────────────────────────

    def _find_open(self, key: str) -> Optional[WeighingDraft]:
        for draft in self._drafts.values():
            if draft.vehicle_number == key and draft.is_open:
                return draft
        return None

    def _save(self, drafts: dict):
        """Write the whole collection (write-then-replace)."""
        if self._path is None:
            return
        data = [d._to_dict() for d in drafts.values()]
        tmp_path = self._path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def _load(self):
        if self._path is None or not self._path.exists():
            return
        records = json.loads(self._path.read_text(encoding="utf-8"))
        for record in records:
            try:
                draft = WeighingDraft._from_dict(record)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable draft record in %s: %r",
                               self._path, record)
                continue
            self._drafts[draft.id] = draft
        logger.info("Loaded %d drafts from %s", len(self._drafts), self._path)


def _copy(draft: WeighingDraft) -> WeighingDraft:
    return WeighingDraft._from_dict(draft._to_dict())


def _check_invariants(draft: WeighingDraft):
    issues = draft.invariant_issues()
    if issues:
        raise DraftStateError(f"Draft {draft.id} rejected: {'; '.join(issues)}")


class _PlateLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0
