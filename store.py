"""Record stores for the dream journal.

``RecordStore`` is the contract the rest of the project depends on; the
two implementations here cover tests and single-user deployments.  A
hosted document database plugs in by implementing the same three methods.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from records import local_datetime, new_record_fields, utc_now

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class StoreError(RuntimeError):
    """Raised when a store's backing data cannot be read or written."""


@runtime_checkable
class RecordStore(Protocol):
    """Persistence contract for dream records."""

    def create(self, owner_id: str | None, fields: dict[str, Any]) -> str:
        """Persist a new record and return its id.

        The store assigns ``id`` and ``created_at``; it never overwrites an
        existing record.
        """
        ...

    def list(self, owner_id: str | None = None) -> list[dict]:
        """Return the records visible to *owner_id*, newest first.

        ``None`` means guest/shared visibility and returns every record.
        The result is a fully materialised list, not a cursor.
        """
        ...

    def delete(self, record_id: str) -> None:
        """Remove a record.  Unknown ids are ignored."""
        ...


def _as_utc(value: Any) -> datetime | None:
    """Parse a stored ``created_at`` into an aware UTC datetime.

    Naive values are local time, the same rule the statistics use.
    """
    dt = local_datetime(value)
    if dt is None:
        return None
    return dt.astimezone(timezone.utc)


def _sort_newest_first(records: list[dict]) -> list[dict]:
    return sorted(
        records,
        key=lambda r: _as_utc(r.get("created_at")) or _EPOCH,
        reverse=True,
    )


class InMemoryRecordStore:
    """List-backed ``RecordStore``.

    ``created_at`` values are strictly increasing even when two records are
    created within the same clock tick or the clock steps backwards.
    """

    def __init__(self, records: list[dict] | None = None) -> None:
        self._records: list[dict] = [copy.deepcopy(r) for r in records or []]
        stamps = [_as_utc(r.get("created_at")) for r in self._records]
        self._last_created: datetime | None = max(
            (s for s in stamps if s is not None), default=None
        )

    def _next_created_at(self) -> datetime:
        now = utc_now()
        if self._last_created is not None and now <= self._last_created:
            now = self._last_created + timedelta(microseconds=1)
        self._last_created = now
        return now

    def _new_id(self) -> str:
        existing = {r.get("id") for r in self._records}
        while True:
            record_id = uuid.uuid4().hex
            if record_id not in existing:
                return record_id

    def create(self, owner_id: str | None, fields: dict[str, Any]) -> str:
        record = new_record_fields(**{**fields, "owner_id": owner_id})
        record_id = self._new_id()
        record = {
            "id": record_id,
            "created_at": self._next_created_at().isoformat(),
            **record,
        }
        self._records.append(record)
        self._changed()
        logger.info("Created dream record %s (owner=%s)", record_id, owner_id)
        return record_id

    def list(self, owner_id: str | None = None) -> list[dict]:
        visible = [
            r for r in self._records
            if owner_id is None or r.get("owner_id") == owner_id
        ]
        return [copy.deepcopy(r) for r in _sort_newest_first(visible)]

    def delete(self, record_id: str) -> None:
        remaining = [r for r in self._records if r.get("id") != record_id]
        if len(remaining) == len(self._records):
            logger.debug("Delete of unknown record %s ignored", record_id)
            return
        self._records = remaining
        self._changed()
        logger.info("Deleted dream record %s", record_id)

    def _changed(self) -> None:
        """Hook for subclasses that persist after each mutation."""


def _read_document(path: Path) -> list[dict]:
    """Read a store file.

    Accepts either ``{"dreams": [...]}`` or a bare list.  Non-dict
    entries are skipped with a warning.

    Raises:
        FileNotFoundError: If *path* does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        StoreError: If the JSON has an unexpected shape.
    """
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    if not text.strip():
        return []
    data = json.loads(text)
    if isinstance(data, dict):
        data = data.get("dreams", [])
    if not isinstance(data, list):
        raise StoreError(f"{path}: expected a list of dreams, got {type(data).__name__}")

    records = [r for r in data if isinstance(r, dict)]
    if len(records) != len(data):
        logger.warning("%s: skipped %d non-object entries", path, len(data) - len(records))
    return records


def load_records(path: str | Path) -> list[dict]:
    """Load every record from a JSON store file, newest first.

    Args:
        path: Filesystem path of the store file.

    Returns:
        List of record dicts.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file contains invalid JSON.
        StoreError: If the JSON is not a dream list.
    """
    return _sort_newest_first(_read_document(Path(path)))


class JsonRecordStore(InMemoryRecordStore):
    """``RecordStore`` persisted to a single JSON file.

    The file is rewritten atomically (temp file, fsync, rename) after every
    create or delete.  A missing file is an empty store.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        try:
            records = _read_document(self.path)
        except FileNotFoundError:
            records = []
        except json.JSONDecodeError as e:
            raise StoreError(f"{self.path} is not valid JSON: {e}") from e
        super().__init__(records)

    def _changed(self) -> None:
        self._save()

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"dreams": self._records}, indent=2, ensure_ascii=False) + "\n"
        tmp = None
        try:
            # unique name per write so concurrent writers never share a temp file
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=self.path.name + ".",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp = f.name
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            if tmp is not None and os.path.exists(tmp):
                os.unlink(tmp)
            raise StoreError(f"Could not write {self.path}: {e}") from e
