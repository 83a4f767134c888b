"""Tracking record storage for laundrytrack."""

import asyncio
import fcntl
import json
import os
import tempfile
from collections.abc import AsyncIterator, Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from .config import DATA_DIR, POLL_SECONDS, TRACKING_DIR
from .errors import TrackingExistsError, TrackingNotFoundError
from .incidents import open_incidents
from .models import IncidentFilter, OrderState, TrackingRecord

T = TypeVar("T")


class TrackingStore:
    """Reads and writes tracking records, one JSON file per record."""

    def __init__(self, data_dir: Path | None = None):
        """
        Initialize TrackingStore.

        Args:
            data_dir: Override base data directory (for testing).
        """
        self.data_dir = data_dir or DATA_DIR
        self.records_dir = self.data_dir / TRACKING_DIR

    def _ensure_dir(self) -> None:
        self.records_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, record_id: str) -> Path:
        return self.records_dir / f"{record_id}.json"

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the store for read-modify-write operations."""
        self._ensure_dir()
        lock_path = self.records_dir / ".tracking.lock"
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read(self, record_id: str) -> TrackingRecord:
        path = self._path(record_id)
        if not path.exists():
            raise TrackingNotFoundError(record_id)
        with open(path, "r", encoding="utf-8") as f:
            return TrackingRecord.from_dict(json.load(f))

    def _write(self, record: TrackingRecord) -> None:
        """Write a record atomically (write to temp, then rename)."""
        self._ensure_dir()
        fd, temp_path = tempfile.mkstemp(
            dir=self.records_dir, prefix=".tracking_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(temp_path, self._path(record.id))
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def exists(self, record_id: str) -> bool:
        return self._path(record_id).exists()

    def get(self, record_id: str) -> TrackingRecord:
        """
        Get a tracking record by ID.

        Raises:
            TrackingNotFoundError: If the record doesn't exist.
        """
        return self._read(record_id)

    def create(self, record: TrackingRecord) -> TrackingRecord:
        """
        Store a new tracking record.

        Raises:
            TrackingExistsError: If a record with the same ID exists.
        """
        with self._lock():
            if self.exists(record.id):
                raise TrackingExistsError(record.id)
            self._write(record)
        return record

    def save(self, record: TrackingRecord) -> None:
        """Overwrite a tracking record."""
        with self._lock():
            self._write(record)

    def update(
        self,
        record_id: str,
        mutate: Callable[[TrackingRecord], T],
    ) -> tuple[TrackingRecord, T]:
        """
        Load, mutate and persist a record as a single locked write.

        If `mutate` raises, nothing is written and the exception propagates.

        Returns:
            Tuple of (updated record, value returned by `mutate`).

        Raises:
            TrackingNotFoundError: If the record doesn't exist.
        """
        with self._lock():
            record = self._read(record_id)
            result = mutate(record)
            self._write(record)
        return record, result

    def delete(self, record_id: str) -> bool:
        """
        Hard-delete a record.

        Returns:
            True if a record was deleted.
        """
        with self._lock():
            path = self._path(record_id)
            if not path.exists():
                return False
            path.unlink()
            return True

    def list_records(self) -> list[TrackingRecord]:
        """List all tracking records, oldest first."""
        if not self.records_dir.exists():
            return []
        records: list[TrackingRecord] = []
        for path in self.records_dir.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    records.append(TrackingRecord.from_dict(json.load(f)))
            except FileNotFoundError:
                continue  # deleted between glob and open
        records.sort(key=lambda r: (r.created_at, r.id))
        return records

    def query(
        self,
        active: bool | None = None,
        states: Iterable[OrderState] | None = None,
        incidents: IncidentFilter | None = None,
    ) -> list[TrackingRecord]:
        """
        Filter tracking records.

        Args:
            active: If set, only records with this active flag.
            states: If set, only records whose current state is in this set.
            incidents: OPEN keeps records with an unresolved incident, NONE
                keeps records that never had one.
        """
        wanted = set(states) if states is not None else None
        result = []
        for record in self.list_records():
            if active is not None and record.active != active:
                continue
            if wanted is not None and record.state not in wanted:
                continue
            if incidents == IncidentFilter.OPEN and not open_incidents(record):
                continue
            if incidents == IncidentFilter.NONE and record.incidents:
                continue
            result.append(record)
        return result

    async def watch(
        self,
        active: bool | None = None,
        states: Iterable[OrderState] | None = None,
        poll_interval: float | None = None,
    ) -> AsyncIterator[list[TrackingRecord]]:
        """
        Continuously yield the records matching a query.

        The current result is yielded immediately, then again every time it
        changes. Iteration stops when the consumer stops (or is cancelled).
        """
        interval = POLL_SECONDS if poll_interval is None else poll_interval
        states = list(states) if states is not None else None
        last: list[dict[str, Any]] | None = None
        while True:
            records = await asyncio.to_thread(self.query, active, states)
            snapshot = [r.to_dict() for r in records]
            if snapshot != last:
                last = snapshot
                yield records
            await asyncio.sleep(interval)
