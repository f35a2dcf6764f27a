"""In-memory metadata index and reservation store.

Same contracts as the Django-backed classes, kept in dictionaries behind
a lock. Used by unit tests and for wiring the engine without a database.
The owner and folder indexes are maintained explicitly; every mutation
updates record and index entries under the same lock acquisition.
"""

import dataclasses
import threading
from collections import defaultdict
from datetime import datetime
from typing import final

from django.utils import timezone

from server.apps.files.exceptions import ConflictError, RecordNotFoundError
from server.apps.files.infrastructure.pagination import (
    decode_cursor,
    encode_cursor,
)
from server.apps.files.records import FileRecord, Page, Reservation


@final
class InMemoryMetadataIndex:
    """File records kept in process memory."""

    def __init__(self) -> None:
        """Initialize empty primary storage and secondary indexes."""
        self._lock = threading.Lock()
        self._records: dict[str, FileRecord] = {}
        self._by_owner: defaultdict[str, set[str]] = defaultdict(set)
        self._by_folder: defaultdict[str, set[str]] = defaultdict(set)
        self._storage_keys: dict[str, str] = {}

    def put(self, record: FileRecord, *, overwrite: bool = False) -> None:
        """Insert or overwrite a record keyed by ``file_id``."""
        with self._lock:
            existing = self._records.get(record.file_id)
            if existing is not None and not overwrite:
                raise ConflictError(
                    f'File record already exists: {record.file_id}',
                )
            key_owner = self._storage_keys.get(record.storage_key)
            if key_owner is not None and key_owner != record.file_id:
                raise ConflictError(
                    f'Storage key already in use: {record.storage_key}',
                )
            if existing is not None:
                self._unindex(existing)
                self._storage_keys.pop(existing.storage_key, None)
            self._store(record)

    def get_by_id(self, file_id: str) -> FileRecord:
        """Point lookup, soft-deleted records included."""
        with self._lock:
            record = self._records.get(file_id)
        if record is None:
            raise RecordNotFoundError(file_id)
        return record

    def list_by_owner(
        self,
        owner_id: str,
        folder: str | None = None,
        *,
        limit: int,
        cursor: str | None = None,
    ) -> Page:
        """List live records of one owner, optionally in one folder."""
        with self._lock:
            candidates = [
                self._records[file_id]
                for file_id in self._by_owner.get(owner_id, ())
            ]
        if folder is not None:
            candidates = [rec for rec in candidates if rec.folder == folder]
        return _paginate(candidates, limit, cursor)

    def list_by_folder(
        self,
        folder: str,
        *,
        limit: int,
        cursor: str | None = None,
    ) -> Page:
        """List live records of every owner in one folder."""
        with self._lock:
            candidates = [
                self._records[file_id]
                for file_id in self._by_folder.get(folder, ())
            ]
        return _paginate(candidates, limit, cursor)

    def soft_delete(self, file_id: str) -> FileRecord:
        """Flag a record as deleted; repeated calls are no-ops."""
        with self._lock:
            record = self._records.get(file_id)
            if record is None:
                raise RecordNotFoundError(file_id)
            if record.is_deleted:
                return record
            updated = dataclasses.replace(
                record,
                is_deleted=True,
                updated_at=timezone.now(),
                version=record.version + 1,
            )
            self._unindex(record)
            self._store(updated)
            return updated

    def rename(
        self,
        file_id: str,
        new_name: str,
        new_folder: str | None = None,
    ) -> FileRecord:
        """Rename a live record and optionally move it to another folder."""
        with self._lock:
            record = self._records.get(file_id)
            if record is None or record.is_deleted:
                raise RecordNotFoundError(file_id)
            updated = dataclasses.replace(
                record,
                file_name=new_name,
                folder=record.folder if new_folder is None else new_folder,
                updated_at=timezone.now(),
                version=record.version + 1,
            )
            self._unindex(record)
            self._store(updated)
            return updated

    def _store(self, record: FileRecord) -> None:
        self._records[record.file_id] = record
        self._storage_keys[record.storage_key] = record.file_id
        # Deleted records stay in primary storage but leave the indexes
        if not record.is_deleted:
            self._by_owner[record.owner_id].add(record.file_id)
            self._by_folder[record.folder].add(record.file_id)

    def _unindex(self, record: FileRecord) -> None:
        self._by_owner[record.owner_id].discard(record.file_id)
        self._by_folder[record.folder].discard(record.file_id)


def _paginate(
    candidates: list[FileRecord],
    limit: int,
    cursor: str | None,
) -> Page:
    ordered = sorted(
        candidates,
        key=lambda rec: (rec.created_at, rec.file_id),
        reverse=True,
    )
    if cursor:
        position = decode_cursor(cursor)
        ordered = [
            rec for rec in ordered
            if (rec.created_at, rec.file_id) < tuple(position)
        ]

    records = ordered[:limit]
    next_cursor = None
    if len(ordered) > limit:
        last = records[-1]
        next_cursor = encode_cursor(last.created_at, last.file_id)
    return Page(records=records, next_cursor=next_cursor)


@final
class InMemoryReservationStore:
    """Upload leases kept in process memory."""

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._lock = threading.Lock()
        self._reservations: dict[str, Reservation] = {}

    def add(self, reservation: Reservation) -> None:
        """Persist a freshly issued reservation."""
        with self._lock:
            self._reservations[reservation.file_id] = reservation

    def get(self, file_id: str) -> Reservation | None:
        """Return the reservation or ``None`` when unknown."""
        with self._lock:
            return self._reservations.get(file_id)

    def consume(self, file_id: str, now: datetime) -> bool:
        """Atomically claim an unexpired, unconfirmed reservation."""
        with self._lock:
            reservation = self._reservations.get(file_id)
            if reservation is None or reservation.confirmed_at is not None:
                return False
            if reservation.is_expired(now):
                return False
            self._reservations[file_id] = dataclasses.replace(
                reservation,
                confirmed_at=now,
            )
            return True

    def release(self, file_id: str) -> None:
        """Return a claimed reservation to the unconfirmed state."""
        with self._lock:
            reservation = self._reservations.get(file_id)
            if reservation is not None:
                self._reservations[file_id] = dataclasses.replace(
                    reservation,
                    confirmed_at=None,
                )

    def find_stale(
        self,
        expired_before: datetime,
        confirmed_before: datetime,
        limit: int,
    ) -> list[Reservation]:
        """Reservations the sweep may delete, oldest first."""
        with self._lock:
            stale = [
                res for res in self._reservations.values()
                if (res.confirmed_at is None and res.expires_at < expired_before)
                or (
                    res.confirmed_at is not None
                    and res.confirmed_at < confirmed_before
                )
            ]
        stale.sort(key=lambda res: res.expires_at)
        return stale[:limit]

    def remove(self, file_id: str) -> None:
        """Delete a reservation; unknown ids are ignored."""
        with self._lock:
            self._reservations.pop(file_id, None)
