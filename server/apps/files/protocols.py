"""Capability interfaces injected into the engine's components.

Each component receives its collaborators at construction, so tests can
hand in the in-memory implementations instead of the database and S3.
"""

from datetime import datetime
from typing import Protocol

from server.apps.files.records import FileRecord, Page, Reservation


class MetadataIndex(Protocol):
    """Durable store of file records with owner and folder indexes."""

    def put(self, record: FileRecord, *, overwrite: bool = False) -> None:
        """Insert ``record``; raise ConflictError if it exists and not ``overwrite``."""

    def get_by_id(self, file_id: str) -> FileRecord:
        """Return the record, deleted or not; raise RecordNotFoundError."""

    def list_by_owner(
        self,
        owner_id: str,
        folder: str | None = None,
        *,
        limit: int,
        cursor: str | None = None,
    ) -> Page:
        """Non-deleted records of ``owner_id``, newest first."""

    def list_by_folder(
        self,
        folder: str,
        *,
        limit: int,
        cursor: str | None = None,
    ) -> Page:
        """Non-deleted records in ``folder`` regardless of owner."""

    def soft_delete(self, file_id: str) -> FileRecord:
        """Flag the record as deleted; a repeated call is a no-op."""

    def rename(
        self,
        file_id: str,
        new_name: str,
        new_folder: str | None = None,
    ) -> FileRecord:
        """Change the name and optionally the folder of a live record."""


class ReservationStore(Protocol):
    """Short-lived upload leases."""

    def add(self, reservation: Reservation) -> None:
        """Persist a freshly issued reservation."""

    def get(self, file_id: str) -> Reservation | None:
        """Return the reservation or ``None`` when unknown."""

    def consume(self, file_id: str, now: datetime) -> bool:
        """Mark an unexpired, unconfirmed reservation confirmed.

        Returns ``True`` only for the single caller that wins.
        """

    def release(self, file_id: str) -> None:
        """Undo ``consume`` when the record could not be written."""

    def find_stale(
        self,
        expired_before: datetime,
        confirmed_before: datetime,
        limit: int,
    ) -> list[Reservation]:
        """Reservations the sweep may delete, oldest first.

        Unconfirmed leases that expired before ``expired_before`` and
        consumed ones confirmed before ``confirmed_before``.
        """

    def remove(self, file_id: str) -> None:
        """Delete a reservation; unknown ids are ignored."""


class ObjectStore(Protocol):
    """External object store issuing direct-transfer handles."""

    def get_write_handle(self, key: str, content_type: str, ttl: int) -> str:
        """Presigned URL allowing one PUT of ``key`` for ``ttl`` seconds."""

    def get_read_handle(self, key: str, ttl: int) -> str:
        """Presigned URL allowing GET of ``key`` for ``ttl`` seconds."""

    def discard_object(self, key: str) -> None:
        """Best-effort removal of an orphaned object."""
