"""Metadata index and reservation store backed by the Django ORM.

Every mutation of a file record is a single conditional ``UPDATE`` on
one row. The owner and folder indexes are plain database indexes over
columns of that row, so a rename that moves a file between folders
changes both the record and its index entry in one statement.
"""

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import final

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, Q, QuerySet
from django.utils import timezone

from server.apps.files.exceptions import (
    ConflictError,
    RecordNotFoundError,
    UpstreamUnavailableError,
)
from server.apps.files.infrastructure.pagination import (
    decode_cursor,
    encode_cursor,
)
from server.apps.files.models import File, UploadReservation
from server.apps.files.records import FileRecord, Page, Reservation

logger = logging.getLogger(__name__)


@contextmanager
def _backing_store(action: str, file_id: str = '') -> Iterator[None]:
    """Translate database failures into UpstreamUnavailableError."""
    try:
        yield
    except DatabaseError as exc:
        logger.exception('Metadata store failed during %s: %s', action, file_id)
        raise UpstreamUnavailableError('Metadata store unavailable') from exc


def _parse_id(file_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(file_id))
    except ValueError:
        return None


def _to_record(instance: File) -> FileRecord:
    return FileRecord(
        file_id=str(instance.file_id),
        owner_id=instance.owner_id,
        file_name=instance.file_name,
        file_type=instance.file_type,
        file_size=instance.file_size,
        folder=instance.folder,
        storage_key=instance.storage_key,
        created_at=instance.created_at,
        updated_at=instance.updated_at,
        is_deleted=instance.is_deleted,
        version=instance.version,
    )


def _to_reservation(instance: UploadReservation) -> Reservation:
    return Reservation(
        file_id=str(instance.file_id),
        owner_id=instance.owner_id,
        storage_key=instance.storage_key,
        expires_at=instance.expires_at,
        confirmed_at=instance.confirmed_at,
    )


@final
class DjangoMetadataIndex:
    """File records stored in the ``File`` table."""

    def put(self, record: FileRecord, *, overwrite: bool = False) -> None:
        """Insert or overwrite a record keyed by ``file_id``.

        Args:
            record: Record to store.
            overwrite: Replace an existing record instead of failing.

        Raises:
            ConflictError: If the record exists and ``overwrite`` is False,
                or its storage key is already used by another record.
            UpstreamUnavailableError: If the database fails.
        """
        fields = {
            'owner_id': record.owner_id,
            'file_name': record.file_name,
            'file_type': record.file_type,
            'file_size': record.file_size,
            'folder': record.folder,
            'storage_key': record.storage_key,
            'created_at': record.created_at,
            'updated_at': record.updated_at,
            'is_deleted': record.is_deleted,
            'version': record.version,
        }
        with _backing_store('put', record.file_id):
            try:
                with transaction.atomic():
                    if overwrite:
                        File.all_objects.update_or_create(
                            file_id=record.file_id,
                            defaults=fields,
                        )
                    else:
                        File.all_objects.create(
                            file_id=record.file_id,
                            **fields,
                        )
            except IntegrityError as exc:
                raise ConflictError(
                    f'File record already exists: {record.file_id}',
                ) from exc

        logger.info(
            'File record stored: %s (owner: %s, folder: %r)',
            record.file_id,
            record.owner_id,
            record.folder,
        )

    def get_by_id(self, file_id: str) -> FileRecord:
        """Point lookup, soft-deleted records included.

        Raises:
            RecordNotFoundError: If no record has this id.
            UpstreamUnavailableError: If the database fails.
        """
        pk = _parse_id(file_id)
        if pk is None:
            raise RecordNotFoundError(file_id)

        with _backing_store('get', file_id):
            instance = File.all_objects.filter(file_id=pk).first()
        if instance is None:
            raise RecordNotFoundError(file_id)
        return _to_record(instance)

    def list_by_owner(
        self,
        owner_id: str,
        folder: str | None = None,
        *,
        limit: int,
        cursor: str | None = None,
    ) -> Page:
        """List live records of one owner, optionally in one folder.

        Args:
            owner_id: Owner whose files to list.
            folder: Exact folder to filter on, ``None`` for all folders.
            limit: Maximum number of records.
            cursor: Token returned with the previous page.

        Returns:
            Page of records, newest first.
        """
        queryset = File.objects.filter(owner_id=owner_id)
        if folder is not None:
            queryset = queryset.filter(folder=folder)
        return self._page(queryset, limit, cursor)

    def list_by_folder(
        self,
        folder: str,
        *,
        limit: int,
        cursor: str | None = None,
    ) -> Page:
        """List live records of every owner in one folder."""
        return self._page(File.objects.filter(folder=folder), limit, cursor)

    def soft_delete(self, file_id: str) -> FileRecord:
        """Flag a record as deleted.

        Deleting an already deleted record succeeds without changing it.

        Raises:
            RecordNotFoundError: If no record has this id.
            UpstreamUnavailableError: If the database fails.
        """
        pk = _parse_id(file_id)
        if pk is None:
            raise RecordNotFoundError(file_id)

        with _backing_store('soft delete', file_id):
            updated = File.all_objects.filter(
                file_id=pk,
                is_deleted=False,
            ).update(
                is_deleted=True,
                updated_at=timezone.now(),
                version=F('version') + 1,
            )

        record = self.get_by_id(file_id)
        if updated:
            logger.info('File soft-deleted: %s', file_id)
        else:
            logger.debug('File already deleted: %s', file_id)
        return record

    def rename(
        self,
        file_id: str,
        new_name: str,
        new_folder: str | None = None,
    ) -> FileRecord:
        """Rename a live record and optionally move it to another folder.

        Raises:
            RecordNotFoundError: If the record is missing or deleted.
            UpstreamUnavailableError: If the database fails.
        """
        pk = _parse_id(file_id)
        if pk is None:
            raise RecordNotFoundError(file_id)

        changes: dict[str, object] = {
            'file_name': new_name,
            'updated_at': timezone.now(),
            'version': F('version') + 1,
        }
        if new_folder is not None:
            changes['folder'] = new_folder

        with _backing_store('rename', file_id):
            # Guarded on is_deleted so a rename racing a delete cannot
            # resurrect or touch a deleted record
            updated = File.objects.filter(file_id=pk).update(**changes)

        if not updated:
            raise RecordNotFoundError(file_id)
        return self.get_by_id(file_id)

    def _page(
        self,
        queryset: QuerySet[File],
        limit: int,
        cursor: str | None,
    ) -> Page:
        if cursor:
            position = decode_cursor(cursor)
            queryset = queryset.filter(
                Q(created_at__lt=position.created_at)
                | Q(created_at=position.created_at, file_id__lt=position.file_id),
            )

        with _backing_store('list'):
            rows = list(
                queryset.order_by('-created_at', '-file_id')[:limit + 1],
            )

        records = [_to_record(row) for row in rows[:limit]]
        next_cursor = None
        if len(rows) > limit:
            last = records[-1]
            next_cursor = encode_cursor(last.created_at, last.file_id)
        return Page(records=records, next_cursor=next_cursor)


@final
class DjangoReservationStore:
    """Upload leases stored in the ``UploadReservation`` table."""

    def add(self, reservation: Reservation) -> None:
        """Persist a freshly issued reservation."""
        with _backing_store('reserve', reservation.file_id):
            UploadReservation.objects.create(
                file_id=reservation.file_id,
                owner_id=reservation.owner_id,
                storage_key=reservation.storage_key,
                expires_at=reservation.expires_at,
            )

    def get(self, file_id: str) -> Reservation | None:
        """Return the reservation or ``None`` when unknown."""
        pk = _parse_id(file_id)
        if pk is None:
            return None
        with _backing_store('get reservation', file_id):
            instance = UploadReservation.objects.filter(file_id=pk).first()
        return _to_reservation(instance) if instance else None

    def consume(self, file_id: str, now: datetime) -> bool:
        """Atomically claim an unexpired, unconfirmed reservation."""
        pk = _parse_id(file_id)
        if pk is None:
            return False
        with _backing_store('consume reservation', file_id):
            claimed = UploadReservation.objects.filter(
                file_id=pk,
                confirmed_at__isnull=True,
                expires_at__gt=now,
            ).update(confirmed_at=now)
        return claimed == 1

    def release(self, file_id: str) -> None:
        """Return a claimed reservation to the unconfirmed state."""
        with _backing_store('release reservation', file_id):
            UploadReservation.objects.filter(
                file_id=file_id,
            ).update(confirmed_at=None)

    def find_stale(
        self,
        expired_before: datetime,
        confirmed_before: datetime,
        limit: int,
    ) -> list[Reservation]:
        """Reservations the sweep may delete, oldest first."""
        with _backing_store('find stale reservations'):
            rows = UploadReservation.objects.filter(
                Q(confirmed_at__isnull=True, expires_at__lt=expired_before)
                | Q(confirmed_at__isnull=False, confirmed_at__lt=confirmed_before),
            ).order_by('expires_at')[:limit]
            return [_to_reservation(row) for row in rows]

    def remove(self, file_id: str) -> None:
        """Delete a reservation; unknown ids are ignored."""
        with _backing_store('remove reservation', file_id):
            UploadReservation.objects.filter(file_id=file_id).delete()
