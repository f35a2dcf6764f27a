"""Business logic for the two-phase upload.

1. ``reserve``: allocate a file id and storage key, hand the client a
   short-lived presigned PUT URL. Nothing is written to the index.
2. The client uploads the bytes straight to the object store.
3. ``confirm``: consume the reservation and create the file record.

Reservation states::

    RESERVED --confirm--> CONFIRMED   (terminal, record created)
    RESERVED --lease elapses--> EXPIRED   (terminal, no record)

The coordinator does not check that bytes exist at the key or match
the declared size and type; the object store's own guarantees cover
that. Objects uploaded under reservations that are never confirmed are
garbage and removed by ``sweep``.
"""

import dataclasses
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import final

from django.core.exceptions import ValidationError
from django.utils import timezone

from server.apps.files.exceptions import (
    AccessDeniedError,
    AlreadyConfirmedError,
    ConflictError,
    RecordNotFoundError,
    ReservationExpiredError,
)
from server.apps.files.infrastructure.metadata import (
    build_storage_key,
    normalize_folder,
    validate_file_name,
    validate_file_size,
    validate_file_type,
    validate_storage_key,
)
from server.apps.files.protocols import (
    MetadataIndex,
    ObjectStore,
    ReservationStore,
)
from server.apps.files.records import FileRecord, Reservation

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class ReservedUpload:
    """What the client needs to upload and later confirm."""

    file_id: str
    storage_key: str
    upload_url: str
    expires_at: datetime


@dataclasses.dataclass(frozen=True, slots=True)
class SweepResult:
    """Outcome of one reservation sweep."""

    expired: int = 0
    purged: int = 0


@final
class UploadCoordinator:
    """Turns externally uploaded objects into file records."""

    def __init__(
        self,
        index: MetadataIndex,
        reservations: ReservationStore,
        object_store: ObjectStore,
        *,
        handle_ttl: int,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        """Initialize the coordinator.

        Args:
            index: Metadata index receiving confirmed records.
            reservations: Store of outstanding upload leases.
            object_store: Issues presigned write handles.
            handle_ttl: Lease length and write handle lifetime, seconds.
            clock: Source of the current time.
        """
        self._index = index
        self._reservations = reservations
        self._object_store = object_store
        self._handle_ttl = handle_ttl
        self._clock = clock

    def reserve(  # noqa: WPS211
        self,
        owner_id: str,
        file_name: str,
        file_size: int,
        file_type: str,
        folder: str | None = '',
    ) -> ReservedUpload:
        """Reserve a storage key and issue a write handle for it.

        Args:
            owner_id: Uploading user.
            file_name: Display name of the file.
            file_size: Declared size in bytes.
            file_type: Declared MIME type.
            folder: Target folder, empty for root.

        Returns:
            File id, storage key, presigned URL and lease expiry.

        Raises:
            ValidationError: If any field is missing or malformed.
            UpstreamUnavailableError: If a backing store fails.
        """
        file_name = validate_file_name(file_name)
        validate_file_size(file_size)
        validate_file_type(file_type)
        folder = normalize_folder(folder)

        file_id = str(uuid.uuid4())
        storage_key = build_storage_key(owner_id, folder, file_id, file_name)
        upload_url = self._object_store.get_write_handle(
            storage_key,
            file_type,
            self._handle_ttl,
        )
        expires_at = self._clock() + timedelta(seconds=self._handle_ttl)

        self._reservations.add(Reservation(
            file_id=file_id,
            owner_id=owner_id,
            storage_key=storage_key,
            expires_at=expires_at,
        ))
        logger.info(
            'Upload reserved: %s (owner: %s, key: %s, expires: %s)',
            file_id,
            owner_id,
            storage_key,
            expires_at.isoformat(),
        )
        return ReservedUpload(
            file_id=file_id,
            storage_key=storage_key,
            upload_url=upload_url,
            expires_at=expires_at,
        )

    def confirm(  # noqa: WPS211
        self,
        file_id: str,
        storage_key: str,
        file_name: str,
        file_size: int,
        file_type: str,
        folder: str | None,
        owner_id: str,
    ) -> FileRecord:
        """Consume a reservation and create the file record.

        Safe against client retries: exactly one call per reservation
        succeeds, replays fail with AlreadyConfirmedError.

        Args:
            file_id: Id returned by ``reserve``.
            storage_key: Key returned by ``reserve``.
            file_name: Display name of the file.
            file_size: Size in bytes.
            file_type: MIME type.
            folder: Folder of the new record, empty for root.
            owner_id: Caller confirming the upload.

        Returns:
            The created record.

        Raises:
            ValidationError: If fields are malformed or the key does not
                belong to the reservation.
            AccessDeniedError: If the caller does not own the reservation.
            AlreadyConfirmedError: If the reservation was consumed before.
            ConflictError: If another confirmation of the same upload has
                claimed the reservation but not yet written the record.
            ReservationExpiredError: If the lease elapsed or is unknown.
            UpstreamUnavailableError: If a backing store fails.
        """
        file_name = validate_file_name(file_name)
        file_size = validate_file_size(file_size)
        file_type = validate_file_type(file_type)
        folder = normalize_folder(folder)
        validate_storage_key(owner_id, storage_key)

        now = self._clock()
        reservation = self._reservations.get(file_id)
        if reservation is None:
            # Either swept after expiry or confirmed long ago and purged
            if self._record_exists(file_id):
                raise AlreadyConfirmedError(file_id)
            logger.warning('Confirm of unknown reservation: %s', file_id)
            raise ReservationExpiredError(file_id)

        if reservation.owner_id != owner_id:
            logger.warning(
                'Confirm by non-owner: %s (owner: %s, caller: %s)',
                file_id,
                reservation.owner_id,
                owner_id,
            )
            raise AccessDeniedError('Only the uploader may confirm this upload')
        if reservation.storage_key != storage_key:
            raise ValidationError('Storage key does not match reservation')

        if not self._reservations.consume(file_id, now):
            self._reject_unclaimable(file_id, now)

        record = FileRecord(
            file_id=file_id,
            owner_id=owner_id,
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
            folder=folder,
            storage_key=storage_key,
            created_at=now,
            updated_at=now,
        )
        try:
            self._index.put(record)
        except ConflictError as exc:
            raise AlreadyConfirmedError(file_id) from exc
        except Exception:
            # No record was written, so the claim goes back for a retry
            self._reservations.release(file_id)
            raise

        logger.info(
            'Upload confirmed: %s (owner: %s, size: %d)',
            file_id,
            owner_id,
            file_size,
        )
        return record

    def sweep(
        self,
        *,
        retention: timedelta,
        batch_size: int,
        dry_run: bool = False,
    ) -> SweepResult:
        """Delete stale reservations and the objects they orphaned.

        Expired unconfirmed reservations may have bytes uploaded under
        their key; those objects have no record and are discarded.
        Confirmed reservations only need to outlive client retries and
        are dropped after ``retention``; a claim whose record was never
        written left an orphan too, and its object is discarded as well.

        Args:
            retention: How long consumed reservations are kept.
            batch_size: Maximum reservations handled per call.
            dry_run: Report without deleting anything.

        Returns:
            Counts of expired and purged-confirmed reservations.
        """
        now = self._clock()
        stale = self._reservations.find_stale(
            expired_before=now,
            confirmed_before=now - retention,
            limit=batch_size,
        )

        expired = 0
        purged = 0
        for reservation in stale:
            if reservation.confirmed_at is None:
                expired += 1
            else:
                purged += 1
            if dry_run:
                continue

            if reservation.confirmed_at is None or not self._record_exists(
                reservation.file_id,
            ):
                self._object_store.discard_object(reservation.storage_key)
            self._reservations.remove(reservation.file_id)

        logger.info(
            'Reservation sweep%s: %d expired, %d confirmed purged',
            ' (dry run)' if dry_run else '',
            expired,
            purged,
        )
        return SweepResult(expired=expired, purged=purged)

    def _record_exists(self, file_id: str) -> bool:
        try:
            self._index.get_by_id(file_id)
        except RecordNotFoundError:
            return False
        return True

    def _reject_unclaimable(self, file_id: str, now: datetime) -> None:
        current = self._reservations.get(file_id)
        if current is not None and current.confirmed_at is not None:
            if self._record_exists(file_id):
                logger.warning('Replayed upload confirmation: %s', file_id)
                raise AlreadyConfirmedError(file_id)
            logger.warning('Upload confirmation in progress: %s', file_id)
            raise ConflictError(f'Upload confirmation in progress: {file_id}')

        logger.warning(
            'Confirm after reservation expiry: %s (now: %s)',
            file_id,
            now.isoformat(),
        )
        raise ReservationExpiredError(file_id)
