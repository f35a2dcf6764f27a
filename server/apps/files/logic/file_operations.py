"""Business logic for authorized file operations.

Every operation resolves the record first and authorizes second, so a
missing or deleted file is reported as not found even to callers who
would not be allowed to touch it.
"""

import dataclasses
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Final, final

from django.core.exceptions import ValidationError
from django.utils import timezone

from server.apps.files.exceptions import RecordNotFoundError
from server.apps.files.infrastructure.metadata import (
    normalize_folder,
    validate_file_name,
)
from server.apps.files.logic.role_policy import (
    Operation,
    Role,
    ensure_authorized,
)
from server.apps.files.protocols import MetadataIndex, ObjectStore
from server.apps.files.records import FileRecord, Page

logger = logging.getLogger(__name__)

# Roles whose listings cover every owner's files
_GLOBAL_LISTING_ROLES: Final = frozenset((Role.ADMIN, Role.EDITOR))


@dataclasses.dataclass(frozen=True, slots=True)
class DownloadHandle:
    """Presigned read URL plus the metadata the client displays."""

    download_url: str
    record: FileRecord
    expires_at: datetime


@final
class FileQueryService:
    """Serves listings, downloads, renames and deletes."""

    def __init__(  # noqa: WPS211
        self,
        index: MetadataIndex,
        object_store: ObjectStore,
        *,
        download_ttl: int,
        default_page_size: int,
        max_page_size: int,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        """Initialize the service.

        Args:
            index: Metadata index to query and mutate.
            object_store: Issues presigned read handles.
            download_ttl: Lifetime of read handles in seconds.
            default_page_size: Page size when the caller gives none.
            max_page_size: Largest page size a caller may request.
            clock: Source of the current time.
        """
        self._index = index
        self._object_store = object_store
        self._download_ttl = download_ttl
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size
        self._clock = clock

    def list(  # noqa: WPS125
        self,
        caller_id: str,
        role: Role | str,
        folder: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page:
        """List files visible to the caller.

        Admins and editors list a folder across all owners (the root
        when no folder is given). Viewers list only their own files, in
        one folder or, without a folder, in all of them. The choice of
        index is the visibility boundary.

        Args:
            caller_id: Authenticated caller.
            role: Caller's role.
            folder: Folder to list.
            limit: Page size.
            cursor: Token from the previous page.

        Returns:
            Page of records, newest first.

        Raises:
            ValidationError: If folder, limit or cursor are malformed.
            AccessDeniedError: If the role is unknown.
        """
        page_size = self._page_size(limit)
        normalized = None if folder is None else normalize_folder(folder)

        if role in _GLOBAL_LISTING_ROLES:
            ensure_authorized(role, caller_id, caller_id, Operation.LIST_ALL)
            return self._index.list_by_folder(
                normalized or '',
                limit=page_size,
                cursor=cursor,
            )

        ensure_authorized(role, caller_id, caller_id, Operation.LIST_OWN)
        return self._index.list_by_owner(
            caller_id,
            normalized,
            limit=page_size,
            cursor=cursor,
        )

    def download(
        self,
        caller_id: str,
        role: Role | str,
        file_id: str,
    ) -> DownloadHandle:
        """Issue a presigned read URL for a file.

        Raises:
            RecordNotFoundError: If the file is missing or deleted.
            AccessDeniedError: If the caller may not read it.
            UpstreamUnavailableError: If a backing store fails.
        """
        record = self._get_live(file_id)
        ensure_authorized(role, record.owner_id, caller_id, Operation.DOWNLOAD)

        download_url = self._object_store.get_read_handle(
            record.storage_key,
            self._download_ttl,
        )
        logger.info('Download issued: %s (caller: %s)', file_id, caller_id)
        return DownloadHandle(
            download_url=download_url,
            record=record,
            expires_at=self._clock() + timedelta(seconds=self._download_ttl),
        )

    def rename(
        self,
        caller_id: str,
        role: Role | str,
        file_id: str,
        new_name: str,
        new_folder: str | None = None,
    ) -> FileRecord:
        """Rename a file and optionally move it to another folder.

        Viewers are refused even on their own files.

        Args:
            caller_id: Authenticated caller.
            role: Caller's role.
            file_id: File to rename.
            new_name: New display name.
            new_folder: New folder, ``None`` to keep the current one.

        Returns:
            The updated record.

        Raises:
            ValidationError: If the new name or folder is malformed.
            RecordNotFoundError: If the file is missing or deleted.
            AccessDeniedError: If the caller may not rename it.
        """
        new_name = validate_file_name(new_name)
        if new_folder is not None:
            new_folder = normalize_folder(new_folder)

        record = self._get_live(file_id)
        ensure_authorized(role, record.owner_id, caller_id, Operation.RENAME)

        updated = self._index.rename(file_id, new_name, new_folder)
        logger.info(
            'File %s renamed by %s: %r/%r -> %r/%r',
            file_id,
            caller_id,
            record.folder,
            record.file_name,
            updated.folder,
            updated.file_name,
        )
        return updated

    def delete(
        self,
        caller_id: str,
        role: Role | str,
        file_id: str,
    ) -> FileRecord:
        """Soft-delete a file.

        Viewers are refused even on their own files.

        Raises:
            RecordNotFoundError: If the file is missing or already deleted.
            AccessDeniedError: If the caller may not delete it.
        """
        record = self._get_live(file_id)
        ensure_authorized(role, record.owner_id, caller_id, Operation.DELETE)

        deleted = self._index.soft_delete(file_id)
        logger.info('File %s deleted by %s', file_id, caller_id)
        return deleted

    def _get_live(self, file_id: str) -> FileRecord:
        record = self._index.get_by_id(file_id)
        if record.is_deleted:
            raise RecordNotFoundError(file_id)
        return record

    def _page_size(self, limit: int | None) -> int:
        if limit is None:
            return self._default_page_size
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise ValidationError('Limit must be an integer')
        if not 1 <= limit <= self._max_page_size:
            raise ValidationError(
                f'Limit must be between 1 and {self._max_page_size}',
            )
        return limit
