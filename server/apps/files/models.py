"""Database models for files app."""

import uuid
from typing import ClassVar, Final, final, override

from django.db import models

# Constants for field max lengths
_OWNER_ID_MAX_LENGTH: Final = 128
_FILE_NAME_MAX_LENGTH: Final = 255
_MIME_TYPE_MAX_LENGTH: Final = 255
_FOLDER_MAX_LENGTH: Final = 512
_STORAGE_KEY_MAX_LENGTH: Final = 1024


class ActiveFileManager(models.Manager['File']):
    """Default manager that hides soft-deleted records."""

    @override
    def get_queryset(self) -> models.QuerySet['File']:
        """Exclude records flagged as deleted."""
        return super().get_queryset().filter(is_deleted=False)


@final
class File(models.Model):
    """Metadata of a confirmed upload.

    The bytes live in the object store under ``storage_key``; this row is
    the single source of truth for whether the file exists. Rows are
    created by upload confirmation only and are never hard-deleted by the
    engine: deletion flips ``is_deleted``.

    Two composite indexes back the listing access patterns, one scoped
    by owner and one scoped by folder, both ordered by recency.
    """

    file_id = models.UUIDField(
        primary_key=True,
        editable=False,
        help_text='Generated at reservation time',
    )

    owner_id = models.CharField(
        max_length=_OWNER_ID_MAX_LENGTH,
        help_text='Identity of the uploading user',
    )

    file_name = models.CharField(max_length=_FILE_NAME_MAX_LENGTH)

    file_type = models.CharField(
        max_length=_MIME_TYPE_MAX_LENGTH,
        help_text='MIME type declared by the client at upload',
    )

    file_size = models.BigIntegerField(
        help_text='File size in bytes declared at upload',
    )

    folder = models.CharField(
        max_length=_FOLDER_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Logical folder path, empty for root',
    )

    storage_key = models.CharField(
        max_length=_STORAGE_KEY_MAX_LENGTH,
        unique=True,
        help_text='Object key: {owner_id}/{folder}/{file_id}-{file_name}',
    )

    # Soft delete
    is_deleted = models.BooleanField(default=False)

    # Bumped by every mutation, used for conditional updates
    version = models.PositiveIntegerField(default=1)

    # Timestamps
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    objects = ActiveFileManager()
    all_objects = models.Manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Files'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['-created_at', '-file_id']
        base_manager_name = 'all_objects'
        default_manager_name = 'all_objects'

        indexes: ClassVar[list[models.Index]] = [
            # Owner-scoped listing: "my files", newest first
            models.Index(
                fields=['owner_id', 'is_deleted', '-created_at', '-file_id'],
                name='files_owner_recent_idx',
            ),
            # Folder-scoped listing: everyone's files in a folder
            models.Index(
                fields=['folder', 'is_deleted', '-created_at', '-file_id'],
                name='files_folder_recent_idx',
            ),
        ]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.CheckConstraint(
                condition=models.Q(file_size__gte=0),
                name='files_size_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner_id}:{self.folder}/{self.file_name}'


@final
class UploadReservation(models.Model):
    """Time-boxed, single-use permission to write one object.

    A reservation stores no file metadata beyond what is needed to
    validate the confirmation. ``confirmed_at`` is set exactly once, by
    the request that consumes the reservation.
    """

    file_id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    owner_id = models.CharField(max_length=_OWNER_ID_MAX_LENGTH)

    storage_key = models.CharField(
        max_length=_STORAGE_KEY_MAX_LENGTH,
        unique=True,
    )

    expires_at = models.DateTimeField(db_index=True)

    confirmed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'Upload reservation'  # type: ignore[mutable-override]
        verbose_name_plural = 'Upload reservations'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['-created_at']

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner_id}:{self.storage_key}'
