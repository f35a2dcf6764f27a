"""Django admin configuration for files app.

The admin is the audit view of the metadata index: it lists every
record including soft-deleted ones, and allows no edits.
"""

from typing import override

from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest

from server.apps.files.models import File, UploadReservation


class _ReadOnlyAdmin(admin.ModelAdmin):
    """Admin that never writes."""

    @override
    def has_add_permission(self, request: HttpRequest) -> bool:
        """Records are only created by upload confirmation."""
        return False

    @override
    def has_change_permission(
        self,
        request: HttpRequest,
        obj: object | None = None,
    ) -> bool:
        """Audit view only."""
        return False

    @override
    def has_delete_permission(
        self,
        request: HttpRequest,
        obj: object | None = None,
    ) -> bool:
        """The engine never hard-deletes records."""
        return False


@admin.register(File)
class FileAdmin(_ReadOnlyAdmin):
    """Admin interface for File model."""

    list_display = [
        'file_name',
        'owner_id',
        'folder',
        'file_size',
        'file_type',
        'is_deleted',
        'created_at',
        'updated_at',
    ]

    list_filter = [
        'is_deleted',
        'file_type',
        'created_at',
    ]

    search_fields = [
        'file_id',
        'file_name',
        'owner_id',
        'folder',
        'storage_key',
    ]

    readonly_fields = [
        'file_id',
        'file_name',
        'file_type',
        'file_size',
        'owner_id',
        'folder',
        'storage_key',
        'is_deleted',
        'version',
        'created_at',
        'updated_at',
    ]

    fieldsets = (
        ('File Information', {
            'fields': ('file_id', 'file_name', 'file_type', 'file_size'),
        }),
        ('Location', {
            'fields': ('owner_id', 'folder', 'storage_key'),
        }),
        ('State', {
            'fields': ('is_deleted', 'version', 'created_at', 'updated_at'),
        }),
    )

    @override
    def get_queryset(self, request: HttpRequest) -> QuerySet[File]:
        """Include soft-deleted records.

        Args:
            request: HTTP request.

        Returns:
            Every file record.
        """
        return File.all_objects.all()


@admin.register(UploadReservation)
class UploadReservationAdmin(_ReadOnlyAdmin):
    """Admin interface for UploadReservation model."""

    list_display = [
        'file_id',
        'owner_id',
        'storage_key',
        'expires_at',
        'confirmed_at',
    ]

    list_filter = [
        'expires_at',
        'confirmed_at',
    ]

    search_fields = [
        'file_id',
        'owner_id',
        'storage_key',
    ]
