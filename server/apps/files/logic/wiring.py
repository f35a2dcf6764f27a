"""Production wiring of the file engine.

Builds each component with its collaborators from Django settings. No
instances are cached at module level; callers build what they need.
"""

from django.conf import settings
from django.core.files.storage import default_storage

from server.apps.files.infrastructure.metadata_index import (
    DjangoMetadataIndex,
    DjangoReservationStore,
)
from server.apps.files.logic.dispatch import FileRequestDispatcher
from server.apps.files.logic.file_operations import FileQueryService
from server.apps.files.logic.upload_operations import UploadCoordinator
from server.apps.files.protocols import ObjectStore


def get_object_store() -> ObjectStore:
    """Get the configured default storage backend.

    Returns:
        FileStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]


def build_upload_coordinator() -> UploadCoordinator:
    """Upload coordinator over the database and default storage."""
    return UploadCoordinator(
        DjangoMetadataIndex(),
        DjangoReservationStore(),
        get_object_store(),
        handle_ttl=settings.FILES_UPLOAD_HANDLE_TTL,
    )


def build_query_service() -> FileQueryService:
    """Query service over the database and default storage."""
    return FileQueryService(
        DjangoMetadataIndex(),
        get_object_store(),
        download_ttl=settings.FILES_DOWNLOAD_HANDLE_TTL,
        default_page_size=settings.FILES_DEFAULT_PAGE_SIZE,
        max_page_size=settings.FILES_MAX_PAGE_SIZE,
    )


def build_dispatcher() -> FileRequestDispatcher:
    """Dispatcher serving the logical request surface."""
    return FileRequestDispatcher(
        build_upload_coordinator(),
        build_query_service(),
    )
