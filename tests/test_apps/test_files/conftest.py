"""Shared fixtures for files app tests."""

import uuid
from datetime import UTC, datetime, timedelta

import boto3
import pytest
from moto import mock_aws

from server.apps.files.infrastructure.memory import (
    InMemoryMetadataIndex,
    InMemoryReservationStore,
)
from server.apps.files.infrastructure.metadata_index import (
    DjangoMetadataIndex,
    DjangoReservationStore,
)
from server.apps.files.infrastructure.storage import FileStorage
from server.apps.files.logic.dispatch import FileRequestDispatcher
from server.apps.files.logic.file_operations import FileQueryService
from server.apps.files.logic.upload_operations import UploadCoordinator
from server.apps.files.records import FileRecord

_BUCKET = 'shared-files'
_HANDLE_TTL = 300


class FakeClock:
    """Controllable replacement for ``timezone.now``."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class FakeObjectStore:
    """Object store that signs nothing and remembers what it was asked."""

    def __init__(self) -> None:
        self.write_handles: list[tuple[str, str, int]] = []
        self.read_handles: list[tuple[str, int]] = []
        self.discarded: list[str] = []

    def get_write_handle(self, key: str, content_type: str, ttl: int) -> str:
        self.write_handles.append((key, content_type, ttl))
        return f'https://store.test/upload/{key}?ttl={ttl}'

    def get_read_handle(self, key: str, ttl: int) -> str:
        self.read_handles.append((key, ttl))
        return f'https://store.test/download/{key}?ttl={ttl}'

    def discard_object(self, key: str) -> None:
        self.discarded.append(key)


@pytest.fixture
def clock():
    """Clock frozen at a fixed instant, advanced explicitly by tests.

    Returns:
        FakeClock instance.
    """
    return FakeClock(datetime(2026, 1, 15, 12, 0, tzinfo=UTC))


@pytest.fixture
def object_store():
    """In-memory stand-in for the S3 store.

    Returns:
        FakeObjectStore instance.
    """
    return FakeObjectStore()


@pytest.fixture
def index():
    """Empty in-memory metadata index."""
    return InMemoryMetadataIndex()


@pytest.fixture
def reservations():
    """Empty in-memory reservation store."""
    return InMemoryReservationStore()


@pytest.fixture(params=['memory', 'django'])
def metadata_index(request):
    """Every MetadataIndex implementation, for contract tests.

    Returns:
        In-memory index, or Django index with database access enabled.
    """
    if request.param == 'django':
        request.getfixturevalue('db')
        return DjangoMetadataIndex()
    return InMemoryMetadataIndex()


@pytest.fixture(params=['memory', 'django'])
def reservation_store(request):
    """Every ReservationStore implementation, for contract tests."""
    if request.param == 'django':
        request.getfixturevalue('db')
        return DjangoReservationStore()
    return InMemoryReservationStore()


@pytest.fixture
def coordinator(index, reservations, object_store, clock):
    """Upload coordinator over in-memory collaborators."""
    return UploadCoordinator(
        index,
        reservations,
        object_store,
        handle_ttl=_HANDLE_TTL,
        clock=clock,
    )


@pytest.fixture
def service(index, object_store, clock):
    """Query service over in-memory collaborators."""
    return FileQueryService(
        index,
        object_store,
        download_ttl=_HANDLE_TTL,
        default_page_size=50,
        max_page_size=100,
        clock=clock,
    )


@pytest.fixture
def dispatcher(coordinator, service):
    """Dispatcher over in-memory collaborators."""
    return FileRequestDispatcher(coordinator, service)


@pytest.fixture
def make_record(clock):
    """Factory for file records with unique ids and rising timestamps.

    Returns:
        Callable building a FileRecord.
    """
    sequence = iter(range(1, 10_000))

    def factory(
        owner_id: str = 'v1',
        folder: str = '',
        file_name: str = 'a.txt',
        **overrides: object,
    ) -> FileRecord:
        created_at = clock() + timedelta(seconds=next(sequence))
        file_id = str(uuid.uuid4())
        fields = {
            'file_id': file_id,
            'owner_id': owner_id,
            'file_name': file_name,
            'file_type': 'text/plain',
            'file_size': 1024,
            'folder': folder,
            'storage_key': f'{owner_id}/{file_id}-{file_name}',
            'created_at': created_at,
            'updated_at': created_at,
        }
        fields.update(overrides)
        return FileRecord(**fields)  # type: ignore[arg-type]

    return factory


@pytest.fixture
def mock_s3():
    """Mock S3 service with shared-files bucket.

    Yields:
        boto3 S3 resource with shared-files bucket created.
    """
    with mock_aws():
        # Create S3 resource
        conn = boto3.resource('s3', region_name='us-east-1')

        # Create bucket
        conn.create_bucket(Bucket=_BUCKET)

        yield conn


@pytest.fixture
def file_storage(mock_s3):
    """FileStorage pointed at the mocked bucket.

    Returns:
        FileStorage instance.
    """
    return FileStorage(
        bucket_name=_BUCKET,
        region_name='us-east-1',
        signature_version='s3v4',
    )
