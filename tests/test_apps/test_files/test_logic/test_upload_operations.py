"""Tests for the two-phase upload coordinator."""

from datetime import timedelta

import pytest
from django.core.exceptions import ValidationError

from server.apps.files.exceptions import (
    AccessDeniedError,
    AlreadyConfirmedError,
    ConflictError,
    RecordNotFoundError,
    ReservationExpiredError,
    UpstreamUnavailableError,
)
from server.apps.files.infrastructure.metadata_index import (
    DjangoMetadataIndex,
    DjangoReservationStore,
)
from server.apps.files.logic.upload_operations import UploadCoordinator
from server.apps.files.models import File, UploadReservation


def _confirm(coordinator, reserved, **overrides):
    fields = {
        'file_id': reserved.file_id,
        'storage_key': reserved.storage_key,
        'file_name': 'a.txt',
        'file_size': 1024,
        'file_type': 'text/plain',
        'folder': '',
        'owner_id': 'v1',
    }
    fields.update(overrides)
    return coordinator.confirm(**fields)


class TestReserve:
    """Tests for reserve."""

    def test_reserve_creates_no_record(self, coordinator, index):
        """Test a reservation alone is invisible to listings."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        with pytest.raises(RecordNotFoundError):
            index.get_by_id(reserved.file_id)
        assert index.list_by_owner('v1', limit=10).records == []

    def test_key_is_namespaced_by_owner(self, coordinator, object_store):
        """Test storage key embeds owner, folder, id and name."""
        reserved = coordinator.reserve(
            'v1',
            'a.txt',
            1024,
            'text/plain',
            folder='/docs/',
        )

        assert reserved.storage_key == f'v1/docs/{reserved.file_id}-a.txt'
        assert object_store.write_handles == [
            (reserved.storage_key, 'text/plain', 300),
        ]
        assert reserved.upload_url.startswith('https://store.test/upload/')

    def test_expiry_follows_handle_ttl(self, coordinator, clock):
        """Test lease expires when the write handle does."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        assert reserved.expires_at == clock() + timedelta(seconds=300)

    def test_each_reservation_gets_fresh_id(self, coordinator):
        """Test two reservations of the same name never share a key."""
        first = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        second = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        assert first.file_id != second.file_id
        assert first.storage_key != second.storage_key

    @pytest.mark.parametrize(('file_name', 'file_size', 'file_type'), [
        ('', 1024, 'text/plain'),
        ('a/b.txt', 1024, 'text/plain'),
        ('a.txt', 0, 'text/plain'),
        ('a.txt', -5, 'text/plain'),
        ('a.txt', 2 ** 63, 'text/plain'),
        ('a.txt', 1024, 'plain'),
    ])
    def test_invalid_fields_rejected(
        self,
        coordinator,
        reservations,
        object_store,
        file_name,
        file_size,
        file_type,
    ):
        """Test malformed fields fail before anything is reserved."""
        with pytest.raises(ValidationError):
            coordinator.reserve('v1', file_name, file_size, file_type)

        assert object_store.write_handles == []

    def test_traversal_folder_rejected(self, coordinator):
        """Test folder cannot escape the owner's namespace."""
        with pytest.raises(ValidationError):
            coordinator.reserve('v1', 'a.txt', 1, 'text/plain', folder='../v2')


class TestConfirm:
    """Tests for confirm."""

    def test_confirm_creates_record(self, coordinator, index, clock):
        """Test confirmation makes the file visible."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        record = _confirm(coordinator, reserved)

        assert record.file_id == reserved.file_id
        assert record.created_at == clock()
        assert record.is_deleted is False
        assert index.get_by_id(reserved.file_id) == record

    def test_double_confirm_rejected(self, coordinator, index):
        """Test replayed confirmation fails and keeps one record."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        _confirm(coordinator, reserved)

        with pytest.raises(AlreadyConfirmedError):
            _confirm(coordinator, reserved)

        assert len(index.list_by_owner('v1', limit=10).records) == 1

    def test_confirm_after_expiry(self, coordinator, index, clock):
        """Test confirming at or after expiry fails with no record."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        clock.advance(seconds=300)

        with pytest.raises(ReservationExpiredError):
            _confirm(coordinator, reserved)

        with pytest.raises(RecordNotFoundError):
            index.get_by_id(reserved.file_id)

    def test_confirm_unknown_reservation(self, coordinator):
        """Test confirming an id that was never reserved fails as expired."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        with pytest.raises(ReservationExpiredError):
            _confirm(
                coordinator,
                reserved,
                file_id='00000000-0000-4000-8000-000000000000',
            )

    def test_confirm_by_other_caller_denied(self, coordinator, index):
        """Test only the uploader may confirm."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        with pytest.raises(AccessDeniedError):
            _confirm(
                coordinator,
                reserved,
                owner_id='v2',
                storage_key=reserved.storage_key.replace('v1/', 'v2/', 1),
            )

        with pytest.raises(RecordNotFoundError):
            index.get_by_id(reserved.file_id)

    def test_foreign_key_namespace_rejected(self, coordinator):
        """Test a key outside the caller's namespace is invalid."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        with pytest.raises(ValidationError, match='does not match caller'):
            _confirm(coordinator, reserved, storage_key='v2/x-a.txt')

    def test_key_mismatch_rejected(self, coordinator):
        """Test the key must be the one handed out by reserve."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        with pytest.raises(ValidationError):
            _confirm(coordinator, reserved, storage_key='v1/other-a.txt')

        # Reservation is still claimable with the right key
        assert _confirm(coordinator, reserved).file_id == reserved.file_id

    def test_index_outage_releases_reservation(
        self,
        coordinator,
        index,
        monkeypatch,
    ):
        """Test confirmation can be retried after the index fails."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        real_put = index.put

        def failing_put(record, *, overwrite=False):
            raise UpstreamUnavailableError('Metadata index unavailable')

        monkeypatch.setattr(index, 'put', failing_put)
        with pytest.raises(UpstreamUnavailableError):
            _confirm(coordinator, reserved)

        monkeypatch.setattr(index, 'put', real_put)
        assert _confirm(coordinator, reserved).file_id == reserved.file_id

    def test_unexpected_index_failure_releases_reservation(
        self,
        coordinator,
        reservations,
        index,
        monkeypatch,
    ):
        """Test a failed write of any kind leaves the upload confirmable."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        real_put = index.put

        def failing_put(record, *, overwrite=False):
            raise OverflowError('Python int too large to convert')

        monkeypatch.setattr(index, 'put', failing_put)
        with pytest.raises(OverflowError):
            _confirm(coordinator, reserved)

        assert reservations.get(reserved.file_id).confirmed_at is None
        monkeypatch.setattr(index, 'put', real_put)
        assert _confirm(coordinator, reserved).file_id == reserved.file_id

    def test_claim_without_record_is_not_already_confirmed(
        self,
        coordinator,
        reservations,
        clock,
    ):
        """Test a claimed reservation with no record yet is a plain conflict."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        assert reservations.consume(reserved.file_id, clock())

        with pytest.raises(ConflictError) as exc_info:
            _confirm(coordinator, reserved)

        assert not isinstance(exc_info.value, AlreadyConfirmedError)
        assert exc_info.value.code == 'conflict'


@pytest.mark.django_db
class TestConfirmOnDatabase:
    """Tests for confirm over the Django-backed stores."""

    @pytest.fixture
    def db_coordinator(self, object_store, clock):
        """Coordinator writing to the File and UploadReservation tables."""
        return UploadCoordinator(
            DjangoMetadataIndex(),
            DjangoReservationStore(),
            object_store,
            handle_ttl=300,
            clock=clock,
        )

    def test_confirm_creates_row(self, db_coordinator):
        """Test confirmation stores the record and marks the lease."""
        reserved = db_coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        _confirm(db_coordinator, reserved)

        assert File.objects.filter(file_id=reserved.file_id).exists()
        lease = UploadReservation.objects.get(file_id=reserved.file_id)
        assert lease.confirmed_at is not None

    def test_oversized_file_never_claims(self, db_coordinator):
        """Test a size beyond the column range is rejected before the claim."""
        reserved = db_coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        with pytest.raises(ValidationError, match='too large'):
            _confirm(db_coordinator, reserved, file_size=2 ** 70)

        lease = UploadReservation.objects.get(file_id=reserved.file_id)
        assert lease.confirmed_at is None
        assert _confirm(db_coordinator, reserved).file_size == 1024

    def test_failed_insert_releases_claim(self, db_coordinator, monkeypatch):
        """Test a non-database error from the insert leaves no stuck claim."""
        reserved = db_coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        real_create = File.all_objects.create

        def failing_create(**fields):
            raise OverflowError('Python int too large to convert')

        monkeypatch.setattr(File.all_objects, 'create', failing_create)
        with pytest.raises(OverflowError):
            _confirm(db_coordinator, reserved)

        lease = UploadReservation.objects.get(file_id=reserved.file_id)
        assert lease.confirmed_at is None
        monkeypatch.setattr(File.all_objects, 'create', real_create)
        assert _confirm(db_coordinator, reserved).file_id == reserved.file_id


class TestSweep:
    """Tests for the reservation sweep."""

    def test_discards_orphaned_objects(
        self,
        coordinator,
        reservations,
        object_store,
        clock,
    ):
        """Test expired reservations are removed with their objects."""
        abandoned = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        clock.advance(seconds=301)

        result = coordinator.sweep(
            retention=timedelta(days=7),
            batch_size=100,
        )

        assert result.expired == 1
        assert result.purged == 0
        assert object_store.discarded == [abandoned.storage_key]
        assert reservations.get(abandoned.file_id) is None

    def test_keeps_confirmed_objects(
        self,
        coordinator,
        reservations,
        object_store,
        index,
        clock,
    ):
        """Test old confirmed reservations go but their objects stay."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        _confirm(coordinator, reserved)
        clock.advance(days=8)

        result = coordinator.sweep(
            retention=timedelta(days=7),
            batch_size=100,
        )

        assert result.purged == 1
        assert object_store.discarded == []
        assert reservations.get(reserved.file_id) is None
        assert index.get_by_id(reserved.file_id).is_deleted is False

    def test_discards_object_of_unwritten_claim(
        self,
        coordinator,
        reservations,
        object_store,
        clock,
    ):
        """Test a claim that never produced a record is cleaned up."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        reservations.consume(reserved.file_id, clock())
        clock.advance(days=8)

        result = coordinator.sweep(
            retention=timedelta(days=7),
            batch_size=100,
        )

        assert result.purged == 1
        assert object_store.discarded == [reserved.storage_key]
        assert reservations.get(reserved.file_id) is None

    def test_live_reservations_untouched(self, coordinator, reservations):
        """Test reservations still inside their lease survive."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')

        result = coordinator.sweep(
            retention=timedelta(days=7),
            batch_size=100,
        )

        assert result.expired == 0
        assert reservations.get(reserved.file_id) is not None

    def test_dry_run_deletes_nothing(
        self,
        coordinator,
        reservations,
        object_store,
        clock,
    ):
        """Test dry run only counts."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        clock.advance(seconds=301)

        result = coordinator.sweep(
            retention=timedelta(days=7),
            batch_size=100,
            dry_run=True,
        )

        assert result.expired == 1
        assert object_store.discarded == []
        assert reservations.get(reserved.file_id) is not None

    def test_confirm_after_sweep_fails(self, coordinator, clock):
        """Test a swept reservation cannot be confirmed."""
        reserved = coordinator.reserve('v1', 'a.txt', 1024, 'text/plain')
        clock.advance(seconds=301)
        coordinator.sweep(retention=timedelta(days=7), batch_size=100)

        with pytest.raises(ReservationExpiredError):
            _confirm(coordinator, reserved)
