"""Exceptions for files app.

Input problems are reported with ``django.core.exceptions.ValidationError``;
everything else the engine can refuse is one of the classes below. Each
class carries the HTTP status and machine code the dispatcher returns.
"""

from typing import ClassVar


class FilesError(Exception):
    """Base class for file engine errors."""

    status_code: ClassVar[int] = 500
    code: ClassVar[str] = 'internal_error'


class RecordNotFoundError(FilesError):
    """Raised when a file is unknown or has been soft-deleted."""

    status_code = 404
    code = 'not_found'

    def __init__(self, file_id: str) -> None:
        """Initialize RecordNotFoundError.

        Args:
            file_id: Identifier that could not be resolved.
        """
        self.file_id = file_id
        super().__init__(f'File not found: {file_id}')


class AccessDeniedError(FilesError):
    """Raised when an authenticated caller may not perform an operation."""

    status_code = 403
    code = 'forbidden'


class ConflictError(FilesError):
    """Raised when a write would clobber an existing confirmed record."""

    status_code = 409
    code = 'conflict'


class AlreadyConfirmedError(ConflictError):
    """Raised when an upload reservation was already consumed."""

    code = 'already_confirmed'

    def __init__(self, file_id: str) -> None:
        """Initialize AlreadyConfirmedError.

        Args:
            file_id: Identifier of the replayed upload.
        """
        self.file_id = file_id
        super().__init__(f'Upload already confirmed: {file_id}')


class ReservationExpiredError(FilesError):
    """Raised when confirming a reservation whose lease has elapsed."""

    status_code = 409
    code = 'reservation_expired'

    def __init__(self, file_id: str) -> None:
        """Initialize ReservationExpiredError.

        Args:
            file_id: Identifier of the expired or unknown reservation.
        """
        self.file_id = file_id
        super().__init__(f'Upload reservation expired: {file_id}')


class UpstreamUnavailableError(FilesError):
    """Raised when the object store or metadata backing store fails."""

    status_code = 503
    code = 'upstream_unavailable'
