"""Logical request surface of the file engine.

Requests are routed through a table keyed by ``(method, ResourceShape)``
rather than by transport-specific URL patterns:

    POST    /files/upload     reserve an upload
    POST    /files/confirm    confirm an upload
    GET     /files            list files
    GET     /files/{fileId}   download handle
    PUT     /files/{fileId}   rename / move
    DELETE  /files/{fileId}   soft delete

Every engine error is turned into a status code and a JSON body with an
``error`` message and a machine ``code``.
"""

import dataclasses
import enum
import logging
from collections.abc import Callable, Mapping
from typing import Any, Final, final

from django.core.exceptions import ValidationError

from server.apps.files.exceptions import FilesError
from server.apps.files.logic.file_operations import FileQueryService
from server.apps.files.logic.role_policy import (
    Operation,
    Role,
    ensure_authorized,
)
from server.apps.files.logic.upload_operations import UploadCoordinator

logger = logging.getLogger(__name__)

_COLLECTION_ROOT: Final = 'files'


class ResourceShape(enum.Enum):
    """Shapes of resource paths the engine serves."""

    COLLECTION = '/files'
    UPLOAD = '/files/upload'
    CONFIRM = '/files/confirm'
    ITEM = '/files/{fileId}'


_NAMED_RESOURCES: Final = {
    'upload': ResourceShape.UPLOAD,
    'confirm': ResourceShape.CONFIRM,
}


@dataclasses.dataclass(frozen=True, slots=True)
class Caller:
    """Identity handed over by the trusted identity provider."""

    caller_id: str
    role: Role


@dataclasses.dataclass(frozen=True, slots=True)
class ApiRequest:
    """Transport-independent request."""

    method: str
    path: str
    caller: Caller
    body: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    query: Mapping[str, str] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True, slots=True)
class ApiResponse:
    """Status code plus JSON-serialisable body."""

    status: int
    body: dict[str, Any]


def resolve_path(path: str) -> tuple[ResourceShape, str | None] | None:
    """Classify a request path.

    Args:
        path: Path such as ``'/files/3f2a...'``.

    Returns:
        Shape and, for items, the file id; ``None`` if not a file path.
    """
    segments = path.strip('/').split('/')
    if segments[0] != _COLLECTION_ROOT:
        return None
    if len(segments) == 1:
        return ResourceShape.COLLECTION, None
    if len(segments) != 2 or not segments[1]:
        return None

    name = segments[1]
    if name in _NAMED_RESOURCES:
        return _NAMED_RESOURCES[name], None
    return ResourceShape.ITEM, name


def error_response(status: int, code: str, message: str) -> ApiResponse:
    """Build the uniform error body."""
    return ApiResponse(status=status, body={'error': message, 'code': code})


def _require(body: Mapping[str, Any], *fields: str) -> None:
    missing = [name for name in fields if body.get(name) in (None, '')]
    if missing:
        raise ValidationError(
            'Missing required fields: {0}'.format(', '.join(missing)),
        )


def _parse_limit(raw_limit: str | None) -> int | None:
    if raw_limit in (None, ''):
        return None
    try:
        return int(raw_limit)
    except ValueError as exc:
        raise ValidationError('Limit must be an integer') from exc


_Handler = Callable[[ApiRequest, str | None], ApiResponse]


@final
class FileRequestDispatcher:
    """Routes requests to the upload coordinator and query service."""

    def __init__(
        self,
        uploads: UploadCoordinator,
        files: FileQueryService,
    ) -> None:
        """Initialize the dispatcher and its routing table.

        Args:
            uploads: Two-phase upload coordinator.
            files: Query service for listing and file mutations.
        """
        self._uploads = uploads
        self._files = files
        self._routes: dict[tuple[str, ResourceShape], _Handler] = {
            ('POST', ResourceShape.UPLOAD): self._reserve_upload,
            ('POST', ResourceShape.CONFIRM): self._confirm_upload,
            ('GET', ResourceShape.COLLECTION): self._list_files,
            ('GET', ResourceShape.ITEM): self._download_file,
            ('PUT', ResourceShape.ITEM): self._update_file,
            ('DELETE', ResourceShape.ITEM): self._delete_file,
        }

    def dispatch(self, request: ApiRequest) -> ApiResponse:
        """Handle one request.

        Args:
            request: Request with an already verified caller.

        Returns:
            Response; errors are rendered, never raised.
        """
        resolved = resolve_path(request.path)
        handler = None
        file_id = None
        if resolved is not None:
            shape, file_id = resolved
            handler = self._routes.get((request.method.upper(), shape))
        if handler is None:
            logger.debug('No route: %s %s', request.method, request.path)
            return error_response(404, 'not_found', 'Not found')

        logger.debug(
            'Dispatching %s %s (caller: %s, role: %s)',
            request.method,
            request.path,
            request.caller.caller_id,
            request.caller.role,
        )
        try:
            return handler(request, file_id)
        except ValidationError as exc:
            return error_response(400, 'validation_error', '; '.join(exc.messages))
        except FilesError as exc:
            return error_response(exc.status_code, exc.code, str(exc))

    def _reserve_upload(
        self,
        request: ApiRequest,
        file_id: str | None,
    ) -> ApiResponse:
        body = request.body
        _require(body, 'fileName', 'fileSize', 'fileType')
        caller = request.caller
        ensure_authorized(
            caller.role,
            caller.caller_id,
            caller.caller_id,
            Operation.UPLOAD,
        )

        reserved = self._uploads.reserve(
            owner_id=caller.caller_id,
            file_name=body['fileName'],
            file_size=body['fileSize'],
            file_type=body['fileType'],
            folder=body.get('folder', ''),
        )
        return ApiResponse(status=200, body={
            'uploadUrl': reserved.upload_url,
            'fileId': reserved.file_id,
            'storageKey': reserved.storage_key,
            'expiresAt': reserved.expires_at.isoformat(),
        })

    def _confirm_upload(
        self,
        request: ApiRequest,
        file_id: str | None,
    ) -> ApiResponse:
        body = request.body
        _require(body, 'fileId', 'fileName', 'fileSize', 'fileType', 'storageKey')
        caller = request.caller
        ensure_authorized(
            caller.role,
            caller.caller_id,
            caller.caller_id,
            Operation.UPLOAD,
        )

        record = self._uploads.confirm(
            file_id=str(body['fileId']),
            storage_key=body['storageKey'],
            file_name=body['fileName'],
            file_size=body['fileSize'],
            file_type=body['fileType'],
            folder=body.get('folder', ''),
            owner_id=caller.caller_id,
        )
        return ApiResponse(status=201, body={
            'message': 'File uploaded successfully',
            'file': record.summary(),
        })

    def _list_files(
        self,
        request: ApiRequest,
        file_id: str | None,
    ) -> ApiResponse:
        query = request.query
        page = self._files.list(
            request.caller.caller_id,
            request.caller.role,
            folder=query.get('folder'),
            limit=_parse_limit(query.get('limit')),
            cursor=query.get('cursor') or None,
        )
        return ApiResponse(status=200, body={
            'files': [record.summary() for record in page.records],
            'count': len(page.records),
            'hasMore': page.has_more,
            'nextCursor': page.next_cursor,
        })

    def _download_file(
        self,
        request: ApiRequest,
        file_id: str | None,
    ) -> ApiResponse:
        handle = self._files.download(
            request.caller.caller_id,
            request.caller.role,
            str(file_id),
        )
        return ApiResponse(status=200, body={
            'downloadUrl': handle.download_url,
            'fileName': handle.record.file_name,
            'fileSize': handle.record.file_size,
            'fileType': handle.record.file_type,
            'expiresAt': handle.expires_at.isoformat(),
        })

    def _update_file(
        self,
        request: ApiRequest,
        file_id: str | None,
    ) -> ApiResponse:
        body = request.body
        _require(body, 'fileName')
        updated = self._files.rename(
            request.caller.caller_id,
            request.caller.role,
            str(file_id),
            new_name=body['fileName'],
            new_folder=body.get('folder'),
        )
        return ApiResponse(status=200, body={
            'message': 'File updated successfully',
            'fileId': updated.file_id,
            'fileName': updated.file_name,
            'folder': updated.folder,
        })

    def _delete_file(
        self,
        request: ApiRequest,
        file_id: str | None,
    ) -> ApiResponse:
        self._files.delete(
            request.caller.caller_id,
            request.caller.role,
            str(file_id),
        )
        return ApiResponse(
            status=200,
            body={'message': 'File deleted successfully'},
        )
