"""HTTP adapter for the file engine.

The gateway in front of this service verifies the caller's token and
forwards the identity in two headers. This view trusts those headers,
turns the Django request into an ``ApiRequest`` and renders the
dispatcher's response as JSON.
"""

import json
import logging

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from server.apps.files.logic.dispatch import (
    ApiRequest,
    ApiResponse,
    Caller,
    error_response,
)
from server.apps.files.logic.role_policy import Role
from server.apps.files.logic.wiring import build_dispatcher

logger = logging.getLogger(__name__)


def _resolve_caller(request: HttpRequest) -> Caller | None:
    caller_id = request.headers.get(settings.FILES_CALLER_ID_HEADER, '')
    raw_role = request.headers.get(settings.FILES_CALLER_ROLE_HEADER, '')
    if not caller_id:
        return None
    try:
        role = Role(raw_role.lower())
    except ValueError:
        logger.warning('Unknown role %r for caller %s', raw_role, caller_id)
        return None
    return Caller(caller_id=caller_id, role=role)


def _render(response: ApiResponse) -> JsonResponse:
    return JsonResponse(response.body, status=response.status)


@csrf_exempt
def files_endpoint(request: HttpRequest, resource: str = '') -> JsonResponse:
    """Serve every ``/files`` route.

    Args:
        request: Incoming request.
        resource: Path below ``/files``, empty for the collection.

    Returns:
        JSON response produced by the dispatcher.
    """
    caller = _resolve_caller(request)
    if caller is None:
        return _render(error_response(
            401,
            'unauthenticated',
            'Missing or invalid caller identity',
        ))

    body = {}
    if request.body:
        try:
            body = json.loads(request.body)
        except ValueError:
            return _render(error_response(
                400,
                'validation_error',
                'Request body is not valid JSON',
            ))
        if not isinstance(body, dict):
            return _render(error_response(
                400,
                'validation_error',
                'Request body must be a JSON object',
            ))

    path = f'/files/{resource}' if resource else '/files'
    api_request = ApiRequest(
        method=request.method or 'GET',
        path=path,
        caller=caller,
        body=body,
        query=request.GET.dict(),
    )
    return _render(build_dispatcher().dispatch(api_request))
