"""Role-based authorization for file operations.

A pure decision table: the outcome depends only on the caller's role,
the operation and whether the caller owns the resource. No I/O.

    role     upload  list-own  download   list-all  rename  delete
    admin    yes     yes       any        yes       any     any
    editor   yes     yes       any        yes       any     any
    viewer   yes     yes       own only   no        no      no

Viewers may not rename or delete even their own files. Editors and
admins differ only in user administration, which is not handled here.
"""

import enum
import logging
from typing import Final

from server.apps.files.exceptions import AccessDeniedError

logger = logging.getLogger(__name__)


class Role(enum.StrEnum):
    """Caller roles supplied by the identity provider."""

    ADMIN = 'admin'
    EDITOR = 'editor'
    VIEWER = 'viewer'


class Operation(enum.StrEnum):
    """Operations subject to authorization."""

    LIST_OWN = 'list-own'
    LIST_ALL = 'list-all'
    DOWNLOAD = 'download'
    RENAME = 'rename'
    DELETE = 'delete'
    UPLOAD = 'upload'


class Decision(enum.Enum):
    """Authorization outcome."""

    ALLOW = 'allow'
    DENY = 'deny'


class Scope(enum.Enum):
    """Which resources a grant covers."""

    ANY = 'any'
    OWN = 'own'


_FULL_ACCESS: Final = {operation: Scope.ANY for operation in Operation}

# Missing entries are denied
_GRANTS: Final[dict[Role, dict[Operation, Scope]]] = {
    Role.ADMIN: _FULL_ACCESS,
    Role.EDITOR: _FULL_ACCESS,
    Role.VIEWER: {
        Operation.UPLOAD: Scope.OWN,
        Operation.LIST_OWN: Scope.OWN,
        Operation.DOWNLOAD: Scope.OWN,
    },
}


def authorize(
    role: Role | str,
    owner_id: str,
    caller_id: str,
    operation: Operation | str,
) -> Decision:
    """Decide whether ``caller_id`` acting as ``role`` may run ``operation``.

    Args:
        role: Caller's role.
        owner_id: Owner of the resource (the caller itself for uploads
            and own listings).
        caller_id: Authenticated caller.
        operation: Requested operation.

    Returns:
        ALLOW or DENY. Unknown roles and operations are denied.
    """
    try:
        grants = _GRANTS[Role(role)]
        scope = grants.get(Operation(operation))
    except ValueError:
        return Decision.DENY

    if scope is Scope.ANY:
        return Decision.ALLOW
    if scope is Scope.OWN and owner_id == caller_id:
        return Decision.ALLOW
    return Decision.DENY


def ensure_authorized(
    role: Role | str,
    owner_id: str,
    caller_id: str,
    operation: Operation | str,
) -> None:
    """Raise AccessDeniedError unless ``authorize`` allows the operation.

    Raises:
        AccessDeniedError: If the decision is DENY.
    """
    if authorize(role, owner_id, caller_id, operation) is Decision.ALLOW:
        return

    logger.warning(
        'Access denied: caller=%s role=%s operation=%s owner=%s',
        caller_id,
        role,
        operation,
        owner_id,
    )
    raise AccessDeniedError(f'{role} may not {operation} this file')
