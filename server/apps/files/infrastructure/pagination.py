"""Opaque keyset cursors for recency-ordered listings.

Listings are ordered by ``(created_at DESC, file_id DESC)``. A cursor
stores the sort key of the last row of a page; the next page starts
strictly after it, so resuming never repeats or skips a row as long as
nothing is inserted concurrently.
"""

import base64
import binascii
import json
from datetime import datetime
from typing import NamedTuple

from django.core.exceptions import ValidationError


class CursorPosition(NamedTuple):
    """Sort key of the last row returned."""

    created_at: datetime
    file_id: str


def encode_cursor(created_at: datetime, file_id: str) -> str:
    """Encode a position as a URL-safe token.

    Args:
        created_at: Creation time of the last row.
        file_id: Identifier of the last row.

    Returns:
        Opaque cursor string.
    """
    payload = json.dumps(
        {'c': created_at.isoformat(), 'id': file_id},
        separators=(',', ':'),
    )
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_cursor(cursor: str) -> CursorPosition:
    """Decode a token produced by ``encode_cursor``.

    Args:
        cursor: Opaque cursor from a previous page.

    Returns:
        Decoded position.

    Raises:
        ValidationError: If the cursor is malformed or its timestamp
            has no UTC offset.
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()))
        created_at = datetime.fromisoformat(payload['c'])
        file_id = str(payload['id'])
    except (
        binascii.Error,
        UnicodeError,
        ValueError,
        KeyError,
        TypeError,
    ) as exc:
        raise ValidationError('Invalid pagination cursor') from exc
    if created_at.tzinfo is None:
        raise ValidationError('Invalid pagination cursor')
    return CursorPosition(created_at, file_id)

