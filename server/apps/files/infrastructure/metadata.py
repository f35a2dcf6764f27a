"""Validation and normalisation of file metadata supplied by clients."""

from pathlib import PurePosixPath
from typing import Final

from django.core.exceptions import ValidationError

_FILE_NAME_MAX_LENGTH: Final = 255
_FOLDER_MAX_LENGTH: Final = 512
# Largest value a signed 64-bit size column holds
_FILE_SIZE_MAX: Final = 9223372036854775807
_FORBIDDEN_SEGMENTS: Final = frozenset(('.', '..'))


def normalize_folder(folder: str | None) -> str:
    """Normalise a logical folder path.

    Surrounding slashes are stripped so ``'/docs/'`` and ``'docs'`` name
    the same folder. ``None`` and ``''`` both mean the root.

    Args:
        folder: Folder path as sent by the client.

    Returns:
        Normalised folder path, empty string for root.

    Raises:
        ValidationError: If the path has empty, ``.`` or ``..`` segments.
    """
    if folder is None:
        return ''
    if not isinstance(folder, str):
        raise ValidationError('Folder must be a string')

    normalized = folder.strip('/')
    if not normalized:
        return ''

    segments = normalized.split('/')
    if any(not segment for segment in segments):
        raise ValidationError(f'Folder contains an empty segment: {folder}')
    if _FORBIDDEN_SEGMENTS.intersection(segments):
        raise ValidationError(f'Folder cannot contain relative segments: {folder}')
    if len(normalized) > _FOLDER_MAX_LENGTH:
        raise ValidationError('Folder path is too long')

    return normalized


def validate_file_name(file_name: object) -> str:
    """Validate a display file name.

    Args:
        file_name: Name as sent by the client.

    Returns:
        The name, unchanged.

    Raises:
        ValidationError: If the name is empty, too long or contains '/'.
    """
    if not isinstance(file_name, str) or not file_name.strip():
        raise ValidationError('File name cannot be empty')
    if '/' in file_name:
        raise ValidationError('File name cannot contain "/"')
    if file_name in _FORBIDDEN_SEGMENTS:
        raise ValidationError(f'Invalid file name: {file_name}')
    if len(file_name) > _FILE_NAME_MAX_LENGTH:
        raise ValidationError('File name is too long')
    return file_name


def validate_file_size(file_size: object) -> int:
    """Validate a declared file size.

    Args:
        file_size: Size in bytes as sent by the client.

    Returns:
        Size as an integer.

    Raises:
        ValidationError: If the size is not a positive integer
            or exceeds the largest storable size.
    """
    if isinstance(file_size, bool) or not isinstance(file_size, int):
        raise ValidationError('File size must be an integer')
    if file_size <= 0:
        raise ValidationError('File size must be positive')
    if file_size > _FILE_SIZE_MAX:
        raise ValidationError('File size is too large')
    return file_size


def validate_file_type(file_type: object) -> str:
    """Validate a declared MIME type such as ``'text/plain'``.

    Raises:
        ValidationError: If the value is not of the form ``type/subtype``.
    """
    if not isinstance(file_type, str) or not file_type:
        raise ValidationError('File type cannot be empty')
    major, _, minor = file_type.partition('/')
    if not major or not minor:
        raise ValidationError(f'Invalid MIME type: {file_type}')
    return file_type


def build_storage_key(
    owner_id: str,
    folder: str,
    file_id: str,
    file_name: str,
) -> str:
    """Build the object key for a new upload.

    Keys are namespaced by owner and folder so objects of different users
    never collide, and the file id prefix keeps keys unique inside a
    folder. Example: ``'u1/docs/3f2a...-report.pdf'``.

    Args:
        owner_id: Uploading user.
        folder: Normalised folder, empty for root.
        file_id: Freshly generated file id.
        file_name: Validated display name.

    Returns:
        Storage key.
    """
    object_name = f'{file_id}-{file_name}'
    if folder:
        return f'{owner_id}/{folder}/{object_name}'
    return f'{owner_id}/{object_name}'


def validate_storage_key(owner_id: str, storage_key: object) -> str:
    """Validate storage key follows user isolation rules.

    Ensures the key starts with the owner's ID so a client cannot
    confirm an upload into another user's namespace.

    Args:
        owner_id: Owner's user ID.
        storage_key: Key sent back by the client.

    Returns:
        The key, unchanged.

    Raises:
        ValidationError: If key is empty or outside the owner's namespace.
    """
    if not isinstance(storage_key, str) or not storage_key:
        raise ValidationError('Storage key cannot be empty')

    path_parts = PurePosixPath(storage_key).parts
    if len(path_parts) < 2:
        raise ValidationError('Storage key must contain owner and object name')

    if path_parts[0] != owner_id:
        raise ValidationError(
            f'Storage key owner ({path_parts[0]}) does not match '
            f'caller ({owner_id})',
        )
    return storage_key
