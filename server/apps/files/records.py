"""Plain value types passed between the engine's components.

They decouple the logic layer from any particular backing store: the
Django index converts model rows into these, the in-memory index stores
them directly.
"""

import dataclasses
from datetime import datetime


@dataclasses.dataclass(frozen=True, slots=True)
class FileRecord:
    """Metadata of one confirmed upload."""

    file_id: str
    owner_id: str
    file_name: str
    file_type: str
    file_size: int
    folder: str
    storage_key: str
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False
    version: int = 1

    def summary(self) -> dict[str, object]:
        """Client-facing representation, without the storage key."""
        return {
            'fileId': self.file_id,
            'fileName': self.file_name,
            'fileSize': self.file_size,
            'fileType': self.file_type,
            'folder': self.folder,
            'ownerId': self.owner_id,
            'createdAt': self.created_at.isoformat(),
            'updatedAt': self.updated_at.isoformat(),
        }


@dataclasses.dataclass(frozen=True, slots=True)
class Reservation:
    """Lease on a storage key, consumed by upload confirmation."""

    file_id: str
    owner_id: str
    storage_key: str
    expires_at: datetime
    confirmed_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Whether the lease has elapsed at ``now``."""
        return now >= self.expires_at


@dataclasses.dataclass(frozen=True, slots=True)
class Page:
    """One page of a listing plus the token to resume after it."""

    records: list[FileRecord]
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        """Whether another page follows."""
        return self.next_cursor is not None
