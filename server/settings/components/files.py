"""File metadata engine settings."""

from server.settings.components import config

# Lease of an upload reservation and lifetime of its write handle
FILES_UPLOAD_HANDLE_TTL = config(
    'FILES_UPLOAD_HANDLE_TTL',
    cast=int,
    default=300,
)

# Lifetime of presigned download URLs
FILES_DOWNLOAD_HANDLE_TTL = config(
    'FILES_DOWNLOAD_HANDLE_TTL',
    cast=int,
    default=300,
)

# Listing page sizes
FILES_DEFAULT_PAGE_SIZE = config('FILES_DEFAULT_PAGE_SIZE', cast=int, default=50)
FILES_MAX_PAGE_SIZE = config('FILES_MAX_PAGE_SIZE', cast=int, default=100)

# Confirmed reservations are kept this long before the sweep purges them
FILES_RESERVATION_RETENTION_DAYS = config(
    'FILES_RESERVATION_RETENTION_DAYS',
    cast=int,
    default=7,
)

# Headers set by the trusted gateway after it verified the caller's token
FILES_CALLER_ID_HEADER = config(
    'FILES_CALLER_ID_HEADER',
    default='X-Caller-Id',
)
FILES_CALLER_ROLE_HEADER = config(
    'FILES_CALLER_ROLE_HEADER',
    default='X-Caller-Role',
)
