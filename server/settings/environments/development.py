"""
This file contains all the settings that defines the development server.

SECURITY WARNING: don't run with debug turned on in production!
"""

from typing import Final

DEBUG = True

ALLOWED_HOSTS: Final = (
    'localhost',
    '0.0.0.0',  # noqa: S104
    '127.0.0.1',
    'testserver',
)
