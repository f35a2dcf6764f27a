"""
This file contains all the settings used in production.

This file is required and if development.py is present these
values are overridden.
"""

from typing import Final

from server.settings.components import config

DEBUG = False

ALLOWED_HOSTS: Final = (
    config('DOMAIN_NAME'),
)

SECURE_HSTS_SECONDS = 31536000  # the same as Caddy has
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

SECURE_SSL_REDIRECT = True
SECURE_REDIRECT_EXEMPT: Final = (
    # This is required for healthcheck to work:
    '^health/',
)

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
