"""Logging configuration.

Every module logs through ``logging.getLogger(__name__)``; this dict
routes the ``server`` hierarchy to the console.
"""

from server.settings.components import config

_LOG_LEVEL = config('DJANGO_LOG_LEVEL', default='INFO')

# See https://docs.djangoproject.com/en/5.1/topics/logging/
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'console': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'console',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
        'server': {
            'handlers': ['console'],
            'level': _LOG_LEVEL,
            'propagate': True,
        },
    },
}
