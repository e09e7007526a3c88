"""
Test settings - uses a file-backed SQLite database
"""

from .settings import *  # noqa: F401,F403

# IMMEDIATE transactions take the write lock up front so that concurrent
# queue claimants in threaded tests serialise instead of failing with
# "database is locked" on lock upgrade.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'test_db.sqlite3',
        'OPTIONS': {
            'transaction_mode': 'IMMEDIATE',
            'timeout': 20,
        },
        'TEST': {
            'NAME': BASE_DIR / 'test_impact_engine.sqlite3',
        },
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

LOGGING['loggers']['impact_engine']['level'] = 'WARNING'

IMPACT_ENGINE = {}
