import logging
import os

from azure.identity import DefaultAzureCredential

logger = logging.getLogger(__name__)

AZURE_POSTGRES_SCOPE = "https://ossrdbms-aad.database.windows.net/.default"


def _postgres_params(password):
    return {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('DB_NAME'),
        'USER': os.getenv('DB_USER'),
        'PASSWORD': password,
        'HOST': os.getenv('DB_HOST'),
        'PORT': os.getenv('DB_PORT', '5432'),
        'OPTIONS': {
            'sslmode': os.getenv('DB_SSLMODE', 'require'),
            'client_encoding': 'UTF8'
        }
    }


def get_db_connection_params(base_dir=None):
    """
    Build the default database configuration from the environment.

    DB_AUTH=azure_ad connects to PostgreSQL with an Azure AD access token as the password;
    a DB_ENGINE naming postgresql uses plain password authentication; anything else
    falls back to a local SQLite file.
    """
    engine = os.getenv('DB_ENGINE', '')
    if os.getenv('DB_AUTH', '').lower() == 'azure_ad':
        try:
            credential = DefaultAzureCredential()
            token = credential.get_token(AZURE_POSTGRES_SCOPE).token
            return _postgres_params(token)
        except Exception as e:
            # Fall back to standard authentication if Azure AD fails
            logger.error(f"Error getting Azure AD database token: {e}")
            return _postgres_params(os.getenv('DB_PASSWORD'))

    if 'postgresql' in engine:
        return _postgres_params(os.getenv('DB_PASSWORD'))

    name = os.getenv('DB_NAME') or 'db.sqlite3'
    if base_dir is not None and not os.path.isabs(name):
        name = os.path.join(base_dir, name)
    return {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': name,
    }
