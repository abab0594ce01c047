from oauth_bridge.storage.adapter import AlchemyOAuthAdapter
from oauth_bridge.storage.base import Base, DateTimeUTC
from oauth_bridge.storage.models import OAuthAuthorizationCode, OAuthClient
from oauth_bridge.storage.settings import (
    DatabaseBackendSettings,
    PostgresSettings,
    SQLAlchemyRuntime,
    SqliteSettings,
    database_settings_from_env,
)

__all__ = [
    "AlchemyOAuthAdapter",
    "Base",
    "DatabaseBackendSettings",
    "DateTimeUTC",
    "OAuthAuthorizationCode",
    "OAuthClient",
    "PostgresSettings",
    "SQLAlchemyRuntime",
    "SqliteSettings",
    "database_settings_from_env",
]
