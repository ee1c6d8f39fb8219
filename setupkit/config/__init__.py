"""Configuration handling for the setup pipeline."""

from .models import (
    ConfigModel,
    DatabaseConfig,
    CacheConfig,
    MailConfig,
    AppConfig,
    OAuthConfig,
    AdminUserConfig,
    AnalyticsConfig,
    TLSConfig,
    TLSStrategy,
    ReverseProxyConfig,
    RevisionMode,
    ServiceType,
)
from .loader import ConfigLoader, sanitize, is_sanitized, parse_env_file, parse_env_text
from .settings import Settings, get_settings

__all__ = [
    "ConfigModel",
    "DatabaseConfig",
    "CacheConfig",
    "MailConfig",
    "AppConfig",
    "OAuthConfig",
    "AdminUserConfig",
    "AnalyticsConfig",
    "TLSConfig",
    "TLSStrategy",
    "ReverseProxyConfig",
    "RevisionMode",
    "ServiceType",
    "ConfigLoader",
    "sanitize",
    "is_sanitized",
    "parse_env_file",
    "parse_env_text",
    "Settings",
    "get_settings",
]
