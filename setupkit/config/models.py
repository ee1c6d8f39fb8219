"""
Pydantic models for the draft deployment configuration.

Every section is optional until its wizard step is reached, so all
fields carry empty defaults. Section invariants are enforced by the
incremental validator, not by these types.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServiceType(str, Enum):
    """How a backing service is provisioned."""
    DOCKER = "docker"
    EXTERNAL = "external"


class TLSStrategy(str, Enum):
    """How HTTPS is terminated at the reverse proxy."""
    NONE = "none"
    MANUAL = "manual"   # operator-supplied certificate pair
    AUTO = "auto"       # certificates managed upstream by the proxy


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=False)


# ============================================================
# Backing services
# ============================================================

class DatabaseConfig(_Section):
    """PostgreSQL configuration."""

    service_type: str = Field(default="", description="docker or external")
    host: str = Field(default="")
    port: int = Field(default=0)
    name: str = Field(default="")
    # Only used in docker mode to initialise the container
    super_user: str = Field(default="")
    super_password: str = Field(default="")
    app_user: str = Field(default="")
    app_password: str = Field(default="")


class CacheConfig(_Section):
    """Redis configuration."""

    service_type: str = Field(default="")
    host: str = Field(default="")
    port: int = Field(default=0)
    user: str = Field(default="")
    password: str = Field(default="")
    # Only used in docker mode for CLI administration
    admin_password: str = Field(default="")


class MailConfig(_Section):
    """SMTP configuration."""

    server: str = Field(default="")
    port: int = Field(default=0)
    user: str = Field(default="")
    password: str = Field(default="")
    sender: str = Field(default="")


# ============================================================
# Application
# ============================================================

class AppConfig(_Section):
    """Application-level settings."""

    domain_name: str = Field(default="")
    static_host_name: str = Field(default="")
    brand_name: str = Field(default="")
    default_lang: str = Field(default="")
    version: str = Field(default="")
    debug: bool = Field(default=False)
    handle_www: bool = Field(default=False, description="Redirect www.<root domain> to the site")
    cors_allow_origins: List[str] = Field(default_factory=list)

    jwt_key_file_path: str = Field(default="")
    jwt_key_from_file: bool = Field(default=False)
    has_jwt_key_file: bool = Field(default=False)
    jwt_key_temp_path: str = Field(default="")

    robots_txt_path: str = Field(default="")
    has_custom_robots_txt: bool = Field(default=False)

    cloudflare_site_key: str = Field(default="")
    cloudflare_secret: str = Field(default="")

    # Server-side rendering
    ssr_enabled: bool = Field(default=False)
    frontend_scripts: List[str] = Field(default_factory=list)
    frontend_styles: List[str] = Field(default_factory=list)
    frontend_container_id: str = Field(default="")

    @field_validator("cors_allow_origins", "frontend_scripts", "frontend_styles", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v


class OAuthConfig(_Section):
    """Third-party login providers."""

    google_enabled: bool = Field(default=False)
    google_client_id: str = Field(default="")
    google_client_secret: str = Field(default="")
    github_enabled: bool = Field(default=False)
    github_client_id: str = Field(default="")
    github_client_secret: str = Field(default="")
    frontend_origin: str = Field(default="")


class AdminUserConfig(_Section):
    """Initial administrator account."""

    username: str = Field(default="")
    email: str = Field(default="")
    password: str = Field(default="")


class AnalyticsConfig(_Section):
    """Web-log analytics with an optional GeoIP database."""

    enabled: bool = Field(default=False)
    geo_db_path: str = Field(default="")
    has_geo_file: bool = Field(default=False)
    geo_file_temp_path: str = Field(default="")
    original_file_name: str = Field(default="")
    file_size: int = Field(default=0)


class TLSConfig(_Section):
    """
    HTTPS configuration.

    ``use_setup_cert`` only records the wizard's choice to reuse the setup
    server's certificate. The wizard copies that certificate's paths into
    ``cert_path`` and ``key_path``, which are all the generator reads.
    """

    enabled: bool = Field(default=False)
    cert_path: str = Field(default="")
    key_path: str = Field(default="")
    use_setup_cert: bool = Field(default=False, description="Wizard choice only; generation reads cert_path and key_path")
    auto_cert: bool = Field(default=False, description="Let the reverse proxy obtain certificates")

    @property
    def strategy(self) -> TLSStrategy:
        if not self.enabled:
            return TLSStrategy.NONE
        if self.auto_cert:
            return TLSStrategy.AUTO
        return TLSStrategy.MANUAL


class ReverseProxyConfig(_Section):
    """Reverse proxy flavor."""

    type: str = Field(default="caddy", description="caddy or nginx")


# ============================================================
# Revision mode and the full configuration
# ============================================================

class RevisionMode(_Section):
    """Import provenance attached to a configuration."""

    enabled: bool = Field(default=False)
    imported_at: Optional[datetime] = Field(default=None)
    modified_steps: List[str] = Field(default_factory=list)

    @field_validator("modified_steps", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v


class ConfigModel(_Section):
    """
    Complete draft deployment configuration.

    This is the document the wizard edits, the generator renders and
    the importer reconstructs.
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    mail: MailConfig = Field(default_factory=MailConfig)
    app: AppConfig = Field(default_factory=AppConfig)
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    admin_user: AdminUserConfig = Field(default_factory=AdminUserConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    tls: TLSConfig = Field(default_factory=TLSConfig)
    reverse_proxy: ReverseProxyConfig = Field(default_factory=ReverseProxyConfig)
    current_step: str = Field(default="", description="Wizard step reached, drives validation")
    revision_mode: RevisionMode = Field(default_factory=RevisionMode)

    def get_secret(self, section: str, field: str) -> str:
        """Get a secret-bearing field by section and name."""
        return getattr(getattr(self, section), field)

    def set_secret(self, section: str, field: str, value: str) -> None:
        """Set a secret-bearing field by section and name."""
        setattr(getattr(self, section), field, value)

    @property
    def uses_docker_database(self) -> bool:
        return self.database.service_type == ServiceType.DOCKER.value

    @property
    def uses_docker_cache(self) -> bool:
        return self.cache.service_type == ServiceType.DOCKER.value
