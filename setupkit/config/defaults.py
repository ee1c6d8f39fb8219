"""
Default values and fixed layout.

Wizard step order, output directory layout, environment variable
names and a sample configuration used for quick setup.
"""

from typing import Any, Dict, Tuple


# Wizard steps in the order the operator walks through them.
STEP_ORDER: Tuple[str, ...] = (
    "welcome",
    "database",
    "cache",
    "mail",
    "app",
    "tls",
    "admin",
    "oauth",
    "analytics",
    "frontend",
    "review",
    "config_complete",
)

UNBOUND_IP = "0.0.0.0"

SUPPORTED_LANGUAGES = ("en", "zh-Hans", "zh-Hant", "ja")
SERVICE_TYPES = ("docker", "external")
PROXY_TYPES = ("caddy", "nginx")


# ============================================================
# Output directory layout
# ============================================================

ENV_FILE = ".env.production"
COMPOSE_FILE = "docker-compose.production.yml"
SNAPSHOT_FILE = ".setup/config.json"
CADDY_FILE = "caddy/Caddyfile"
NGINX_CONF_DIR = "nginx/conf.d"

JWT_KEY_FILE = "keys/jwt-private.pem"
SSL_CERT_FILE = "ssl/fullchain.pem"
SSL_KEY_FILE = "ssl/privkey.pem"
GEOIP_FILE = "geoip/GeoLite2-City.mmdb"
ROBOTS_FILE = "static/robots.txt"

# Certificates written by an older certbot companion container.
LEGACY_CERT_DIR = "caddy/certbot/conf/live"

GEOIP_FILENAME = "GeoLite2-City.mmdb"
STAGED_JWT_KEY = "jwt-private.pem"


# ============================================================
# Environment file keys that carry secrets
# ============================================================

SECRET_ENV_KEYS: Dict[str, Tuple[str, str]] = {
    "PG_PASSWORD": ("database", "super_password"),
    "APP_DB_PASSWORD": ("database", "app_password"),
    "REDIS_PASSWORD": ("cache", "password"),
    "REDISCLI_AUTH": ("cache", "admin_password"),
    "SMTP_PASSWORD": ("mail", "password"),
    "SUPER_PASSWORD": ("admin_user", "password"),
    "GOOGLE_CLIENT_SECRET": ("oauth", "google_client_secret"),
    "GITHUB_CLIENT_SECRET": ("oauth", "github_client_secret"),
    "CLOUDFLARE_SECRET": ("app", "cloudflare_secret"),
}


# ============================================================
# Revision-mode annotations
# ============================================================

SECURITY_NOTICE = "SECURITY_NOTICE: Passwords and secrets were removed from this export"
NOTICE_SECRETS_NEEDED = "NOTICE: Passwords and secrets need to be re-entered"
NOTICE_FULL_IMPORT = "Imported from previous output directory with full configuration"
VALIDATION_WARNINGS = "VALIDATION_WARNINGS: {count} fields need attention"


def get_sample_config() -> Dict[str, Any]:
    """Get a complete docker-mode configuration that passes validation."""
    return {
        "database": {
            "service_type": "docker",
            "host": "localhost",
            "port": 5432,
            "name": "app_db",
            "super_user": "postgres",
            "super_password": "SuperSecret#2024",
            "app_user": "app_user",
            "app_password": "AppSecret#2024x",
        },
        "cache": {
            "service_type": "docker",
            "host": "localhost",
            "port": 6379,
            "user": "app_cache",
            "password": "CachePass#2024",
            "admin_password": "CacheAdmin#2024",
        },
        "mail": {
            "server": "smtp.example.com",
            "port": 587,
            "user": "mailer",
            "password": "mail-password",
            "sender": "noreply@example.com",
        },
        "app": {
            "domain_name": "app.example.com",
            "static_host_name": "static.example.com",
            "brand_name": "Example",
            "default_lang": "en",
            "cors_allow_origins": ["https://app.example.com"],
        },
        "tls": {"enabled": False},
        "admin_user": {
            "username": "admin",
            "email": "admin@example.com",
            "password": "AdminPass#2024",
        },
        "reverse_proxy": {"type": "caddy"},
        "current_step": "config_complete",
    }
