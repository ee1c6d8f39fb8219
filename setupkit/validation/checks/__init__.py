"""Per-section validation checks."""

from .services import validate_database, validate_cache, validate_mail
from .app import validate_app, validate_frontend
from .security import validate_tls, validate_admin, validate_oauth

__all__ = [
    "validate_database",
    "validate_cache",
    "validate_mail",
    "validate_app",
    "validate_frontend",
    "validate_tls",
    "validate_admin",
    "validate_oauth",
]
