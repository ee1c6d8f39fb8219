"""
Security Validation

Checks for TLS, the initial administrator and OAuth providers.
"""

from typing import List

from ...config.models import AdminUserConfig, OAuthConfig, TLSConfig, TLSStrategy
from ..models import FieldError
from ..rules import RuleTable


def validate_tls(cfg: TLSConfig, rules: RuleTable) -> List[FieldError]:
    """An operator-supplied certificate needs both halves of the pair."""
    if cfg.strategy != TLSStrategy.MANUAL:
        return []

    errors = []
    if not cfg.cert_path:
        errors.append(FieldError.of("tls", "cert_path", "cert_path_required"))
    if not cfg.key_path:
        errors.append(FieldError.of("tls", "key_path", "key_path_required"))
    return errors


def validate_admin(cfg: AdminUserConfig, rules: RuleTable) -> List[FieldError]:
    """
    Validate the administrator account.

    Args:
        cfg: Administrator configuration
        rules: Rule table

    Returns:
        List of field errors
    """
    errors = []

    def error(field: str, reason: str) -> FieldError:
        return FieldError.of("admin_user", field, reason, message_section="admin")

    if not cfg.username:
        errors.append(error("username", "username_required"))
    elif not rules.username_min <= len(cfg.username) <= rules.username_max:
        errors.append(error("username", "username_error"))
    elif not rules.username.match(cfg.username):
        errors.append(error("username", "username_error"))

    if not cfg.email:
        errors.append(error("email", "email_required"))
    elif not rules.email.match(cfg.email):
        errors.append(error("email", "email_error"))

    if not cfg.password:
        errors.append(error("password", "password_required"))
    elif not rules.is_user_password(cfg.password):
        errors.append(error("password", "password_error"))

    return errors


def validate_oauth(cfg: OAuthConfig, rules: RuleTable) -> List[FieldError]:
    """Enabled providers need a client id and secret."""
    errors = []
    for provider in ("google", "github"):
        if not getattr(cfg, f"{provider}_enabled"):
            continue
        for part in ("client_id", "client_secret"):
            field = f"{provider}_{part}"
            if not getattr(cfg, field):
                errors.append(FieldError.of("oauth", field, f"{field}_required"))
    return errors
