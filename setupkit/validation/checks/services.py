"""
Backing Service Validation

Checks for the database, cache and mail sections. A docker-managed
service must listen on localhost and use strong generated-style
passwords; an external service only needs sane, printable values.
"""

from typing import List

from ...config.models import CacheConfig, DatabaseConfig, MailConfig, ServiceType
from ..models import FieldError
from ..rules import RuleTable

DOCKER = ServiceType.DOCKER.value
EXTERNAL = ServiceType.EXTERNAL.value


def _check_service_host(section: str, service_type: str, host: str, rules: RuleTable) -> List[FieldError]:
    """Check the service type and host pair shared by database and cache."""
    errors = []

    if service_type not in (DOCKER, EXTERNAL):
        errors.append(FieldError.of(section, "service_type", "service_type_error"))

    if service_type == DOCKER:
        if host != rules.docker_host:
            errors.append(FieldError.of(section, "host", "host_docker_error"))
    elif not host:
        errors.append(FieldError.of(section, "host", "host_required"))
    elif not rules.host.match(host):
        errors.append(FieldError.of(section, "host", "host_error"))

    return errors


def _check_identifier(section: str, field: str, value: str, rules: RuleTable) -> List[FieldError]:
    """Database names and role names: letter first, then letters, digits or underscores."""
    if not value:
        return [FieldError.of(section, field, f"{field}_required")]
    if len(value) > rules.db_identifier_max or not rules.db_identifier.match(value):
        return [FieldError.of(section, field, f"{field}_error")]
    return []


def validate_database(cfg: DatabaseConfig, rules: RuleTable) -> List[FieldError]:
    """
    Validate the database section.

    Args:
        cfg: Database configuration
        rules: Rule table

    Returns:
        List of field errors
    """
    section = "database"
    docker = cfg.service_type == DOCKER
    errors = _check_service_host(section, cfg.service_type, cfg.host, rules)

    if not rules.is_port(cfg.port):
        errors.append(FieldError.of(section, "port", "port_invalid"))

    errors.extend(_check_identifier(section, "name", cfg.name, rules))

    # The superuser only exists when we initialise the container ourselves
    if docker:
        errors.extend(_check_identifier(section, "super_user", cfg.super_user, rules))

    if not cfg.app_user:
        errors.append(FieldError.of(section, "app_user", "app_user_required"))
    elif docker:
        errors.extend(_check_identifier(section, "app_user", cfg.app_user, rules))
    elif len(cfg.app_user) > rules.external_user_max:
        errors.append(FieldError.of(section, "app_user", "app_user_external_error"))

    if docker:
        if not cfg.super_password:
            errors.append(FieldError.of(section, "super_password", "super_password_required"))
        elif not rules.is_service_password(cfg.super_password):
            errors.append(FieldError.of(section, "super_password", "super_password_error"))

    if not cfg.app_password:
        errors.append(FieldError.of(section, "app_password", "app_password_required"))
    elif docker and not rules.is_service_password(cfg.app_password):
        errors.append(FieldError.of(section, "app_password", "app_password_error"))
    elif not docker and not rules.is_external_password(cfg.app_password):
        errors.append(FieldError.of(section, "app_password", "app_password_external_error"))

    if docker:
        if cfg.super_user and cfg.app_user and cfg.super_user == cfg.app_user:
            errors.append(FieldError.of(section, "app_user", "username_duplicate_error"))
        if cfg.super_password and cfg.app_password and cfg.super_password == cfg.app_password:
            errors.append(FieldError.of(section, "app_password", "password_duplicate_error"))

    return errors


def validate_cache(cfg: CacheConfig, rules: RuleTable) -> List[FieldError]:
    """
    Validate the cache section.

    Args:
        cfg: Cache configuration
        rules: Rule table

    Returns:
        List of field errors
    """
    section = "cache"
    docker = cfg.service_type == DOCKER
    errors = _check_service_host(section, cfg.service_type, cfg.host, rules)

    if not rules.is_port(cfg.port):
        errors.append(FieldError.of(section, "port", "port_invalid"))

    if not cfg.password:
        errors.append(FieldError.of(section, "password", "password_required"))
    elif docker and not rules.is_service_password(cfg.password):
        errors.append(FieldError.of(section, "password", "password_error"))
    elif not docker and not rules.is_external_password(cfg.password):
        errors.append(FieldError.of(section, "password", "password_external_error"))

    # External servers may still rely on the built-in "default" user
    if docker and not cfg.user:
        errors.append(FieldError.of(section, "user", "user_required"))
    elif docker and cfg.user == rules.forbidden_cache_user:
        errors.append(FieldError.of(section, "user", "user_default_forbidden"))
    elif cfg.user:
        if not rules.cache_user.match(cfg.user):
            errors.append(FieldError.of(section, "user", "user_format_error"))
        elif len(cfg.user) > rules.cache_user_max:
            errors.append(FieldError.of(section, "user", "user_length_error"))

    if docker:
        if not cfg.admin_password:
            errors.append(FieldError.of(section, "admin_password", "admin_password_required"))
        elif not rules.is_service_password(cfg.admin_password):
            errors.append(FieldError.of(section, "admin_password", "admin_password_error"))
        if cfg.password and cfg.admin_password and cfg.password == cfg.admin_password:
            errors.append(FieldError.of(section, "admin_password", "password_duplicate_error"))

    return errors


def validate_mail(cfg: MailConfig, rules: RuleTable) -> List[FieldError]:
    """Validate the mail section."""
    section = "mail"
    errors = []

    if not cfg.server:
        errors.append(FieldError.of(section, "server", "server_required"))
    elif not rules.host.match(cfg.server):
        errors.append(FieldError.of(section, "server", "server_invalid"))

    if not rules.is_port(cfg.port):
        errors.append(FieldError.of(section, "port", "port_invalid"))

    if not cfg.user:
        errors.append(FieldError.of(section, "user", "user_required"))

    if not cfg.password:
        errors.append(FieldError.of(section, "password", "password_required"))

    if not cfg.sender:
        errors.append(FieldError.of(section, "sender", "sender_required"))
    elif not rules.email.match(cfg.sender):
        errors.append(FieldError.of(section, "sender", "sender_invalid"))

    return errors
