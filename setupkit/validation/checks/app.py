"""
Application Validation

Checks for the application section and its server-side rendering
manifest.
"""

from typing import List

from ...config.models import AppConfig
from ..models import FieldError
from ..rules import RuleTable


def validate_app(cfg: AppConfig, rules: RuleTable) -> List[FieldError]:
    """
    Validate domains, branding, CORS origins and language.

    Args:
        cfg: Application configuration
        rules: Rule table

    Returns:
        List of field errors
    """
    section = "app"
    errors = []

    if not cfg.domain_name:
        errors.append(FieldError.of(section, "domain_name", "domain_required"))
    elif not rules.domain.match(cfg.domain_name):
        errors.append(FieldError.of(section, "domain_name", "domain_error"))

    if not cfg.static_host_name:
        errors.append(FieldError.of(section, "static_host_name", "static_host_required"))
    elif not rules.static_host.match(cfg.static_host_name):
        errors.append(FieldError.of(section, "static_host_name", "static_host_error"))

    # Length is counted in code points so any script is allowed
    if not cfg.brand_name:
        errors.append(FieldError.of(section, "brand_name", "brand_required"))
    elif not rules.brand_min <= len(cfg.brand_name) <= rules.brand_max:
        errors.append(FieldError.of(section, "brand_name", "brand_error"))

    for i, origin in enumerate(cfg.cors_allow_origins):
        origin = origin.strip()
        if origin and not rules.origin_url.match(origin):
            errors.append(FieldError.of(section, f"cors_allow_origins[{i}]", "cors_error"))

    if not cfg.default_lang:
        errors.append(FieldError.of(section, "default_lang", "language_required"))
    elif cfg.default_lang not in rules.languages:
        errors.append(FieldError.of(section, "default_lang", "language_error"))

    return errors


def validate_frontend(cfg: AppConfig, rules: RuleTable) -> List[FieldError]:
    """Validate the SSR manifest. Nothing is required while SSR is off."""
    if not cfg.ssr_enabled:
        return []

    section = "app"
    errors = []

    if not cfg.frontend_scripts:
        errors.append(FieldError.of(section, "frontend_scripts", "frontend_scripts_required"))
    for i, script in enumerate(cfg.frontend_scripts):
        if not rules.frontend_script.match(script):
            errors.append(FieldError.of(section, f"frontend_scripts[{i}]", "frontend_scripts_error"))

    if not cfg.frontend_styles:
        errors.append(FieldError.of(section, "frontend_styles", "frontend_styles_required"))
    for i, style in enumerate(cfg.frontend_styles):
        if not rules.frontend_style.match(style):
            errors.append(FieldError.of(section, f"frontend_styles[{i}]", "frontend_styles_error"))

    if not cfg.frontend_container_id:
        errors.append(FieldError.of(section, "frontend_container_id", "frontend_container_id_required"))

    return errors
