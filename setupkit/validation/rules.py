"""
Validation Rules

Compiled patterns and password policies. One immutable RuleTable is
built at import time and handed to the validator; nothing here is
mutated afterwards.
"""

import re
from dataclasses import dataclass
from re import Pattern
from typing import Tuple

from ..config.defaults import SUPPORTED_LANGUAGES

_DOMAIN = r"([a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}"


@dataclass(frozen=True)
class RuleTable:
    """Patterns and limits used by the section checks."""

    host: Pattern = re.compile(r"^[a-zA-Z0-9.-]+$")
    db_identifier: Pattern = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")
    domain: Pattern = re.compile(rf"^{_DOMAIN}$|^localhost$")
    static_host: Pattern = re.compile(rf"^{_DOMAIN}(:[0-9]{{1,5}})?$|^localhost(:[0-9]{{1,5}})?$")
    username: Pattern = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]+[a-zA-Z0-9]$")
    email: Pattern = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
    origin_url: Pattern = re.compile(r"^https?://[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$")
    cache_user: Pattern = re.compile(r"^[a-zA-Z0-9_-]+$")
    frontend_script: Pattern = re.compile(
        r"^(https?://[a-zA-Z0-9.-]+(:[0-9]+)?(/.*)?|/[^/].*\.(js|mjs)(\?.*)?$)")
    frontend_style: Pattern = re.compile(
        r"^(https?://[a-zA-Z0-9.-]+(:[0-9]+)?(/.*)?|/[^/].*\.(css)(\?.*)?$)")

    # Password policies
    password_format: Pattern = re.compile(r"^[A-Za-z\d!@#$%^&*]{12,64}$")
    password_classes: Tuple[Pattern, ...] = (
        re.compile(r"[a-z]"),
        re.compile(r"[A-Z]"),
        re.compile(r"\d"),
        re.compile(r"[!@#$%^&*]"),
    )
    service_password_min_classes: int = 3
    external_password_max: int = 128

    # Limits
    db_identifier_max: int = 63
    external_user_max: int = 128
    cache_user_max: int = 128
    username_min: int = 4
    username_max: int = 20
    brand_min: int = 2
    brand_max: int = 50
    languages: Tuple[str, ...] = SUPPORTED_LANGUAGES
    forbidden_cache_user: str = "default"
    docker_host: str = "localhost"

    def _class_count(self, password: str) -> int:
        return sum(1 for p in self.password_classes if p.search(password))

    def is_user_password(self, password: str) -> bool:
        """Administrator policy: allowed charset, 12-64 chars, every class present."""
        if not self.password_format.match(password):
            return False
        return self._class_count(password) == len(self.password_classes)

    def is_service_password(self, password: str) -> bool:
        """Container-managed service policy: allowed charset, 12-64 chars, 3 of 4 classes."""
        if not self.password_format.match(password):
            return False
        return self._class_count(password) >= self.service_password_min_classes

    def is_external_password(self, password: str) -> bool:
        """External service policy: non-empty, bounded and free of control characters."""
        if not password or len(password) > self.external_password_max:
            return False
        return not any(ord(c) < 32 or ord(c) == 127 for c in password)

    def is_port(self, port: int) -> bool:
        return 0 < port <= 65535


DEFAULT_RULES = RuleTable()
