"""
Setup Errors

Exception hierarchy shared by the session, validation, generation
and import layers.
"""

from typing import List, TYPE_CHECKING

if TYPE_CHECKING:
    from .validation.models import FieldError


class SetupError(Exception):
    """Base class for all setup pipeline errors."""
    pass


# ============================================================
# Authentication
# ============================================================

class AuthError(SetupError):
    """Setup token could not be accepted."""
    pass


class TokenNotFound(AuthError):
    """No setup token has been issued."""
    pass


class TokenMismatch(AuthError):
    """Presented token does not match the issued token."""
    pass


class TokenExpired(AuthError):
    """Token has expired or was invalidated."""
    pass


class TokenIPMismatch(AuthError):
    """Token is bound to a different client address."""

    def __init__(self, bound_ip: str):
        super().__init__(f"setup token can only be used from IP: {bound_ip}")
        self.bound_ip = bound_ip


# ============================================================
# Validation / persistence / generation
# ============================================================

class ValidationFailed(SetupError):
    """Configuration failed field-level validation. Nothing was persisted."""

    def __init__(self, errors: List["FieldError"]):
        super().__init__(f"configuration validation failed: {len(errors)} errors")
        self.errors = list(errors)


class StorageError(SetupError):
    """A persisted document could not be read or written."""
    pass


class ConfigError(SetupError):
    """Configuration input could not be read or parsed."""
    pass


class GenerationError(SetupError):
    """Artifact rendering failed or left unresolved placeholders."""
    pass


class UploadError(SetupError):
    """Uploaded side file was rejected."""
    pass
