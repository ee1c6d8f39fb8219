"""
Validation Models

Shared data types for configuration validation.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

MESSAGE_PREFIX = "key:validation"


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation problem."""
    field: str
    message: str

    @classmethod
    def of(cls, section: str, field: str, reason: str,
           message_section: Optional[str] = None) -> "FieldError":
        """
        Build an error for a section field.

        The message is a catalog key such as
        ``key:validation.database.host_required``. ``message_section``
        names the catalog group when it differs from the model section.
        """
        return cls(
            field=f"{section}.{field}",
            message=f"{MESSAGE_PREFIX}.{message_section or section}.{reason}",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "message": self.message}

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


def errors_to_dicts(errors: List[FieldError]) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in errors]
