"""
Configuration Validation Module

Step-gated field validation for draft configurations.
"""

from .models import FieldError
from .rules import RuleTable, DEFAULT_RULES
from .validator import IncrementalValidator

__all__ = [
    "FieldError",
    "RuleTable",
    "DEFAULT_RULES",
    "IncrementalValidator",
]
