"""
Incremental Validator

Validates only the sections belonging to wizard steps the operator has
already reached, so an unfinished draft can always be saved.
"""

from typing import Callable, List, Optional, Sequence, Tuple

from ..config.defaults import STEP_ORDER
from ..config.models import ConfigModel
from .checks import (
    validate_admin,
    validate_app,
    validate_cache,
    validate_database,
    validate_frontend,
    validate_mail,
    validate_oauth,
    validate_tls,
)
from .models import FieldError
from .rules import DEFAULT_RULES, RuleTable

# (step, config section, check). Steps without a check still occupy
# a position in STEP_ORDER.
StepCheck = Tuple[str, str, Callable]

STEP_CHECKS: Tuple[StepCheck, ...] = (
    ("database", "database", validate_database),
    ("cache", "cache", validate_cache),
    ("mail", "mail", validate_mail),
    ("app", "app", validate_app),
    ("tls", "tls", validate_tls),
    ("admin", "admin_user", validate_admin),
    ("oauth", "oauth", validate_oauth),
    ("frontend", "app", validate_frontend),
)


class IncrementalValidator:
    """
    Step-gated configuration validator.

    Runs the check of every step at or before ``config.current_step``.
    An unknown or empty step validates everything.
    """

    def __init__(
        self,
        rules: RuleTable = DEFAULT_RULES,
        step_order: Sequence[str] = STEP_ORDER,
        checks: Sequence[StepCheck] = STEP_CHECKS,
    ):
        self.rules = rules
        self.step_order = tuple(step_order)
        self.checks = tuple(checks)

    def step_index(self, step: Optional[str]) -> int:
        """Position of a step, or the last index when it is unknown."""
        try:
            return self.step_order.index(step)
        except ValueError:
            return len(self.step_order) - 1

    def validate(self, config: ConfigModel) -> List[FieldError]:
        """
        Validate a draft up to its current step.

        Args:
            config: Draft configuration (never modified)

        Returns:
            Field errors in step order; empty when the draft is valid
        """
        current = self.step_index(config.current_step)
        errors: List[FieldError] = []

        for step, section, check in self.checks:
            if self.step_index(step) > current:
                continue
            errors.extend(check(getattr(config, section), self.rules))

        return errors
