"""
Placeholder substitution engine.

Renders artifact templates written with ``{{ name }}`` placeholders and
finds anything the template leaves unresolved after rendering.
"""

import re
from typing import Callable, Dict, List, Mapping

from ..config.loader import format_env_value


class TemplateEngine:
    """
    Renders text templates with configuration values.

    Uses simple string substitution with {{placeholder}} syntax. A
    placeholder may name a filter: ``{{ brand_name|env }}``. Unknown
    placeholders are left in place so the post-render scan reports them.
    """

    # Pattern for matching {{placeholder}} and {{placeholder|filter}}
    PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*(?:\|\s*(\w+)\s*)?\}\}")

    # ${NAME}, ${NAME:-default}, ... but not the escaped $${NAME}
    ENV_REFERENCE_PATTERN = re.compile(r"(?<!\$)\$\{\s*([A-Za-z_][A-Za-z0-9_]*)[^}]*\}")

    def __init__(self):
        """Initialize the template engine."""
        self._filters: Dict[str, Callable[[str], str]] = {}
        self._register_default_filters()

    def _register_default_filters(self) -> None:
        self._filters["upper"] = str.upper
        self._filters["lower"] = str.lower
        self._filters["env"] = format_env_value

    def register_filter(self, name: str, func: Callable[[str], str]) -> None:
        """Register a custom filter function."""
        self._filters[name] = func

    def render(self, template: str, values: Mapping[str, str]) -> str:
        """
        Render a template.

        Args:
            template: Template text
            values: Placeholder values

        Returns:
            Rendered text
        """
        return self._substitute(template, values, lambda value: value)

    def _substitute(self, template: str, values: Mapping[str, str],
                    emit: Callable[[str], str]) -> str:
        def replace_match(match):
            key, filter_name = match.group(1), match.group(2)
            if key not in values:
                return match.group(0)

            value = str(values[key])
            if filter_name:
                if filter_name not in self._filters:
                    return match.group(0)
                value = self._filters[filter_name](value)
            return emit(value)

        return self.PLACEHOLDER_PATTERN.sub(replace_match, template)

    def find_unresolved(self, text: str) -> List[str]:
        """
        Find placeholders and environment references left in rendered text.

        Returns:
            The offending tokens in order of appearance
        """
        found = [m.group(0) for m in self.PLACEHOLDER_PATTERN.finditer(text)]
        found.extend(self.find_env_references(text))
        return found

    def find_env_references(self, text: str) -> List[str]:
        """Find ``${NAME}`` references that are not escaped as ``$${NAME}``."""
        return [m.group(0) for m in self.ENV_REFERENCE_PATTERN.finditer(text)]

    def unresolved_after_render(self, template: str, values: Mapping[str, str]) -> List[str]:
        """
        Find what rendering a template with these values leaves unresolved.

        Substituted values are blanked before the scan, so a value that
        merely looks like a placeholder is not reported.
        """
        return self.find_unresolved(self._substitute(template, values, lambda value: ""))
