"""
Template library for artifact templates.

Templates live under ``templates/`` next to this module. Reverse proxy
flavors each have a directory with one template per TLS strategy.
"""

from pathlib import Path
from typing import Dict, List, Optional

from ..errors import GenerationError

TEMPLATE_SUFFIX = ".tmpl"


class TemplateLibrary:
    """Loads and caches artifact templates by name (``caddy/site_auto``)."""

    def __init__(self, templates_dir: Optional[Path] = None):
        """
        Initialize the template library.

        Args:
            templates_dir: Template directory. Defaults to the bundled templates
        """
        if templates_dir is None:
            templates_dir = Path(__file__).parent / "templates"

        self.templates_dir = Path(templates_dir)
        self._cache: Dict[str, str] = {}

    def get(self, name: str) -> str:
        """
        Get a template by name.

        Raises:
            GenerationError: If the template does not exist
        """
        if name not in self._cache:
            path = self.templates_dir / f"{name}{TEMPLATE_SUFFIX}"
            if not path.is_file():
                raise GenerationError(f"Template not found: {name}")
            self._cache[name] = path.read_text(encoding="utf-8")
        return self._cache[name]

    def list_templates(self) -> List[str]:
        """List available template names."""
        return sorted(
            str(p.relative_to(self.templates_dir).with_suffix("")).replace("\\", "/")
            for p in self.templates_dir.rglob(f"*{TEMPLATE_SUFFIX}")
        )
