"""Template engine and library for artifact rendering."""

from .library import TemplateLibrary
from .engine import TemplateEngine

__all__ = ["TemplateLibrary", "TemplateEngine"]
