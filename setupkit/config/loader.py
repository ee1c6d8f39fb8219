"""
Configuration document loader.

Handles reading, writing and sanitizing configuration documents and
parsing the flat KEY=VALUE environment files written next to them.
"""

import json
import re
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import ValidationError

from ..errors import ConfigError
from .defaults import SECRET_ENV_KEYS, SECURITY_NOTICE
from .models import ConfigModel

REQUIRED_SECRETS = (
    ("database", "app_password"),
    ("cache", "password"),
    ("admin_user", "password"),
)


class ConfigLoader:
    """
    Loads and saves configuration documents.

    A document is the JSON form of a ConfigModel. Exported documents
    are sanitized: every secret-bearing field is blanked and a
    SECURITY_NOTICE marker is recorded in the revision mode.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize the config loader.

        Args:
            config_path: Path to a configuration document
        """
        self.config_path = Path(config_path) if config_path else None

    def load(self) -> ConfigModel:
        """
        Load the configuration document at the config path.

        Returns:
            Parsed configuration
        """
        if self.config_path is None:
            raise ConfigError("No configuration path specified")
        if not self.config_path.is_file():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            data = self.config_path.read_bytes()
        except OSError as e:
            raise ConfigError(f"Cannot read {self.config_path}: {e}")
        return self.parse(data)

    @staticmethod
    def parse(data: Union[str, bytes]) -> ConfigModel:
        """Parse a JSON document into a ConfigModel."""
        try:
            raw = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigError(f"Invalid configuration document: {e}")
        if not isinstance(raw, dict):
            raise ConfigError("Invalid configuration document: expected a JSON object")

        try:
            return ConfigModel.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration document: {e}")

    @staticmethod
    def dumps(cfg: ConfigModel) -> str:
        """Serialize a configuration deterministically."""
        return json.dumps(cfg.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    def save(self, cfg: ConfigModel, output_path: Optional[Union[str, Path]] = None,
             sanitized: bool = True) -> Path:
        """
        Save a configuration document.

        Args:
            cfg: Configuration to save
            output_path: Target file (defaults to the config path)
            sanitized: Strip secrets before writing

        Returns:
            Path written
        """
        target = Path(output_path) if output_path else self.config_path
        if target is None:
            raise ConfigError("No configuration path specified")

        document = sanitize(cfg) if sanitized else cfg
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(self.dumps(document))
        return target


def sanitize(cfg: ConfigModel) -> ConfigModel:
    """Return a copy of the configuration with every secret removed."""
    clean = cfg.model_copy(deep=True)
    for section, field in SECRET_ENV_KEYS.values():
        clean.set_secret(section, field, "")
    if not any("SECURITY_NOTICE" in s for s in clean.revision_mode.modified_steps):
        clean.revision_mode.modified_steps.append(SECURITY_NOTICE)
    return clean


def is_sanitized(cfg: ConfigModel) -> bool:
    """
    Check whether a configuration looks like a sanitized export.

    True when a SECURITY_NOTICE marker is present or when the secrets
    every complete configuration carries are all empty.
    """
    if any("SECURITY_NOTICE" in step for step in cfg.revision_mode.modified_steps):
        return True
    return all(not cfg.get_secret(section, field) for section, field in REQUIRED_SECRETS)


# ============================================================
# Environment files
# ============================================================

# Characters that force a value into quotes
ENV_SPECIAL_CHARS = " \t#$'\"\\"

# Escapes used inside double-quoted values
ENV_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "$": "\\$",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}
ENV_UNESCAPES = {escaped[1]: char for char, escaped in ENV_ESCAPES.items()}
ENV_ESCAPE_PATTERN = re.compile(r"\\(.)", re.DOTALL)


def _has_control_chars(value: str) -> bool:
    return any(ord(c) < 32 or ord(c) == 127 for c in value)


def unquote_env_value(value: str) -> str:
    """
    Undo format_env_value.

    One matching pair of surrounding quotes is removed. Single-quoted
    values are literal, double-quoted values have their backslash
    escapes expanded and anything else is returned as is.
    """
    if len(value) < 2 or value[0] != value[-1] or value[0] not in "'\"":
        return value
    inner = value[1:-1]
    if value[0] == "'":
        return inner
    return ENV_ESCAPE_PATTERN.sub(lambda m: ENV_UNESCAPES.get(m.group(1), m.group(1)), inner)


def parse_env_text(content: str) -> Dict[str, str]:
    """
    Parse KEY=VALUE lines.

    Blank lines and #-comments are skipped, whitespace around keys and
    values is trimmed and quoted values are unquoted.
    """
    env_vars: Dict[str, str] = {}
    for line in content.split("\n"):
        line = line.strip(" \t\r")
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        env_vars[key.strip()] = unquote_env_value(value.strip(" \t"))
    return env_vars


def parse_env_file(env_path: Union[str, Path]) -> Dict[str, str]:
    """Read and parse an environment file."""
    try:
        content = Path(env_path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read environment file {env_path}: {e}")
    return parse_env_text(content)


def format_env_value(value: str) -> str:
    """
    Quote a value when it would not survive a plain KEY=VALUE line.

    Values without a single quote or control character are wrapped in
    single quotes and kept literal. Anything else is double-quoted with
    backslash escapes, so a value always stays on its own line and
    parses back unchanged.
    """
    control = _has_control_chars(value)
    if value == "" or not (control or any(c in ENV_SPECIAL_CHARS for c in value)):
        return value
    if "'" not in value and not control:
        return f"'{value}'"
    return '"' + "".join(ENV_ESCAPES.get(c, c) for c in value) + '"'
