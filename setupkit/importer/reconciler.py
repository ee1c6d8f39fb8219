"""
Import Reconciler

Rebuilds a draft configuration from a previous export. Two sources are
supported:

- a standalone configuration document, usually sanitized
- a complete previous output directory: its configuration snapshot,
  the environment file holding the secrets and the side files

Validation problems never fail an import. They are recorded as
revision-mode annotations so the operator can fix them in the wizard.
"""

import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from ..config.defaults import (
    ENV_FILE,
    GEOIP_FILE,
    GEOIP_FILENAME,
    JWT_KEY_FILE,
    NOTICE_FULL_IMPORT,
    NOTICE_SECRETS_NEEDED,
    ROBOTS_FILE,
    SECRET_ENV_KEYS,
    SNAPSHOT_FILE,
    STAGED_JWT_KEY,
    VALIDATION_WARNINGS,
)
from ..config.loader import ConfigLoader, is_sanitized, parse_env_file
from ..config.models import ConfigModel, TLSStrategy
from ..errors import ConfigError
from ..utils.clock import utc_now
from ..utils.logging import get_logger
from ..validation import FieldError, IncrementalValidator
from .resolvers import DEFAULT_RESOLVERS, CertificateResolver, resolve_certificate

logger = get_logger(__name__)

STAGED_ROBOTS = "robots.txt"


@dataclass
class ImportResult:
    """A reconstructed configuration and what was noticed on the way."""
    config: ConfigModel
    sanitized: bool
    from_directory: bool = False
    warnings: List[FieldError] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.from_directory:
            return "Configuration imported from output directory"
        if self.sanitized:
            return "Sanitized configuration imported - passwords required"
        return "Configuration imported successfully"


class ImportReconciler:
    """
    Merges previous exports into a fresh configuration.

    Side files from an output directory are copied into the work area
    and the configuration is pointed at the staged copies.
    """

    def __init__(
        self,
        work_dir: Union[str, Path],
        validator: Optional[IncrementalValidator] = None,
        clock: Callable[[], datetime] = utc_now,
        resolvers: Sequence[CertificateResolver] = DEFAULT_RESOLVERS,
    ):
        """
        Initialize the reconciler.

        Args:
            work_dir: Staging area for side files
            validator: Validator used for advisory re-validation
            clock: Source of the import timestamp
            resolvers: Certificate candidates, tried in order
        """
        self.work_dir = Path(work_dir)
        self.validator = validator or IncrementalValidator()
        self.clock = clock
        self.resolvers = tuple(resolvers)

    # ============================================================
    # Standalone document
    # ============================================================

    def import_document(self, data: Union[str, bytes]) -> ImportResult:
        """
        Import a configuration document.

        Args:
            data: JSON document

        Returns:
            Import result (never raises for validation problems)

        Raises:
            ConfigError: If the document cannot be parsed
        """
        cfg = ConfigLoader.parse(data)
        sanitized = is_sanitized(cfg)

        cfg.revision_mode.enabled = True
        cfg.revision_mode.imported_at = self.clock()
        if sanitized:
            cfg.revision_mode.modified_steps.append(NOTICE_SECRETS_NEEDED)

        warnings = self._annotate_warnings(cfg)
        logger.info("Imported configuration document (sanitized=%s, warnings=%d)",
                    sanitized, len(warnings))
        return ImportResult(config=cfg, sanitized=sanitized, warnings=warnings)

    # ============================================================
    # Full output directory
    # ============================================================

    def import_output_dir(self, input_dir: Union[str, Path]) -> ImportResult:
        """
        Import a previous output directory.

        Args:
            input_dir: Directory written by an earlier generation

        Returns:
            Import result with secrets restored from the environment file

        Raises:
            ConfigError: If the snapshot or environment file is unreadable
        """
        input_dir = Path(input_dir)
        if not input_dir.is_dir():
            raise ConfigError(f"Input directory not found: {input_dir}")

        snapshot = input_dir / SNAPSHOT_FILE
        logger.info("Reading configuration from %s", snapshot)
        cfg = ConfigLoader(snapshot).load()

        env_path = input_dir / ENV_FILE
        logger.info("Reading environment from %s", env_path)
        env_vars = parse_env_file(env_path)
        logger.info("Parsed %d environment variables", len(env_vars))

        self.splice_secrets(cfg, env_vars)
        self._stage_side_files(cfg, input_dir)
        if cfg.tls.strategy == TLSStrategy.MANUAL:
            self._resolve_certificate(cfg, input_dir)

        cfg.revision_mode.enabled = True
        cfg.revision_mode.imported_at = self.clock()
        cfg.revision_mode.modified_steps = [NOTICE_FULL_IMPORT]

        warnings = self._annotate_warnings(cfg)
        logger.info("Imported output directory %s (warnings=%d)", input_dir, len(warnings))
        return ImportResult(
            config=cfg,
            sanitized=is_sanitized(cfg),
            from_directory=True,
            warnings=warnings,
        )

    @staticmethod
    def splice_secrets(cfg: ConfigModel, env_vars: Dict[str, str]) -> None:
        """Copy secrets from environment variables into the configuration."""
        for key, (section, field_name) in SECRET_ENV_KEYS.items():
            cfg.set_secret(section, field_name, env_vars.get(key, ""))

        if "CORS_ALLOW_ORIGINS" in env_vars:
            cfg.app.cors_allow_origins = [
                o.strip() for o in env_vars["CORS_ALLOW_ORIGINS"].split(",") if o.strip()
            ]

        logger.info("Restored secrets: database=%s cache=%s admin=%s",
                    bool(cfg.database.app_password), bool(cfg.cache.password),
                    bool(cfg.admin_user.password))

    def _stage(self, source: Path, name: str) -> Optional[Path]:
        """Copy a side file into the work area."""
        target = self.work_dir / name
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as e:
            logger.warning("Failed to stage %s: %s", source, e)
            return None
        return target

    def _stage_side_files(self, cfg: ConfigModel, input_dir: Path) -> None:
        geo = input_dir / GEOIP_FILE
        if geo.is_file():
            staged = self._stage(geo, GEOIP_FILENAME)
            if staged is not None:
                cfg.analytics.has_geo_file = True
                cfg.analytics.geo_db_path = f"./{GEOIP_FILE}"
                cfg.analytics.geo_file_temp_path = str(staged)
                cfg.analytics.original_file_name = GEOIP_FILENAME
                cfg.analytics.file_size = geo.stat().st_size
                logger.info("Staged GeoIP database (%d bytes)", cfg.analytics.file_size)

        app = cfg.app
        key = input_dir / JWT_KEY_FILE
        if key.is_file():
            staged = self._stage(key, STAGED_JWT_KEY)
            app.jwt_key_file_path = str(key)
            app.jwt_key_temp_path = str(staged) if staged else ""
            app.jwt_key_from_file = True
            app.has_jwt_key_file = True
            logger.info("Found signing key at %s", key)
        else:
            if key.exists():
                logger.warning("%s is not a regular file, a new signing key will be used", key)
            app.jwt_key_file_path = ""
            app.jwt_key_temp_path = ""
            app.jwt_key_from_file = False
            app.has_jwt_key_file = False

        robots = input_dir / ROBOTS_FILE
        staged_robots = self._stage(robots, STAGED_ROBOTS) if robots.is_file() else None
        if staged_robots is not None:
            app.robots_txt_path = str(staged_robots)
            app.has_custom_robots_txt = True
        else:
            app.robots_txt_path = ""
            app.has_custom_robots_txt = False

    def _resolve_certificate(self, cfg: ConfigModel, input_dir: Path) -> None:
        resolution, tried = resolve_certificate(input_dir, cfg, self.resolvers)
        for attempt in tried:
            logger.info("Certificate candidate %s (%s): %s", attempt.resolver, attempt.cert_path,
                        "found" if attempt.found else "not found")

        if resolution is None:
            logger.warning("No certificate pair found in %s", input_dir)
            return

        cfg.tls.cert_path = str(resolution.cert_path)
        cfg.tls.key_path = str(resolution.key_path)
        if cfg.tls.use_setup_cert:
            logger.info("Disabling setup certificate reuse; explicit paths take precedence")
            cfg.tls.use_setup_cert = False

    def _annotate_warnings(self, cfg: ConfigModel) -> List[FieldError]:
        warnings = self.validator.validate(cfg)
        if warnings:
            cfg.revision_mode.modified_steps.append(VALIDATION_WARNINGS.format(count=len(warnings)))
        return warnings


# ============================================================
# Regeneration output directory
# ============================================================

def find_available_output_dir(input_dir: Union[str, Path]) -> Path:
    """First ``<input>-N`` (N = 1, 2, ...) that does not exist yet."""
    base = Path(input_dir).resolve()
    n = 1
    while True:
        candidate = base.with_name(f"{base.name}-{n}")
        if not candidate.exists():
            return candidate
        n += 1


def resolve_output_dir(input_dir: Union[str, Path], output_dir: Optional[Union[str, Path]] = None) -> Path:
    """
    Pick the output directory for a regeneration.

    An explicit directory must not exist; without one a fresh sibling of
    the input is used. The input directory is never returned.

    Raises:
        ConfigError: If the explicit directory exists
    """
    if output_dir:
        target = Path(output_dir)
        if target.exists():
            raise ConfigError(f"Output directory already exists: {target}")
        return target
    return find_available_output_dir(input_dir)
