"""
Setup Orchestrator

Sequences the setup lifecycle: initialize, configure, validate, probe,
generate, deploy and complete. Every transition is recorded in the
session state document.

Artifact generation, imports and uploads all touch the output and work
directories, so they are serialized behind one lock.
"""

import os
import tempfile
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Union

from ..builder import ArtifactGenerator, GenerationResult, is_private_key_pem
from ..config.defaults import GEOIP_FILENAME, PROXY_TYPES, STAGED_JWT_KEY, UNBOUND_IP
from ..config.loader import ConfigLoader, sanitize
from ..config.models import ConfigModel
from ..config.settings import Settings, get_settings
from ..errors import ConfigError, StorageError, UploadError, ValidationFailed
from ..importer import ImportReconciler, ImportResult, resolve_output_dir
from ..importer.reconciler import STAGED_ROBOTS
from ..probes import ConfigurationProbe, ConnectionTestResult, ServiceProbe
from ..storage.store import CONFIG_DOC, STATE_DOC, ConfigurationStore
from ..utils.clock import utc_now
from ..utils.logging import get_logger
from ..validation import FieldError, IncrementalValidator
from .deployment import DeploymentMonitor, DeploymentState
from .session import SessionToken, TokenManager
from .state import SessionState, SessionStatus

logger = get_logger(__name__)

MiB = 1024 * 1024

# kind -> (required extension, size limit, staged file name)
UPLOAD_KINDS = {
    "geo_file": (".mmdb", 100 * MiB, GEOIP_FILENAME),
    "jwt_key_file": (".pem", 10 * MiB, STAGED_JWT_KEY),
}

CHUNK_SIZE = 64 * 1024

# Side files staged in the work area for the current session
STAGED_FILES = (STAGED_JWT_KEY, GEOIP_FILENAME, STAGED_ROBOTS)


class SetupOrchestrator:
    """
    Drives one setup session.

    Collaborators are injected so tests can swap the store, probe and
    clock; anything not given is built from the settings.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        settings: Optional[Settings] = None,
        probe: Optional[ServiceProbe] = None,
        validator: Optional[IncrementalValidator] = None,
        generator: Optional[ArtifactGenerator] = None,
        reconciler: Optional[ImportReconciler] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Document store
            settings: Runtime settings (defaults to the process settings)
            probe: Service probe (defaults to parameter checks only)
            validator: Incremental validator
            generator: Artifact generator
            reconciler: Import reconciler
            clock: Source of the current time
        """
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock
        self.work_dir = Path(self.settings.work_dir)

        self.tokens = TokenManager(store, ttl=timedelta(hours=self.settings.token_ttl_hours), clock=clock)
        self.validator = validator or IncrementalValidator()
        self.probe = probe or ConfigurationProbe(clock=clock)
        self.generator = generator or ArtifactGenerator(self.settings.output_dir, self.work_dir)
        self.reconciler = reconciler or ImportReconciler(self.work_dir, self.validator, clock=clock)
        self.monitor = DeploymentMonitor(
            store,
            health_check=self.health_check,
            on_success=self.tokens.invalidate,
            interval=self.settings.health_poll_interval,
            timeout=self.settings.health_timeout,
            stream_interval=self.settings.stream_interval,
            clock=clock,
        )
        self._output_lock = threading.Lock()

    # ============================================================
    # Session state
    # ============================================================

    def get_status(self) -> SessionState:
        """Get the session state. A fresh store reports a pending state."""
        data = self.store.load(STATE_DOC)
        return SessionState.from_dict(data) if data else SessionState.fresh(self.clock())

    def is_completed(self) -> bool:
        return self.get_status().is_completed

    def _progress(self, step: str, progress: int, message: str,
                  status: SessionStatus = SessionStatus.IN_PROGRESS) -> SessionState:
        with self.store.transaction():
            state = self.get_status()
            state.advance(step, progress, message, self.clock(), status=status)
            self.store.save(STATE_DOC, state.to_dict())
        logger.info("Setup progress: %s %d%% - %s", step, progress, message)
        return state

    # ============================================================
    # Token
    # ============================================================

    def initialize(self, client_ip: str = UNBOUND_IP) -> SessionToken:
        """
        Start (or restart) a setup session.

        Issues a new token, replacing any previous one, and resets the
        session state to pending.
        """
        with self.store.transaction():
            token = self.tokens.issue(client_ip)
            now = self.clock()
            state = SessionState.fresh(now)
            state.advance("initialization", 0, "Setup initialized successfully", now,
                          status=SessionStatus.PENDING)
            self.store.save(STATE_DOC, state.to_dict())
        return token

    def validate_token(self, token: str, client_ip: str) -> SessionToken:
        """Validate a token, binding it to the caller on first use."""
        return self.tokens.validate(token, client_ip)

    def mark_token_used(self, token: str) -> None:
        self.tokens.mark_used(token)

    # ============================================================
    # Configuration
    # ============================================================

    def validate_configuration(self, cfg: ConfigModel) -> List[FieldError]:
        """Validate a draft without saving it."""
        return self.validator.validate(cfg)

    def save_configuration(self, cfg: ConfigModel) -> None:
        """
        Validate and persist a draft.

        Raises:
            ValidationFailed: Nothing is saved when any field is invalid
        """
        errors = self.validator.validate(cfg)
        if errors:
            logger.info("Rejected configuration at step %r: %d errors", cfg.current_step, len(errors))
            raise ValidationFailed(errors)

        with self.store.transaction():
            self.store.save(CONFIG_DOC, cfg.model_dump(mode="json"))
            self._progress("configuration", 25, "Configuration saved")

    def get_configuration(self) -> Optional[ConfigModel]:
        """Get the stored draft, if any."""
        data = self.store.load(CONFIG_DOC)
        return ConfigModel.model_validate(data) if data else None

    def _require_configuration(self) -> ConfigModel:
        cfg = self.get_configuration()
        if cfg is None:
            raise ConfigError("No configuration has been saved")
        return cfg

    def export_sanitized(self) -> str:
        """Export the stored draft with every secret removed."""
        return ConfigLoader.dumps(sanitize(self._require_configuration()))

    # ============================================================
    # Probes
    # ============================================================

    def test_connections(self, cfg: Optional[ConfigModel] = None) -> List[ConnectionTestResult]:
        """Probe the services of a draft (the stored one by default)."""
        cfg = cfg or self._require_configuration()
        self._progress("connection-test", 50, "Testing connections...")

        results = self.probe.test_all(cfg)
        if all(r.success for r in results):
            self._progress("connection-test", 75, "All connection tests passed")
        else:
            self._progress("connection-test", 50, "Some connection tests failed")
        return results

    def health_check(self) -> List[ConnectionTestResult]:
        """Probe the services of the stored configuration."""
        self._progress("health-check", 98, "Performing service health checks...")
        results = self.probe.test_all(self._require_configuration())
        if all(r.success for r in results):
            self._progress("health-check", 99, "All services are healthy")
        else:
            self._progress("health-check", 98, "Some services failed health check")
        return results

    # ============================================================
    # Artifacts
    # ============================================================

    def generate_artifacts(self, cfg: Optional[ConfigModel] = None,
                           output_dir: Optional[Union[str, Path]] = None) -> GenerationResult:
        """
        Render deployment artifacts.

        Args:
            cfg: Configuration to render (defaults to the stored draft)
            output_dir: Target directory (defaults to the configured one)

        Returns:
            Generation result
        """
        cfg = cfg or self._require_configuration()
        with self._output_lock:
            self._progress("generation", 90, "Generating configuration files...")
            return self.generator.generate(cfg, output_dir)

    def regenerate(
        self,
        input_dir: Union[str, Path],
        output_dir: Optional[Union[str, Path]] = None,
        reverse_proxy: Optional[str] = None,
    ) -> GenerationResult:
        """
        Regenerate artifacts from a previous output directory.

        Without an explicit output directory a fresh ``<input>-N``
        sibling is used, so the input is never overwritten.

        Args:
            input_dir: Previous output directory
            output_dir: Explicit target, which must not exist
            reverse_proxy: Optional reverse proxy override

        Returns:
            Generation result
        """
        if reverse_proxy and reverse_proxy not in PROXY_TYPES:
            raise ConfigError(f"Invalid reverse proxy: {reverse_proxy} (must be one of {', '.join(PROXY_TYPES)})")

        with self._output_lock:
            target = resolve_output_dir(input_dir, output_dir)
            logger.info("Regenerating %s into %s", input_dir, target)

            cfg = self._store_import(self.reconciler.import_output_dir(input_dir))
            if reverse_proxy and reverse_proxy != cfg.reverse_proxy.type:
                logger.info("Overriding reverse proxy: %s -> %s", cfg.reverse_proxy.type, reverse_proxy)
                cfg.reverse_proxy.type = reverse_proxy
                self.store.save(CONFIG_DOC, cfg.model_dump(mode="json"))

            self._progress("generation", 90, "Generating configuration files...")
            return self.generator.generate(cfg, target)

    # ============================================================
    # Imports and uploads
    # ============================================================

    def _store_import(self, result: ImportResult) -> ConfigModel:
        with self.store.transaction():
            self.store.save(CONFIG_DOC, result.config.model_dump(mode="json"))
            self._progress("import", 25, result.message)
        return result.config

    def import_configuration(self, data: Union[str, bytes]) -> ImportResult:
        """Import a configuration document as the new draft."""
        with self._output_lock:
            result = self.reconciler.import_document(data)
            self._store_import(result)
        return result

    def import_from_output_dir(self, input_dir: Union[str, Path]) -> ImportResult:
        """Import a previous output directory as the new draft."""
        with self._output_lock:
            result = self.reconciler.import_output_dir(input_dir)
            self._store_import(result)
        return result

    def stage_upload(self, kind: str, filename: str, stream: BinaryIO) -> Dict[str, Any]:
        """
        Stage an uploaded side file in the work area.

        Args:
            kind: ``geo_file`` or ``jwt_key_file``
            filename: Name supplied by the client
            stream: File contents

        Returns:
            filename, size, original_name and temp_path of the staged file

        Raises:
            UploadError: Unknown kind, wrong extension, too large or not a key
        """
        if kind not in UPLOAD_KINDS:
            raise UploadError(f"Unknown upload type: {kind}")
        extension, limit, staged_name = UPLOAD_KINDS[kind]

        original_name = os.path.basename(filename or "")
        if not original_name.lower().endswith(extension):
            raise UploadError(f"Invalid file type: expected a {extension} file")

        with self._output_lock:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".upload-", dir=self.work_dir)
            try:
                size = 0
                with os.fdopen(fd, "wb") as f:
                    while True:
                        chunk = stream.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        size += len(chunk)
                        if size > limit:
                            raise UploadError(f"File too large: limit is {limit // MiB} MiB")
                        f.write(chunk)

                if size == 0:
                    raise UploadError("Uploaded file is empty")
                if kind == "jwt_key_file" and not is_private_key_pem(Path(tmp_name).read_bytes()):
                    raise UploadError("Invalid key file: expected an unencrypted PEM private key")

                target = self.work_dir / staged_name
                os.replace(tmp_name, target)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise

        logger.info("Staged %s upload %s (%d bytes)", kind, original_name, size)
        return {
            "filename": staged_name,
            "size": size,
            "original_name": original_name,
            "temp_path": str(target),
        }

    # ============================================================
    # Deployment and completion
    # ============================================================

    def start_deployment(self) -> DeploymentState:
        """Start background health polling of the deployed services."""
        return self.monitor.start()

    def deployment_status(self) -> Optional[DeploymentState]:
        return self.monitor.status()

    def stream_deployment_logs(self, cancel: Optional[threading.Event] = None) -> Iterator[Dict[str, Any]]:
        return self.monitor.stream(cancel)

    def complete_setup(self) -> SessionState:
        """Finish the session: invalidate the token and mark setup completed."""
        self.tokens.invalidate()
        state = self._progress("completed", 100, "Setup completed successfully - tokens invalidated",
                               status=SessionStatus.COMPLETED)
        logger.info("Setup completed, token invalidated")
        return state

    def reset(self) -> None:
        """
        Discard the session state, draft, token and deployment document.

        Side files staged in the work area go too, so the next session
        does not pick up the previous signing key.
        """
        self.monitor.stop()
        # the polling thread writes a final entry on stop
        self.monitor.wait()
        with self._output_lock:
            self.store.reset()
            self._clear_staged_files()

    def _clear_staged_files(self) -> None:
        for name in STAGED_FILES:
            path = self.work_dir / name
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Cannot remove staged file {path}: {e}")
            logger.info("Removed staged file %s", path)
