"""
Tests for the setup orchestrator.

These tests verify:
- The setup lifecycle and the progress recorded at each step
- Validation gating of saves
- Imports, exports and regeneration
- Upload staging
- Completion and reset
"""
import io
import json

import pytest

from setupkit.builder import generate_private_key_pem
from setupkit.config import ConfigModel, parse_env_file
from setupkit.config.defaults import ENV_FILE, STAGED_JWT_KEY
from setupkit.errors import ConfigError, TokenExpired, UploadError, ValidationFailed
from setupkit.probes import ConnectionTestResult, ServiceProbe
from setupkit.wizard import DeploymentStatus, SessionStatus, SetupOrchestrator
from setupkit.wizard.orchestrator import UPLOAD_KINDS


class StubProbe(ServiceProbe):
    """Probe with fixed outcomes per service."""

    def __init__(self, cache_ok=True):
        self.cache_ok = cache_ok

    def test_database(self, cfg):
        return ConnectionTestResult("database", True)

    def test_cache(self, cfg):
        return ConnectionTestResult("cache", self.cache_ok, "" if self.cache_ok else "refused")

    def test_mail(self, cfg):
        return ConnectionTestResult("mail", True)


class TestLifecycle:
    """Tests for the main setup flow."""

    def test_fresh_store_is_pending(self, orchestrator):
        """Test the status reported before initialization."""
        state = orchestrator.get_status()
        assert state.status == SessionStatus.PENDING
        assert not orchestrator.is_completed()

    def test_initialize(self, orchestrator):
        """Test that initialization issues a token and resets the state."""
        token = orchestrator.initialize("10.0.0.5")
        state = orchestrator.get_status()

        assert not token.is_bound
        assert state.status == SessionStatus.PENDING
        assert state.current_step == "initialization"
        assert state.progress == 0
        assert state.message == "Setup initialized successfully"

    def test_end_to_end_partial_draft(self, orchestrator, output_dir):
        """Test issue, bind, save a database-only draft and generate."""
        token = orchestrator.initialize()
        assert orchestrator.validate_token(token.token, "1.2.3.4").bound_ip == "1.2.3.4"

        draft = ConfigModel.model_validate({
            "current_step": "database",
            "database": {
                "service_type": "external",
                "host": "db.example.net",
                "port": 5432,
                "name": "app_db",
                "app_user": "app_user",
                "app_password": "external-secret",
            },
        })
        assert orchestrator.validate_configuration(draft) == []
        orchestrator.save_configuration(draft)
        assert orchestrator.get_status().progress == 25

        result = orchestrator.generate_artifacts()
        env_text = (output_dir / ENV_FILE).read_text()
        env = parse_env_file(output_dir / ENV_FILE)

        assert env["DB_HOST"] == "db.example.net"
        assert env["DB_PORT"] == "5432"
        assert "{{" not in env_text
        assert "${" not in env_text
        assert ENV_FILE in result.files

        state = orchestrator.get_status()
        assert state.current_step == "generation"
        assert state.progress == 90

    def test_save_rejects_invalid(self, orchestrator, sample_config):
        """Test that an invalid draft is not persisted."""
        sample_config.database.port = 0

        with pytest.raises(ValidationFailed) as exc:
            orchestrator.save_configuration(sample_config)

        assert [e.field for e in exc.value.errors] == ["database.port"]
        assert orchestrator.get_configuration() is None

    def test_save_and_reload(self, orchestrator, sample_config):
        """Test that a saved draft is returned unchanged."""
        orchestrator.save_configuration(sample_config)

        assert orchestrator.get_configuration() == sample_config
        state = orchestrator.get_status()
        assert state.status == SessionStatus.IN_PROGRESS
        assert state.message == "Configuration saved"

    def test_connection_tests(self, store, settings, clock, sample_config):
        """Test the progress recorded for passing and failing probes."""
        orchestrator = SetupOrchestrator(store, settings=settings, probe=StubProbe(), clock=clock)
        orchestrator.save_configuration(sample_config)

        results = orchestrator.test_connections()
        assert [r.service for r in results] == ["database", "cache", "mail"]
        assert orchestrator.get_status().progress == 75
        assert orchestrator.get_status().message == "All connection tests passed"

        orchestrator.probe = StubProbe(cache_ok=False)
        orchestrator.test_connections()
        assert orchestrator.get_status().progress == 50
        assert orchestrator.get_status().message == "Some connection tests failed"

    def test_health_check(self, orchestrator, sample_config):
        """Test the health check against the stored configuration."""
        orchestrator.save_configuration(sample_config)
        results = orchestrator.health_check()

        assert all(r.success for r in results)
        state = orchestrator.get_status()
        assert state.current_step == "health-check"
        assert state.progress == 99

    def test_generate_without_configuration(self, orchestrator):
        """Test that generation needs a saved draft."""
        with pytest.raises(ConfigError):
            orchestrator.generate_artifacts()

    def test_complete_setup(self, orchestrator, clock):
        """Test that completion invalidates the token."""
        token = orchestrator.initialize()
        orchestrator.validate_token(token.token, "1.2.3.4")

        state = orchestrator.complete_setup()

        assert state.status == SessionStatus.COMPLETED
        assert state.progress == 100
        assert state.completed_at == clock.now
        assert state.message == "Setup completed successfully - tokens invalidated"
        assert orchestrator.is_completed()
        with pytest.raises(TokenExpired):
            orchestrator.validate_token(token.token, "1.2.3.4")

    def test_reset(self, orchestrator, sample_config):
        """Test that reset discards everything."""
        orchestrator.initialize()
        orchestrator.save_configuration(sample_config)

        orchestrator.reset()

        assert orchestrator.get_configuration() is None
        assert orchestrator.tokens.current() is None
        assert orchestrator.get_status().current_step == ""

    def test_reset_discards_staged_signing_key(self, orchestrator, sample_config, output_dir, work_dir):
        """Test that a new session does not reuse the previous signing key."""
        orchestrator.generate_artifacts(sample_config)
        first_key = (output_dir / "keys" / "jwt-private.pem").read_bytes()
        assert (work_dir / STAGED_JWT_KEY).exists()

        orchestrator.reset()
        assert not (work_dir / STAGED_JWT_KEY).exists()

        orchestrator.generate_artifacts(sample_config)
        assert (output_dir / "keys" / "jwt-private.pem").read_bytes() != first_key

    def test_reset_during_deployment(self, store, settings, clock, sample_config):
        """Test that reset stops monitoring and leaves no deployment document."""
        orchestrator = SetupOrchestrator(store, settings=settings, probe=StubProbe(cache_ok=False), clock=clock)
        orchestrator.save_configuration(sample_config)
        orchestrator.start_deployment()

        orchestrator.reset()

        assert not orchestrator.monitor.running
        assert orchestrator.deployment_status() is None

    def test_deployment_completes_setup_token(self, orchestrator, sample_config):
        """Test that a healthy deployment invalidates the token."""
        token = orchestrator.initialize()
        orchestrator.save_configuration(sample_config)

        orchestrator.start_deployment()
        assert orchestrator.monitor.wait(5)

        assert orchestrator.deployment_status().status == DeploymentStatus.COMPLETED
        assert orchestrator.tokens.current().used
        with pytest.raises(TokenExpired):
            orchestrator.validate_token(token.token, "1.2.3.4")


class TestImportExport:
    """Tests for import, export and regeneration."""

    def test_export_is_sanitized(self, orchestrator, sample_config):
        """Test that the export carries no secrets."""
        orchestrator.save_configuration(sample_config)
        exported = json.loads(orchestrator.export_sanitized())

        assert exported["database"]["app_password"] == ""
        assert exported["admin_user"]["password"] == ""
        assert exported["app"]["domain_name"] == "app.example.com"

    def test_import_sanitized_export(self, orchestrator, sample_config):
        """Test that a sanitized export imports with warnings instead of failing."""
        orchestrator.save_configuration(sample_config)
        exported = orchestrator.export_sanitized()
        orchestrator.reset()

        result = orchestrator.import_configuration(exported)

        assert result.sanitized
        assert result.warnings
        stored = orchestrator.get_configuration()
        assert stored.revision_mode.enabled
        state = orchestrator.get_status()
        assert state.current_step == "import"
        assert state.progress == 25
        assert state.message == "Sanitized configuration imported - passwords required"

    def test_import_from_output_dir(self, orchestrator, sample_config, output_dir):
        """Test importing the directory a previous generation wrote."""
        orchestrator.generate_artifacts(sample_config)
        orchestrator.reset()

        result = orchestrator.import_from_output_dir(output_dir)

        assert result.from_directory
        assert orchestrator.get_configuration().database.app_password == "AppSecret#2024x"

    def test_regenerate_to_new_sibling(self, orchestrator, sample_config, output_dir):
        """Test that regeneration never overwrites its input."""
        orchestrator.generate_artifacts(sample_config)
        before = (output_dir / ENV_FILE).read_bytes()

        result = orchestrator.regenerate(output_dir)

        assert result.output_dir.name == f"{output_dir.name}-1"
        assert (result.output_dir / ENV_FILE).read_bytes() == before
        assert (output_dir / ENV_FILE).read_bytes() == before

        again = orchestrator.regenerate(output_dir)
        assert again.output_dir.name == f"{output_dir.name}-2"
        assert again.output_dir != result.output_dir

    def test_regenerate_with_proxy_override(self, orchestrator, sample_config, output_dir, tmp_path):
        """Test switching the reverse proxy during regeneration."""
        orchestrator.generate_artifacts(sample_config)

        result = orchestrator.regenerate(output_dir, tmp_path / "nginx-out", reverse_proxy="nginx")

        assert "nginx/conf.d/app.example.com.conf" in result.files
        assert orchestrator.get_configuration().reverse_proxy.type == "nginx"

    def test_regenerate_rejects_bad_proxy(self, orchestrator, output_dir):
        """Test that only known proxies are accepted."""
        with pytest.raises(ConfigError):
            orchestrator.regenerate(output_dir, reverse_proxy="traefik")

    def test_regenerate_existing_target(self, orchestrator, sample_config, output_dir, tmp_path):
        """Test that an existing explicit target is refused."""
        orchestrator.generate_artifacts(sample_config)
        (tmp_path / "taken").mkdir()

        with pytest.raises(ConfigError):
            orchestrator.regenerate(output_dir, tmp_path / "taken")


class TestUploads:
    """Tests for staging uploaded side files."""

    def test_stage_geo_file(self, orchestrator, work_dir):
        """Test that a GeoIP database lands in the work area."""
        info = orchestrator.stage_upload("geo_file", "City.MMDB", io.BytesIO(b"\x00" * 10))

        assert info == {
            "filename": "GeoLite2-City.mmdb",
            "size": 10,
            "original_name": "City.MMDB",
            "temp_path": str(work_dir / "GeoLite2-City.mmdb"),
        }
        assert (work_dir / "GeoLite2-City.mmdb").read_bytes() == b"\x00" * 10

    def test_stage_key(self, orchestrator, work_dir):
        """Test that a valid private key is staged for generation."""
        pem = generate_private_key_pem()
        info = orchestrator.stage_upload("jwt_key_file", "signing.pem", io.BytesIO(pem))

        assert info["temp_path"] == str(work_dir / STAGED_JWT_KEY)
        assert (work_dir / STAGED_JWT_KEY).read_bytes() == pem

    def test_reject_bad_key(self, orchestrator, work_dir):
        """Test that a PEM file without a private key is rejected and cleaned up."""
        with pytest.raises(UploadError):
            orchestrator.stage_upload("jwt_key_file", "signing.pem", io.BytesIO(b"not a key"))

        assert not (work_dir / STAGED_JWT_KEY).exists()
        assert list(work_dir.iterdir()) == []

    @pytest.mark.parametrize("kind,filename", [
        ("geo_file", "city.dat"),
        ("jwt_key_file", "key.txt"),
        ("avatar", "me.png"),
    ])
    def test_reject_type(self, orchestrator, kind, filename):
        """Test that unknown kinds and wrong extensions are rejected."""
        with pytest.raises(UploadError):
            orchestrator.stage_upload(kind, filename, io.BytesIO(b"data"))

    def test_reject_oversize(self, orchestrator, work_dir, monkeypatch):
        """Test the size limit."""
        monkeypatch.setitem(UPLOAD_KINDS, "geo_file", (".mmdb", 8, "GeoLite2-City.mmdb"))
        with pytest.raises(UploadError):
            orchestrator.stage_upload("geo_file", "city.mmdb", io.BytesIO(b"\x00" * 9))
        assert not (work_dir / "GeoLite2-City.mmdb").exists()

    def test_reject_empty(self, orchestrator):
        """Test that an empty upload is rejected."""
        with pytest.raises(UploadError):
            orchestrator.stage_upload("geo_file", "city.mmdb", io.BytesIO(b""))
