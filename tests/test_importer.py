"""
Tests for the import reconciler.

These tests verify:
- Sanitized and complete configuration documents
- Full output directory imports with secrets restored from the env file
- Side file staging and certificate resolution
- Environment file parsing
- Regeneration output directory selection
"""
import pytest

from setupkit.builder import ArtifactGenerator
from setupkit.config import ConfigLoader, parse_env_text, sanitize
from setupkit.config.defaults import (
    ENV_FILE,
    JWT_KEY_FILE,
    NOTICE_FULL_IMPORT,
    NOTICE_SECRETS_NEEDED,
    SECURITY_NOTICE,
    SNAPSHOT_FILE,
    STAGED_JWT_KEY,
)
from setupkit.errors import ConfigError
from setupkit.importer import ImportReconciler, find_available_output_dir, resolve_output_dir


@pytest.fixture
def reconciler(work_dir, clock):
    return ImportReconciler(work_dir, clock=clock)


@pytest.fixture
def previous_output(tmp_path, work_dir, sample_config):
    """An output directory written by an earlier generation."""
    target = tmp_path / "deploy"
    ArtifactGenerator(target, work_dir).generate(sample_config)
    return target


class TestEnvParsing:
    """Tests for KEY=VALUE parsing."""

    def test_parse(self):
        """Test comments, blanks, whitespace and quotes."""
        text = (
            "# comment\n"
            "\n"
            "PLAIN=value\n"
            "  SPACED =  padded  \n"
            "SINGLE='has space'\n"
            'DOUBLE="it\'s"\n'
            "EQUALS=a=b=c\n"
            "NOEQUALS\n"
            "EMPTY=\n"
        )
        assert parse_env_text(text) == {
            "PLAIN": "value",
            "SPACED": "padded",
            "SINGLE": "has space",
            "DOUBLE": "it's",
            "EQUALS": "a=b=c",
            "EMPTY": "",
        }


class TestImportDocument:
    """Tests for importing standalone configuration documents."""

    def test_sanitized_document(self, reconciler, sample_config, clock):
        """Test that a sanitized export imports with re-entry notices."""
        document = ConfigLoader.dumps(sanitize(sample_config))
        result = reconciler.import_document(document)

        assert result.sanitized
        assert not result.from_directory
        assert result.message == "Sanitized configuration imported - passwords required"

        revision = result.config.revision_mode
        assert revision.enabled
        assert revision.imported_at == clock.now
        assert SECURITY_NOTICE in revision.modified_steps
        assert NOTICE_SECRETS_NEEDED in revision.modified_steps
        assert revision.modified_steps[-1] == f"VALIDATION_WARNINGS: {len(result.warnings)} fields need attention"
        assert "database.app_password" in [w.field for w in result.warnings]
        assert result.config.database.app_password == ""
        assert result.config.admin_user.password == ""

    def test_complete_document(self, reconciler, sample_config):
        """Test that a document with secrets imports cleanly."""
        result = reconciler.import_document(ConfigLoader.dumps(sample_config).encode("utf-8"))

        assert not result.sanitized
        assert result.warnings == []
        assert result.message == "Configuration imported successfully"
        assert result.config.database.app_password == "AppSecret#2024x"
        assert result.config.revision_mode.modified_steps == []

    @pytest.mark.parametrize("data", ["{not json", "[1, 2]", '{"database": {"port": "x"}}'])
    def test_invalid_document(self, reconciler, data):
        """Test that unparseable documents raise ConfigError."""
        with pytest.raises(ConfigError):
            reconciler.import_document(data)


class TestImportOutputDir:
    """Tests for importing a previous output directory."""

    def test_secrets_restored(self, reconciler, previous_output, clock):
        """Test that secrets are spliced back from the environment file."""
        result = reconciler.import_output_dir(previous_output)
        cfg = result.config

        assert result.from_directory
        assert not result.sanitized
        assert result.warnings == []
        assert result.message == "Configuration imported from output directory"
        assert cfg.database.super_password == "SuperSecret#2024"
        assert cfg.database.app_password == "AppSecret#2024x"
        assert cfg.cache.password == "CachePass#2024"
        assert cfg.cache.admin_password == "CacheAdmin#2024"
        assert cfg.admin_user.password == "AdminPass#2024"
        assert cfg.mail.password == "mail-password"
        assert cfg.revision_mode.modified_steps == [NOTICE_FULL_IMPORT]
        assert cfg.revision_mode.imported_at == clock.now

    def test_side_files_staged(self, reconciler, previous_output, work_dir):
        """Test that the signing key and robots.txt are copied to the work area."""
        cfg = reconciler.import_output_dir(previous_output).config

        assert cfg.app.has_jwt_key_file
        assert cfg.app.jwt_key_from_file
        assert cfg.app.jwt_key_file_path == str(previous_output / JWT_KEY_FILE)
        assert cfg.app.jwt_key_temp_path == str(work_dir / STAGED_JWT_KEY)
        assert (work_dir / STAGED_JWT_KEY).read_bytes() == (previous_output / JWT_KEY_FILE).read_bytes()
        assert cfg.app.has_custom_robots_txt
        assert (work_dir / "robots.txt").is_file()

    def test_geo_file_staged(self, reconciler, tmp_path, work_dir, sample_config):
        """Test that a GeoIP database in the output directory is carried over."""
        geo = tmp_path / "upload.mmdb"
        geo.write_bytes(b"\x00mmdb")
        sample_config.analytics.enabled = True
        sample_config.analytics.geo_file_temp_path = str(geo)
        target = tmp_path / "deploy"
        ArtifactGenerator(target, work_dir).generate(sample_config)

        analytics = reconciler.import_output_dir(target).config.analytics
        assert analytics.has_geo_file
        assert analytics.file_size == 5
        assert analytics.geo_file_temp_path == str(work_dir / "GeoLite2-City.mmdb")

    def test_regenerated_artifacts_match(self, reconciler, previous_output, tmp_path, work_dir):
        """Test that import then generate reproduces the deployment files."""
        cfg = reconciler.import_output_dir(previous_output).config
        target = tmp_path / "deploy-1"
        ArtifactGenerator(target, work_dir).generate(cfg)

        for name in (ENV_FILE, "docker-compose.production.yml", "caddy/Caddyfile", JWT_KEY_FILE,
                     "static/robots.txt"):
            assert (target / name).read_bytes() == (previous_output / name).read_bytes(), name

    def test_validation_problems_become_warnings(self, reconciler, previous_output):
        """Test that an invalid restored value is reported, not raised."""
        env_path = previous_output / ENV_FILE
        env_path.write_text(env_path.read_text().replace("SUPER_PASSWORD='AdminPass#2024'", "SUPER_PASSWORD=weak"))

        result = reconciler.import_output_dir(previous_output)

        assert [w.field for w in result.warnings] == ["admin_user.password"]
        assert result.config.revision_mode.modified_steps == [
            NOTICE_FULL_IMPORT,
            "VALIDATION_WARNINGS: 1 fields need attention",
        ]

    def test_missing_directory(self, reconciler, tmp_path):
        """Test that a missing input directory raises ConfigError."""
        with pytest.raises(ConfigError):
            reconciler.import_output_dir(tmp_path / "nope")

    def test_missing_snapshot(self, reconciler, previous_output):
        """Test that an output directory without a snapshot is refused."""
        (previous_output / SNAPSHOT_FILE).unlink()
        with pytest.raises(ConfigError):
            reconciler.import_output_dir(previous_output)

    def test_missing_env_file(self, reconciler, previous_output):
        """Test that an output directory without an env file is refused."""
        (previous_output / ENV_FILE).unlink()
        with pytest.raises(ConfigError):
            reconciler.import_output_dir(previous_output)


class TestCertificateResolution:
    """Tests for locating the certificate pair of a manual TLS import."""

    @pytest.fixture
    def manual_input(self, tmp_path, sample_config):
        """A hand-made output directory for a manual TLS deployment."""
        sample_config.tls.enabled = True
        sample_config.tls.cert_path = "/gone/cert.pem"
        sample_config.tls.key_path = "/gone/key.pem"
        sample_config.tls.use_setup_cert = True

        root = tmp_path / "legacy"
        ConfigLoader().save(sample_config, root / SNAPSHOT_FILE)
        (root / ENV_FILE).write_text("APP_DB_PASSWORD=AppSecret#2024x\n")
        return root

    def _write_pair(self, directory):
        directory.mkdir(parents=True)
        (directory / "fullchain.pem").write_text("CERT")
        (directory / "privkey.pem").write_text("KEY")

    def test_certbot_fallback(self, reconciler, manual_input):
        """Test that the legacy certbot location is used when ssl/ is absent."""
        live = manual_input / "caddy/certbot/conf/live/example.com"
        self._write_pair(live)

        tls = reconciler.import_output_dir(manual_input).config.tls
        assert tls.cert_path == str(live / "fullchain.pem")
        assert tls.key_path == str(live / "privkey.pem")
        assert tls.use_setup_cert is False

    def test_canonical_preferred(self, reconciler, manual_input):
        """Test that ssl/ wins over the legacy location."""
        self._write_pair(manual_input / "ssl")
        self._write_pair(manual_input / "caddy/certbot/conf/live/example.com")

        tls = reconciler.import_output_dir(manual_input).config.tls
        assert tls.cert_path == str(manual_input / "ssl" / "fullchain.pem")

    def test_half_pair_ignored(self, reconciler, manual_input):
        """Test that a certificate without its key is not used."""
        (manual_input / "ssl").mkdir()
        (manual_input / "ssl" / "fullchain.pem").write_text("CERT")

        tls = reconciler.import_output_dir(manual_input).config.tls
        assert tls.cert_path == "/gone/cert.pem"
        assert tls.use_setup_cert is True


class TestOutputDirSelection:
    """Tests for choosing the regeneration target."""

    def test_first_free_sibling(self, tmp_path):
        """Test the -N numbering."""
        base = tmp_path / "deploy"
        base.mkdir()
        assert find_available_output_dir(base) == tmp_path / "deploy-1"

        (tmp_path / "deploy-1").mkdir()
        assert find_available_output_dir(base) == tmp_path / "deploy-2"

    def test_trailing_slash(self, tmp_path):
        """Test that a trailing separator does not change the name."""
        (tmp_path / "deploy").mkdir()
        assert find_available_output_dir(f"{tmp_path / 'deploy'}/") == tmp_path / "deploy-1"

    def test_explicit_must_not_exist(self, tmp_path):
        """Test that an existing explicit target is refused."""
        (tmp_path / "taken").mkdir()
        with pytest.raises(ConfigError):
            resolve_output_dir(tmp_path / "deploy", tmp_path / "taken")

        assert resolve_output_dir(tmp_path / "deploy", tmp_path / "fresh") == tmp_path / "fresh"
