"""
Tests for configuration handling.

These tests verify:
- Runtime settings from the environment
- Document loading, saving and sanitizing
- Environment value quoting
"""
import pytest
from pydantic import ValidationError

from setupkit.config import ConfigLoader, Settings, is_sanitized, parse_env_text, sanitize
from setupkit.config.defaults import SECURITY_NOTICE
from setupkit.config.loader import format_env_value
from setupkit.errors import ConfigError


class TestSettings:
    """Tests for runtime settings."""

    def test_environment_prefix(self, monkeypatch):
        """Test that SETUPKIT_* variables are read."""
        monkeypatch.setenv("SETUPKIT_TOKEN_TTL_HOURS", "2")
        monkeypatch.setenv("SETUPKIT_LOG_LEVEL", "debug")

        settings = Settings()
        assert settings.token_ttl_hours == 2
        assert settings.log_level == "DEBUG"

    def test_invalid_log_level(self):
        """Test that unknown log levels are refused."""
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")

    def test_positive_intervals(self):
        """Test that intervals must be positive."""
        with pytest.raises(ValidationError):
            Settings(health_poll_interval=0)


class TestConfigLoader:
    """Tests for configuration documents."""

    def test_save_sanitized_by_default(self, tmp_path, sample_config):
        """Test that save strips secrets unless asked not to."""
        path = ConfigLoader(tmp_path / "cfg.json").save(sample_config)
        loaded = ConfigLoader(path).load()

        assert loaded.database.app_password == ""
        assert loaded.app.domain_name == "app.example.com"
        assert SECURITY_NOTICE in loaded.revision_mode.modified_steps

        ConfigLoader(path).save(sample_config, sanitized=False)
        assert ConfigLoader(path).load() == sample_config

    def test_dumps_is_stable(self, sample_config):
        """Test that serialization is deterministic."""
        assert ConfigLoader.dumps(sample_config) == ConfigLoader.dumps(sample_config.model_copy(deep=True))

    def test_missing_file(self, tmp_path):
        """Test loading a file that does not exist."""
        with pytest.raises(ConfigError):
            ConfigLoader(tmp_path / "nope.json").load()

    def test_no_path(self):
        """Test loading without a path."""
        with pytest.raises(ConfigError):
            ConfigLoader().load()

    def test_unknown_fields_ignored(self):
        """Test that documents from newer versions still load."""
        cfg = ConfigLoader.parse('{"app": {"domain_name": "a.example.com", "theme": "dark"}, "extra": 1}')
        assert cfg.app.domain_name == "a.example.com"


class TestSanitize:
    """Tests for secret removal."""

    def test_sanitize_copy(self, sample_config):
        """Test that sanitize leaves the original untouched."""
        clean = sanitize(sample_config)

        assert clean.cache.password == ""
        assert clean.mail.password == ""
        assert sample_config.cache.password == "CachePass#2024"
        assert is_sanitized(clean)
        assert not is_sanitized(sample_config)

    def test_sanitize_once(self, sample_config):
        """Test that the notice is not duplicated."""
        twice = sanitize(sanitize(sample_config))
        assert twice.revision_mode.modified_steps.count(SECURITY_NOTICE) == 1

    def test_detect_by_missing_secrets(self, sample_config):
        """Test detection without a notice marker."""
        sample_config.database.app_password = ""
        sample_config.cache.password = ""
        sample_config.admin_user.password = ""
        assert is_sanitized(sample_config)


class TestEnvValues:
    """Tests for environment value quoting."""

    @pytest.mark.parametrize("value,expected", [
        ("plain", "plain"),
        ("", ""),
        ("has space", "'has space'"),
        ("Secret#1", "'Secret#1'"),
        ("pa$$", "'pa$$'"),
        ("it's", '"it\'s"'),
        ("it's $5", '"it\'s \\$5"'),
        ("two\nlines", '"two\\nlines"'),
        ('end"', "'end\"'"),
    ])
    def test_format(self, value, expected):
        """Test which values are quoted and how."""
        assert format_env_value(value) == expected

    @pytest.mark.parametrize("value", [
        "plain", "has space", "Secret#1", "pa$$", "it's",
        '"wrapped"', "'single'", 'mail-pass"', "'''", "back\\slash\\n",
        "tab\there", "line1\nline2\r\n", '\\"$', "  padded  ",
    ])
    def test_survives_parsing(self, value):
        """Test that a formatted value parses back unchanged."""
        assert parse_env_text(f"KEY={format_env_value(value)}\n")["KEY"] == value

    def test_only_one_quote_pair_removed(self):
        """Test that quotes inside the wrapping pair are kept."""
        text = (
            "A='\"x\"'\n"
            "B=\"'y'\"\n"
            "C=\"a\\\"b\\\\c\\nd\"\n"
            "D='unterminated\n"
        )
        assert parse_env_text(text) == {
            "A": '"x"',
            "B": "'y'",
            "C": 'a"b\\c\nd',
            "D": "'unterminated",
        }
