"""
Settings Tests
==============
"""

import pytest
from pydantic import ValidationError

from pgpmime_mcp.config import Settings, get_settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("PGPMIME_GPG_BINARY", "PGPMIME_GNUPG_HOME", "PGPMIME_HOST_LINE_ENDING"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.gpg_binary == "gpg"
        assert settings.gnupg_home is None
        assert settings.engine_timeout_seconds is None
        assert settings.always_trust is False
        assert settings.default_micalg == "pgp-sha256"
        assert settings.max_nesting_depth == 6
        assert settings.host_newline == b"\n"

    def test_environment_override(self, clean_env):
        clean_env.setenv("PGPMIME_GPG_BINARY", "/opt/gnupg/bin/gpg")
        clean_env.setenv("PGPMIME_HOST_LINE_ENDING", "crlf")

        settings = get_settings()

        assert settings.gpg_binary == "/opt/gnupg/bin/gpg"
        assert settings.host_newline == b"\r\n"
        assert get_settings() is settings

    def test_empty_path_is_none(self, clean_env):
        clean_env.setenv("PGPMIME_GNUPG_HOME", "")
        assert Settings(_env_file=None).gnupg_home is None

    def test_nesting_depth_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_nesting_depth=0)

    def test_unknown_line_ending_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, host_line_ending="cr")
