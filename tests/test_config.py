import pytest
from pydantic import ValidationError

from search_do.core.config import Settings, settings


class TestConfig:
    """Test configuration settings."""

    def test_settings_instance(self):
        assert settings is not None
        assert isinstance(settings, Settings)

    def test_defaults(self, monkeypatch):
        for name in ("ENVIRONMENT", "ESTRAIER_HOST", "ESTRAIER_PORT", "SEARCH_BACKEND", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        test_settings = Settings(_env_file=None)

        assert test_settings.ENVIRONMENT == "development"
        assert test_settings.ESTRAIER_HOST == "localhost"
        assert test_settings.ESTRAIER_PORT == 1978
        assert test_settings.ESTRAIER_NODE_PREFIX is None
        assert test_settings.SEARCH_BACKEND == "hyper_estraier"
        assert test_settings.LOG_LEVEL == "INFO"

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("ESTRAIER_HOST", "search.internal")
        monkeypatch.setenv("ESTRAIER_PORT", "2000")

        test_settings = Settings(_env_file=None)

        assert test_settings.ESTRAIER_HOST == "search.internal"
        assert test_settings.ESTRAIER_PORT == 2000

    def test_backend_config_keys(self):
        config = Settings(_env_file=None).backend_config()

        assert set(config) == {
            "backend", "host", "port", "user", "password",
            "node_prefix", "connect_timeout", "read_timeout",
        }

    def test_backend_name_is_normalized(self):
        assert Settings(_env_file=None, SEARCH_BACKEND=" Memory ").SEARCH_BACKEND == "memory"

    def test_log_level_is_normalized(self):
        assert Settings(_env_file=None, LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, LOG_LEVEL="LOUD")

    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_port(self, port):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, ESTRAIER_PORT=port)

    def test_blank_host(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, ESTRAIER_HOST="  ")
