"""Tests for lrm_sync.config — env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the client
bootstrap path: validate_config(), load_config() and load_settings().
"""

import logging

import pytest

from lrm_sync.config import Config, load_config, load_settings, validate_config

_ENV_VARS = (
    "LRM_API_URL",
    "LRM_PROJECT",
    "LRM_API_KEY",
    "LRM_ACCESS_TOKEN",
    "LRM_INSECURE",
    "LRM_DEBUG",
    "LRM_TIMEOUT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def env(clean_env):
    clean_env.setenv("LRM_API_URL", "https://lrm.example.com/api")
    clean_env.setenv("LRM_PROJECT", "demo")
    clean_env.setenv("LRM_API_KEY", "key-123")
    return clean_env


def _config(**overrides) -> Config:
    fields = {
        "api_url": "https://lrm.example.com/api",
        "project": "demo",
        "api_key": "key-123",
    }
    fields.update(overrides)
    return Config(**fields)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config() — URL format and credential checks."""

    def test_valid_config(self):
        validate_config(_config())  # should not raise

    def test_http_url_valid(self):
        validate_config(_config(api_url="http://localhost:5000/api"))

    def test_invalid_url_no_scheme(self):
        with pytest.raises(
            ValueError, match="must start with http:// or https://"
        ):
            validate_config(_config(api_url="lrm.example.com"))

    def test_empty_host(self):
        with pytest.raises(ValueError, match="must include a hostname"):
            validate_config(_config(api_url="https://"))

    def test_trailing_slash_and_whitespace_stripped(self):
        config = _config(api_url="  https://lrm.example.com/api/  ")
        validate_config(config)
        assert config.api_url == "https://lrm.example.com/api"

    def test_empty_project(self):
        with pytest.raises(ValueError, match="Project cannot be empty"):
            validate_config(_config(project="  "))

    def test_missing_credentials(self):
        with pytest.raises(ValueError, match="No credentials configured"):
            validate_config(_config(api_key=None))

    def test_token_alone_is_enough(self):
        validate_config(_config(api_key=None, access_token="tok"))

    @pytest.mark.parametrize("timeout", [0, -1, 601])
    def test_timeout_range(self, timeout):
        with pytest.raises(ValueError, match="Invalid timeout"):
            validate_config(_config(timeout=timeout))

    def test_insecure_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="lrm_sync.config"):
            validate_config(_config(insecure=True))
        assert "SSL verification disabled" in caplog.text

    def test_secure_no_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="lrm_sync.config"):
            validate_config(_config())
        assert "SSL verification disabled" not in caplog.text


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    """Tests for load_config() — env var loading, CLI overrides, boolean parsing."""

    def test_load_from_env_vars(self, env):
        config = load_config()
        assert config.api_url == "https://lrm.example.com/api"
        assert config.project == "demo"
        assert config.api_key == "key-123"
        assert config.access_token is None
        assert config.timeout == 60.0

    def test_cli_args_override_env(self, env):
        config = load_config(
            url="https://cli.example.com",
            project="cli-project",
            access_token="cli-token",
        )
        assert config.api_url == "https://cli.example.com"
        assert config.project == "cli-project"
        assert config.access_token == "cli-token"

    def test_yaml_fallbacks_used_last(self, clean_env):
        config = load_config(
            yaml_fallbacks={
                "url": "https://yaml.example.com",
                "project": "yaml-project",
                "api_key": "yaml-key",
                "timeout": 30,
                "insecure": True,
            }
        )
        assert config.api_url == "https://yaml.example.com"
        assert config.project == "yaml-project"
        assert config.timeout == 30.0
        assert config.insecure is True

    def test_env_beats_yaml(self, env):
        config = load_config(yaml_fallbacks={"project": "yaml-project"})
        assert config.project == "demo"

    def test_missing_url_raises(self, clean_env):
        with pytest.raises(ValueError, match="API URL not found"):
            load_config()

    def test_missing_project_raises(self, clean_env):
        clean_env.setenv("LRM_API_URL", "https://lrm.example.com")
        with pytest.raises(ValueError, match="Project not found"):
            load_config()

    def test_missing_credentials_raises(self, clean_env):
        clean_env.setenv("LRM_API_URL", "https://lrm.example.com")
        clean_env.setenv("LRM_PROJECT", "demo")
        with pytest.raises(ValueError, match="No credentials"):
            load_config()

    def test_timeout_from_env(self, env):
        env.setenv("LRM_TIMEOUT", "15")
        assert load_config().timeout == 15.0

    def test_invalid_timeout_env(self, env):
        env.setenv("LRM_TIMEOUT", "soon")
        with pytest.raises(ValueError, match="Invalid LRM_TIMEOUT"):
            load_config()

    # --- Boolean env var parsing ---

    @pytest.mark.parametrize(
        "value", ["true", "1", "yes", "on", "TRUE", "True", "YES"]
    )
    def test_insecure_truthy_values(self, env, value):
        env.setenv("LRM_INSECURE", value)
        assert load_config().insecure is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "off", ""])
    def test_insecure_falsy_values(self, env, value):
        env.setenv("LRM_INSECURE", value)
        assert load_config(yaml_fallbacks={"insecure": True}).insecure is False

    def test_debug_flag_wins(self, env):
        env.setenv("LRM_DEBUG", "false")
        assert load_config(debug=True).debug is True


# -------------------------------------------------------------------------
# load_settings()
# -------------------------------------------------------------------------


class TestLoadSettings:
    def test_reads_project_yaml_and_env(self, env, tmp_path):
        (tmp_path / ".lrm").mkdir()
        (tmp_path / ".lrm" / "config.yml").write_text(
            "remote:\n  timeout: 20\nsync:\n  conflict_strategy: remote\n"
        )
        env.chdir(tmp_path)
        env.setenv("HOME", str(tmp_path / "home"))
        env.delenv("LRM_SYNC_CONFIG", raising=False)

        unified, client_config = load_settings()

        assert unified.sync.conflict_strategy == "remote"
        assert client_config.timeout == 20.0
        assert client_config.project == "demo"

    def test_cli_overrides(self, env, tmp_path):
        env.chdir(tmp_path)
        env.setenv("HOME", str(tmp_path / "home"))
        env.delenv("LRM_SYNC_CONFIG", raising=False)

        _, client_config = load_settings({"project": "other", "debug": True})

        assert client_config.project == "other"
        assert client_config.debug is True
