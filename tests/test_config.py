"""Tests for settings loading."""

import json

import pytest

from graphfetch import fetch_messages
from graphfetch.config import AppSettings, load_settings
from graphfetch.errors import ConfigError

ENV_VARS = [
    "GRAPH_APPLICATION_ID",
    "GRAPH_TENANT_ID",
    "GRAPH_BASE_URL",
    "GRAPH_PAGE_SIZE",
    "GRAPH_MAX_WORKERS",
    "GRAPH_MAX_RETRIES",
    "GRAPH_DEFAULT_RETRY_DELAY",
    "GRAPH_MAX_TOTAL_DELAY",
    "GRAPH_MAX_RETRY_DELAY",
    "GRAPH_REQUEST_TIMEOUT",
    "GRAPH_USE_DEVICE_FLOW",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and working directory."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def write_settings(tmp_path, data, name="appsettings.json"):
    path = tmp_path / name
    path.write_text(json.dumps(data) if not isinstance(data, str) else data, encoding="utf-8")
    return path


class TestLoadSettings:
    """Tests for file and environment settings."""

    def test_reads_default_file(self, tmp_path):
        """Test appsettings.json in the working directory."""
        write_settings(tmp_path, {"applicationId": "app", "tenantId": "tenant", "maxWorkers": 4})

        settings = load_settings(env_file=tmp_path / ".env")

        assert settings.application_id == "app"
        assert settings.tenant_id == "tenant"
        assert settings.max_workers == 4
        assert settings.page_size == 100
        assert settings.default_retry_delay == 2

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = write_settings(tmp_path, {"applicationId": "app", "tenantId": "tenant"}, "custom.json")
        monkeypatch.setenv("GRAPH_TENANT_ID", "other-tenant")
        monkeypatch.setenv("GRAPH_MAX_RETRIES", "9")
        monkeypatch.setenv("GRAPH_USE_DEVICE_FLOW", "true")
        monkeypatch.setenv("GRAPH_MAX_RETRY_DELAY", "60")

        settings = load_settings(path, env_file=tmp_path / ".env")

        assert settings.tenant_id == "other-tenant"
        assert settings.max_retries == 9
        assert settings.use_device_flow is True
        assert settings.max_retry_delay == 60

    def test_env_file(self, tmp_path, monkeypatch):
        """Test that a .env file feeds the environment."""
        env_file = tmp_path / ".env"
        env_file.write_text("GRAPH_APPLICATION_ID=from-dotenv\nGRAPH_TENANT_ID=t\n", encoding="utf-8")
        monkeypatch.setenv("GRAPH_PAGE_SIZE", "10")

        settings = load_settings(env_file=env_file)

        assert settings.application_id == "from-dotenv"
        assert settings.page_size == 10
        # load_dotenv wrote these straight into os.environ
        monkeypatch.delenv("GRAPH_APPLICATION_ID")
        monkeypatch.delenv("GRAPH_TENANT_ID")

    @pytest.mark.parametrize("data", [
        {"tenantId": "tenant"},
        {"applicationId": "app"},
        {"applicationId": "  ", "tenantId": "tenant"},
        {},
    ])
    def test_missing_ids(self, tmp_path, data):
        write_settings(tmp_path, data)

        with pytest.raises(ConfigError, match="Missing required setting"):
            load_settings(env_file=tmp_path / ".env")

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.json", env_file=tmp_path / ".env")

    def test_invalid_json(self, tmp_path):
        path = write_settings(tmp_path, "{not json")

        with pytest.raises(ConfigError, match="Invalid settings file"):
            load_settings(path, env_file=tmp_path / ".env")

    def test_invalid_number(self, tmp_path):
        write_settings(tmp_path, {"applicationId": "a", "tenantId": "t", "pageSize": "lots"})

        with pytest.raises(ConfigError, match="pageSize"):
            load_settings(env_file=tmp_path / ".env")


class TestValidate:
    """Tests for range checks."""

    @pytest.mark.parametrize("changes", [
        {"page_size": 0},
        {"page_size": 1001},
        {"max_workers": 0},
        {"max_retries": -1},
        {"default_retry_delay": 0},
        {"max_total_delay": 0},
        {"max_retry_delay": 0},
        {"request_timeout": 0},
    ])
    def test_out_of_range(self, changes):
        settings = AppSettings(application_id="a", tenant_id="t", **changes)

        with pytest.raises(ConfigError):
            settings.validate()


class TestConfigErrorBeforeNetwork:
    """Tests that bad settings stop the CLI before any request."""

    def test_missing_application_id_makes_no_calls(self, tmp_path, monkeypatch):
        write_settings(tmp_path, {"tenantId": "tenant"})
        calls = []
        monkeypatch.setattr(fetch_messages, "setup_logging", lambda **kwargs: None)
        monkeypatch.setattr(fetch_messages, "build_client", lambda *a, **k: calls.append(a))

        exit_code = fetch_messages.main(["--settings", str(tmp_path / "appsettings.json")])

        assert exit_code == fetch_messages.EXIT_CONFIG_ERROR
        assert calls == []
