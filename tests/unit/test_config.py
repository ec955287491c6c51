import pytest

from switchboard.core.config import Config, ConfigValueError
from switchboard.core.config.context import mock_config, scrub_provider_environment, temporary_config
from switchboard.core.config.schema import ConfigSchema
from switchboard.core.config.validation import load_env_var, validate_all


@pytest.mark.unit
class TestConfigLoading:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        with temporary_config() as config:
            assert config.port == 8085
            assert config.max_concurrent_requests == 3
            assert config.retry_enabled is False
            assert config.health_check_interval_seconds == 0
            assert config.default_provider == ""

    def test_environment_overrides(self):
        with temporary_config(
            {
                "PORT": "9999",
                "LOG_LEVEL": "debug  # verbose",
                "SWB_DEFAULT_PROVIDER": " Anthropic ",
                "SWB_RETRY_ENABLED": "yes",
                "SWB_HEALTH_CHECK_INTERVAL_SECONDS": "2.5",
            }
        ) as config:
            assert config.port == 9999
            assert config.log_level == "DEBUG"
            assert config.default_provider == "anthropic"
            assert config.retry_enabled is True
            assert config.health_check_interval_seconds == 2.5

    def test_environment_restored(self, monkeypatch):
        monkeypatch.setenv("PORT", "7000")
        with temporary_config({"PORT": "9999"}):
            pass
        assert Config.load().port == 7000

    def test_invalid_integer(self):
        with pytest.raises(ConfigValueError) as exc_info:
            with temporary_config({"SWB_MAX_CONCURRENT_REQUESTS": "many"}):
                pass
        assert exc_info.value.env_var == "SWB_MAX_CONCURRENT_REQUESTS"

    def test_validator_rejects_out_of_range(self):
        with pytest.raises(ConfigValueError):
            with temporary_config({"SWB_MAX_CONCURRENT_REQUESTS": "0"}):
                pass

    def test_mock_config_overrides_fields(self):
        with mock_config(max_concurrent_requests=7) as config:
            assert config.max_concurrent_requests == 7

    def test_summary_has_no_paths_or_secrets(self):
        with temporary_config() as config:
            summary = config.summary()
        assert "settings_file" not in summary
        assert summary["max_concurrent_requests"] == 3


@pytest.mark.unit
class TestSchema:
    def test_validate_all_collects_every_error(self, monkeypatch):
        monkeypatch.setenv("PORT", "70000")
        monkeypatch.setenv("SWB_RETRY_ATTEMPTS", "zero")
        errors = validate_all()
        assert sorted(error.env_var for error in errors) == ["PORT", "SWB_RETRY_ATTEMPTS"]

    def test_unset_variable_uses_default(self, monkeypatch):
        monkeypatch.delenv("SWB_STREAM_BUFFER_SIZE", raising=False)
        assert load_env_var(ConfigSchema.SWB_STREAM_BUFFER_SIZE) == 64

    def test_get_spec(self):
        assert ConfigSchema.get_spec("PORT") is ConfigSchema.PORT
        assert ConfigSchema.get_spec("NOPE") is None

    def test_markdown_docs_list_every_variable(self):
        docs = ConfigSchema.generate_markdown_docs()
        for spec in ConfigSchema.all_specs().values():
            assert f"`{spec.name}`" in docs

    def test_rejected_value_names_the_setting(self, monkeypatch):
        monkeypatch.setenv("PORT", "0")
        with pytest.raises(ConfigValueError) as exc_info:
            load_env_var(ConfigSchema.PORT)
        assert exc_info.value.message == "not a valid value for: Server port number"


@pytest.mark.unit
def test_scrub_provider_environment():
    environ = {"OPENAI_API_KEY": "sk-1", "GEMINI_BASE_URL": "http://x", "PORT": "1", "SWB_X": "y"}
    removed = scrub_provider_environment(environ)
    assert sorted(removed) == ["GEMINI_BASE_URL", "OPENAI_API_KEY"]
    assert environ == {"PORT": "1", "SWB_X": "y"}
