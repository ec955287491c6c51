import pytest

from switchboard.core.errors import ConfigurationError
from switchboard.core.provider.provider_config_loader import ProviderConfigLoader, settings_key
from switchboard.core.provider_config import ProviderConfig, merge_config, sanitize_config
from switchboard.core.settings_store import MemorySettingsStore

BASE = ProviderConfig(name="OpenAI", base_url="https://api.openai.com", default_model="gpt-4o-mini")


@pytest.mark.unit
class TestProviderConfig:
    def test_required_fields(self):
        with pytest.raises(ConfigurationError):
            ProviderConfig(name="X", base_url="", default_model="m")
        with pytest.raises(ConfigurationError):
            ProviderConfig(name="X", base_url="https://x.test", default_model="m", timeout_ms=0)

    def test_merge_overrides_key_by_key(self):
        merged = merge_config(BASE, {"api_key": "sk-1", "timeout_ms": "2500", "base_url": None})
        assert merged.api_key == "sk-1"
        assert merged.timeout_ms == 2500
        assert merged.base_url == BASE.base_url
        assert merged.default_model == BASE.default_model

    def test_merge_without_overrides_returns_base(self):
        assert merge_config(BASE, None) is BASE
        assert merge_config(BASE, {}) is BASE

    def test_merge_rejects_unknown_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            merge_config(BASE, {"apikey": "sk"})
        assert "apikey" in exc_info.value.message

    def test_merge_rejects_bad_values(self):
        with pytest.raises(ConfigurationError):
            merge_config(BASE, {"timeout_ms": "soon"})
        with pytest.raises(ConfigurationError):
            merge_config(BASE, {"custom_headers": "X-Trace: 1"})

    def test_sanitize_removes_credentials(self):
        config = merge_config(
            BASE,
            {
                "api_key": "sk-secret",
                "organization": "org-secret",
                "custom_headers": {"X-Trace-Id": "t1", "X-Api-Key": "hk", "Authorization": "Bearer x"},
            },
        )
        sanitized = sanitize_config(config)

        assert "api_key" not in sanitized
        assert "organization" not in sanitized
        assert sanitized["custom_headers"] == {"X-Trace-Id": "t1"}
        assert sanitized["has_api_key"] is True
        assert "secret" not in repr(sanitized)

    def test_sanitize_mapping_keeps_has_api_key(self):
        assert sanitize_config({"has_api_key": True, "token": "t"}) == {"has_api_key": True}


@pytest.mark.unit
class TestProviderConfigLoader:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", " sk-env ")
        monkeypatch.setenv("OPENAI_BASE_URL", "https://proxy.example.com")
        monkeypatch.setenv("OPENAI_DEFAULT_MODEL", "")
        overrides = ProviderConfigLoader().load("openai")
        assert overrides == {"api_key": "sk-env", "base_url": "https://proxy.example.com"}

    def test_custom_headers_from_environment(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_CUSTOM_HEADER_X_TRACE_ID", "abc")
        monkeypatch.setenv("ANTHROPIC_CUSTOM_HEADER_", "ignored")
        headers = ProviderConfigLoader().get_custom_headers("anthropic")
        assert headers == {"X-Trace-Id": "abc"}

    def test_environment_wins_over_persisted(self, monkeypatch):
        store = MemorySettingsStore(
            {
                settings_key("gemini"): {
                    "default_model": "gemini-1.5-pro",
                    "timeout_ms": 1000,
                    "custom_headers": {"X-Team": "a", "X-Trace": "stored"},
                    "api_key": "leaked",
                    "has_api_key": True,
                }
            }
        )
        monkeypatch.setenv("GEMINI_TIMEOUT_MS", "2000")
        monkeypatch.setenv("GEMINI_CUSTOM_HEADER_X_TRACE", "env")

        overrides = ProviderConfigLoader(store).load("gemini")

        assert overrides["default_model"] == "gemini-1.5-pro"
        assert overrides["timeout_ms"] == "2000"
        assert overrides["custom_headers"] == {"X-Team": "a", "X-Trace": "env"}
        assert "api_key" not in overrides
        assert "has_api_key" not in overrides

    def test_malformed_persisted_entry_is_ignored(self):
        store = MemorySettingsStore({settings_key("openai"): "garbage"})
        assert ProviderConfigLoader(store).load_persisted("openai") == {}

    def test_save_never_writes_credentials(self):
        store = MemorySettingsStore()
        ProviderConfigLoader(store).save(
            "openai", {"default_model": "gpt-4o", "api_key": "sk", "has_api_key": True}
        )
        assert store.get(settings_key("openai")) == {"default_model": "gpt-4o"}
