from __future__ import annotations

import pytest

from tandem.config import DEFAULT_MODEL, Config
from tandem.errors import ConfigurationError
from tandem.retry import RetryPolicy

pytestmark = pytest.mark.unit


def test_defaults_with_mock() -> None:
    config = Config(use_mock=True)
    assert config.model == DEFAULT_MODEL == "gpt-4o-mini"
    assert config.api_key is None
    assert config.retry == RetryPolicy()
    assert config.timeout_s is None


def test_api_key_and_base_url_resolve_from_env(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://proxy.example/v1")

    config = Config()

    assert config.api_key == "sk-env"
    assert config.base_url == "https://proxy.example/v1"


def test_explicit_values_win_over_env(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    assert Config(api_key="sk-arg").api_key == "sk-arg"


def test_missing_api_key_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        Config()
    assert "OPENAI_API_KEY" in (exc_info.value.hint or "")


@pytest.mark.parametrize("kwargs", [{"model": ""}, {"model": "  "}, {"timeout_s": 0}])
def test_invalid_values_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationError):
        Config(use_mock=True, **kwargs)


def test_repr_never_leaks_the_key() -> None:
    config = Config(api_key="sk-very-secret")
    assert "sk-very-secret" not in repr(config)
    assert "sk-very-secret" not in str(config)
    assert "[REDACTED]" in str(config)


def test_config_is_frozen() -> None:
    config = Config(use_mock=True)
    with pytest.raises(AttributeError):
        config.model = "other"  # type: ignore[misc]
