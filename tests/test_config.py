import pytest

from config import AVAILABLE_MODELS, Settings
from errors import ConfigError


def test_missing_api_key_is_fatal():
    with pytest.raises(ConfigError):
        Settings.from_env({})


def test_defaults():
    settings = Settings.from_env({"GEMINI_API_KEY": "k"})
    assert settings.model == AVAILABLE_MODELS[0]
    assert settings.timeout_ms == 300_000
    assert settings.timeout_seconds == 300
    assert settings.retries == 2


def test_overrides():
    settings = Settings.from_env({
        "GEMINI_API_KEY": "k",
        "GEMINI_MODEL": "gemini-2.5-pro",
        "GEMINI_TIMEOUT_MS": "1500",
        "GENERATION_RETRIES": "0",
        "MAX_IMAGE_EDGE": "800",
    })
    assert settings.model == "gemini-2.5-pro"
    assert settings.timeout_ms == 1500
    assert settings.retries == 0
    assert settings.max_image_edge == 800


@pytest.mark.parametrize("env", [
    {"GEMINI_MODEL": "gpt-4"},
    {"GEMINI_TIMEOUT_MS": "soon"},
    {"GENERATION_RETRIES": "-1"},
])
def test_invalid_values(env):
    with pytest.raises(ConfigError):
        Settings.from_env({"GEMINI_API_KEY": "k", **env})
