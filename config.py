import os
from dataclasses import dataclass

from dotenv import load_dotenv

from errors import ConfigError

AVAILABLE_MODELS = [
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-3-flash-preview",
    "gemini-3-pro-preview",
    "gemini-2.0-flash",
]

THINKING_MODELS = {
    "gemini-3-flash-preview",
    "gemini-3-pro-preview",
}


@dataclass(frozen=True)
class Settings:
    api_key: str
    model: str = AVAILABLE_MODELS[0]
    timeout_ms: int = 300_000
    retries: int = 2
    max_image_edge: int = 2048

    @property
    def timeout_seconds(self):
        return self.timeout_ms / 1000

    @classmethod
    def from_env(cls, environ=None):
        """Read settings from the process environment (and .env, if present)."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        api_key = environ.get("GEMINI_API_KEY", "").strip()
        if not api_key:
            raise ConfigError("GEMINI_API_KEY is not set")

        model = environ.get("GEMINI_MODEL", AVAILABLE_MODELS[0]).strip()
        if model not in AVAILABLE_MODELS:
            raise ConfigError(f"Unknown model: {model}")

        try:
            timeout_ms = int(environ.get("GEMINI_TIMEOUT_MS", 300_000))
            retries = int(environ.get("GENERATION_RETRIES", 2))
            max_edge = int(environ.get("MAX_IMAGE_EDGE", 2048))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        if timeout_ms <= 0 or retries < 0 or max_edge <= 0:
            raise ConfigError("Timeout and image edge must be positive, retries non-negative")

        return cls(
            api_key=api_key,
            model=model,
            timeout_ms=timeout_ms,
            retries=retries,
            max_image_edge=max_edge,
        )
