"""Gemini calls that turn a design image, or the current code plus an
instruction, into a complete HTML document."""

import logging
import re
import time

from google import genai
from google.genai import types

from config import AVAILABLE_MODELS, THINKING_MODELS
from errors import GenerationFailure
from system_prompt import (
    REFINE_CODE_BLOCK,
    REFINE_TASK,
    SYNTHESIS_TASK,
    SYSTEM_INSTRUCTION,
)

logger = logging.getLogger(__name__)

SYNTHESIS_TEMPERATURE = 0.2

_LEADING_FENCE = re.compile(r"\A\s*```[\w+-]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```\s*\Z")


def strip_code_fences(text):
    """Remove a leading ```lang and a trailing ``` marker if the model added them."""
    text = _LEADING_FENCE.sub("", text, count=1)
    return _TRAILING_FENCE.sub("", text, count=1)


def make_client(settings):
    return genai.Client(
        api_key=settings.api_key,
        http_options=types.HttpOptions(timeout=settings.timeout_ms),
    )


def build_config(model, temperature=None):
    kwargs = {"system_instruction": SYSTEM_INSTRUCTION}
    if temperature is not None:
        kwargs["temperature"] = temperature
    if model in THINKING_MODELS:
        kwargs["thinking_config"] = types.ThinkingConfig(thinking_level="low")
    return types.GenerateContentConfig(**kwargs)


class ArtifactGenerator:
    """Synthesizer and refiner sharing one client, model and retry policy."""

    def __init__(self, client, model=AVAILABLE_MODELS[0], retries=2,
                 base_delay=0.5, max_delay=4.0):
        if retries < 0:
            raise ValueError("retries must not be negative")
        self.client = client
        self.model = model
        self.retries = retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    @classmethod
    def from_settings(cls, settings):
        return cls(make_client(settings), model=settings.model, retries=settings.retries)

    def synthesize(self, image, media_type):
        contents = [
            types.Part.from_text(text=SYNTHESIS_TASK),
            types.Part.from_bytes(data=image, mime_type=media_type),
        ]
        config = build_config(self.model, temperature=SYNTHESIS_TEMPERATURE)
        return self._generate("synthesis", contents, config)

    def refine(self, current, instruction):
        contents = [
            REFINE_CODE_BLOCK.format(code=current),
            REFINE_TASK.format(instruction=instruction),
        ]
        return self._generate("refinement", contents, build_config(self.model))

    def _generate(self, label, contents, config):
        attempts = self.retries + 1
        error = None
        for attempt in range(1, attempts + 1):
            try:
                start = time.time()
                response = self.client.models.generate_content(
                    model=self.model, contents=contents, config=config,
                )
                elapsed = round(time.time() - start, 1)
                text = strip_code_fences(response.text or "")
                if text.strip():
                    logger.info("%s finished in %ss (%d chars)", label, elapsed, len(text))
                    return text
                error = GenerationFailure(f"The model returned an empty {label} response.")
            except Exception as e:
                error = e

            if attempt < attempts:
                delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
                logger.warning("%s attempt %s/%s failed: %s", label, attempt, attempts, error)
                time.sleep(delay)

        logger.error("%s failed after %s attempts: %s", label, attempts, error)
        if isinstance(error, GenerationFailure):
            raise error
        raise GenerationFailure(f"Failed to generate code ({label}): {error}") from error
