import io
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from session import SessionController  # noqa: E402
from system_prompt import TAILWIND_SCRIPT  # noqa: E402


def page(body):
    return (
        "<!DOCTYPE html>\n<html><head>" + TAILWIND_SCRIPT + "</head>"
        "<body>" + body + "</body></html>"
    )


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModels:
    """Stands in for genai.Client().models; replays queued texts or exceptions."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


class FakeClient:
    def __init__(self, *replies):
        self.models = FakeModels(replies)


class FakeGenerator:
    """Synthesizer/refiner double. When gate is set, calls block until it opens."""

    def __init__(self, synth=(), refine=()):
        self.synth_results = list(synth)
        self.refine_results = list(refine)
        self.calls = []
        self.gate = None
        self.entered = threading.Event()

    def synthesize(self, image, media_type):
        self.calls.append(("synthesize", media_type))
        return self._next(self.synth_results)

    def refine(self, current, instruction):
        self.calls.append(("refine", current, instruction))
        return self._next(self.refine_results)

    def _next(self, results):
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        item = results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def make_png(size=(40, 30), color=(30, 120, 200)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def generator():
    return FakeGenerator(
        synth=[page('<main class="bg-white">Artifact A</main>')],
        refine=[page('<main class="bg-zinc-900">Artifact B</main>')],
    )


@pytest.fixture
def controller(generator, executor):
    return SessionController(generator, max_image_edge=1024, executor=executor)
