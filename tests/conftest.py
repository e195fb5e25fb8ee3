import asyncio
import base64
import zlib
from io import BytesIO

import httpx
import pytest
from PIL import Image

from stylestudio import prompt_builder
from stylestudio.errors import GenerationFailed, RemixFailed
from stylestudio.gemini_client import GeminiClient
from stylestudio.model import Category, ImagePayload
from stylestudio.worker import StyleOrchestrator


def make_png(color=(200, 30, 30), size=(8, 8)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def png_payload(color=(200, 30, 30)) -> ImagePayload:
    return ImagePayload(media_type="image/png", data=base64.b64encode(make_png(color)).decode())


def image_response(payload: ImagePayload) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "candidates": [
                {"content": {"parts": [{"inlineData": {"mimeType": payload.media_type, "data": payload.data}}]}}
            ]
        },
    )


def text_response(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def internal_error() -> httpx.Response:
    return httpx.Response(
        500,
        json={"error": {"code": 500, "message": "Internal error encountered.", "status": "INTERNAL"}},
    )


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedModel:
    """Mock transport handler answering with queued responses, recording requests."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


class FakeClient:
    """Stands in for GeminiClient inside the orchestrator."""

    def __init__(self):
        self.calls = []
        self.remix_calls = []
        self.fail = set()
        self.remix_fail = False
        self.gates = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def result_for(self, label: str) -> ImagePayload:
        c = zlib.crc32(label.encode())
        return png_payload((c & 0xFF, (c >> 8) & 0xFF, (c >> 16) & 0xFF))

    async def generate(self, source, instruction, fallback_label="", category=""):
        self.calls.append(fallback_label)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            gate = self.gates.get(fallback_label)
            if gate is not None:
                await gate.wait()
            if fallback_label in self.fail:
                raise GenerationFailed(f"boom {fallback_label}")
            return self.result_for(fallback_label)
        finally:
            self.in_flight -= 1

    async def remix(self, source, instruction):
        self.remix_calls.append((source, instruction))
        await asyncio.sleep(0)
        if self.remix_fail:
            raise RemixFailed("The AI model failed to modify the image. Details: nope")
        return png_payload((1, 2, 3))


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_client(sleep):
    def _make(model: ScriptedModel) -> GeminiClient:
        return GeminiClient(api_key="test-key", transport=httpx.MockTransport(model), sleep=sleep)

    return _make


@pytest.fixture
def source_image():
    return png_payload((10, 120, 200))


@pytest.fixture
def source_uri(source_image):
    return f"data:{source_image.media_type};base64,{source_image.data}"


@pytest.fixture
def short_labels(monkeypatch):
    """Shrink the label sets: female -> A, B, C and male -> X, Y."""
    monkeypatch.setitem(prompt_builder.HAIRSTYLES, Category.FEMALE, ["A", "B", "C"])
    monkeypatch.setitem(prompt_builder.HAIRSTYLES, Category.MALE, ["X", "Y"])


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def orchestrator(fake_client, short_labels):
    return StyleOrchestrator(fake_client, concurrency_limit=2)
