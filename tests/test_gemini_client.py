import json

import httpx
import pytest

from config.settings import Settings
from stylestudio.errors import (
    GenerationFailed,
    MissingCredentials,
    ModelRequestError,
    NoImageReturned,
    RemixFailed,
    TransientServerError,
)
from stylestudio.gemini_client import GeminiClient, extract_image
from stylestudio.prompt_builder import build_fallback_instruction

from conftest import ScriptedModel, image_response, internal_error, png_payload, text_response


def sent_text(request: httpx.Request) -> str:
    return json.loads(request.content)["contents"][0]["parts"][1]["text"]


# --- transport / retry ---

async def test_request_shape(make_client, source_image):
    result = png_payload((0, 255, 0))
    model = ScriptedModel(image_response(result))
    client = make_client(model)

    await client.call_with_retry(source_image, "give them a mohawk")

    req = model.requests[0]
    assert req.method == "POST"
    assert req.url.path.endswith("/models/gemini-2.5-flash-image-preview:generateContent")
    assert req.headers["x-goog-api-key"] == "test-key"
    parts = json.loads(req.content)["contents"][0]["parts"]
    assert parts[0] == {"inlineData": {"mimeType": "image/png", "data": source_image.data}}
    assert parts[1] == {"text": "give them a mohawk"}


async def test_retries_internal_errors_then_succeeds(make_client, sleep, source_image):
    result = png_payload()
    model = ScriptedModel(internal_error(), internal_error(), image_response(result))

    response = await make_client(model).call_with_retry(source_image, "prompt")

    assert extract_image(response) == result
    assert len(model.requests) == 3
    assert sleep.delays == [1.0, 2.0]


async def test_internal_status_in_body_is_retried(make_client, sleep, source_image):
    busy = httpx.Response(503, json={"error": {"code": 503, "status": "INTERNAL"}})
    model = ScriptedModel(busy, image_response(png_payload()))

    await make_client(model).call_with_retry(source_image, "prompt")

    assert len(model.requests) == 2
    assert sleep.delays == [1.0]


async def test_gives_up_after_three_attempts(make_client, sleep, source_image):
    model = ScriptedModel(internal_error(), internal_error(), internal_error())

    with pytest.raises(TransientServerError) as exc:
        await make_client(model).call_with_retry(source_image, "prompt")

    assert exc.value.status_code == 500
    assert len(model.requests) == 3
    assert sleep.delays == [1.0, 2.0]


async def test_non_transient_error_is_not_retried(make_client, sleep, source_image):
    model = ScriptedModel(httpx.Response(400, json={"error": {"code": 400, "status": "INVALID_ARGUMENT"}}))

    with pytest.raises(ModelRequestError) as exc:
        await make_client(model).call_with_retry(source_image, "prompt")

    assert exc.value.status_code == 400
    assert len(model.requests) == 1
    assert sleep.delays == []


# --- response extraction ---

def test_extract_image_skips_text_parts():
    response = {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "Here you go"},
                        {"inline_data": {"mime_type": "image/jpeg", "data": "abcd"}},
                    ]
                }
            }
        ]
    }
    payload = extract_image(response)
    assert payload.media_type == "image/jpeg"
    assert payload.data == "abcd"


def test_extract_image_raises_with_model_text():
    with pytest.raises(NoImageReturned) as exc:
        extract_image({"candidates": [{"content": {"parts": [{"text": "I can't help with that."}]}}]})
    assert exc.value.text == "I can't help with that."
    assert "I can't help with that." in str(exc.value)


def test_extract_image_without_candidates():
    with pytest.raises(NoImageReturned) as exc:
        extract_image({})
    assert exc.value.text is None


# --- generate ---

async def test_generate_returns_primary_image(make_client, source_image):
    result = png_payload()
    model = ScriptedModel(image_response(result))

    image = await make_client(model).generate(source_image, "primary", "Samurai Bun", "male")

    assert image == result
    assert len(model.requests) == 1


async def test_generate_falls_back_when_refused(make_client, source_image):
    result = png_payload((9, 9, 9))
    model = ScriptedModel(text_response("Sorry, no."), image_response(result))

    image = await make_client(model).generate(source_image, "primary", "Samurai Bun", "male")

    assert image == result
    assert [sent_text(r) for r in model.requests] == [
        "primary",
        build_fallback_instruction("Samurai Bun", "male"),
    ]


async def test_each_tier_has_its_own_retry_budget(make_client, sleep, source_image):
    result = png_payload()
    model = ScriptedModel(
        internal_error(), internal_error(), text_response("blocked"),
        internal_error(), image_response(result),
    )

    image = await make_client(model).generate(source_image, "primary", "Cornrows", "male")

    assert image == result
    assert len(model.requests) == 5
    assert sleep.delays == [1.0, 2.0, 1.0]


async def test_generate_without_fallback_inputs_reraises_refusal(make_client, source_image):
    model = ScriptedModel(text_response("nope"))

    with pytest.raises(NoImageReturned) as exc:
        await make_client(model).generate(source_image, "primary", "", "")

    assert exc.value.text == "nope"
    assert len(model.requests) == 1


async def test_generate_fails_when_fallback_also_refused(make_client, source_image):
    model = ScriptedModel(text_response("nope"), text_response("still nope"))

    with pytest.raises(GenerationFailed) as exc:
        await make_client(model).generate(source_image, "primary", "Cornrows", "male")

    assert "both the original and fallback prompts" in str(exc.value)
    assert "still nope" in str(exc.value)


async def test_generate_wraps_other_errors_without_fallback(make_client, sleep, source_image):
    model = ScriptedModel(internal_error(), internal_error(), internal_error())

    with pytest.raises(GenerationFailed) as exc:
        await make_client(model).generate(source_image, "primary", "Cornrows", "male")

    assert isinstance(exc.value.__cause__, TransientServerError)
    assert len(model.requests) == 3


# --- remix ---

async def test_remix_returns_image(make_client, source_image):
    result = png_payload((4, 5, 6))
    model = ScriptedModel(image_response(result))

    assert await make_client(model).remix(source_image, "make it blue") == result
    assert sent_text(model.requests[0]) == "make it blue"


async def test_remix_has_no_fallback(make_client, source_image):
    model = ScriptedModel(text_response("refused"))

    with pytest.raises(RemixFailed) as exc:
        await make_client(model).remix(source_image, "make it blue")

    assert "refused" in str(exc.value)
    assert len(model.requests) == 1


# --- configuration ---

def test_missing_api_key_is_fatal():
    cfg = Settings()
    cfg.GEMINI_API_KEY = None
    with pytest.raises(MissingCredentials):
        GeminiClient.from_settings(cfg)


def test_from_settings():
    cfg = Settings()
    cfg.GEMINI_API_KEY = "k"
    cfg.GEMINI_MODEL = "some-model"
    client = GeminiClient.from_settings(cfg)
    assert client.api_key == "k"
    assert client.model == "some-model"
    assert client.max_attempts == 3
    assert client.initial_delay == 1.0


def test_retry_budget_comes_from_environment(monkeypatch):
    import importlib.util
    import config.settings as settings_module

    monkeypatch.setenv("MAX_ATTEMPTS", "5")
    monkeypatch.setenv("INITIAL_RETRY_DELAY", "0.25")
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    spec = importlib.util.spec_from_file_location("settings_from_env", settings_module.__file__)
    fresh = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(fresh)

    client = GeminiClient.from_settings(fresh.Settings())
    assert client.max_attempts == 5
    assert client.initial_delay == 0.25
    assert client.api_key == "env-key"
