"""Tests for the AI factory, mock backends, vision schema and the HTTP clients (httpx MockTransport)."""

import asyncio
import json

import httpx
import numpy as np
import pytest

from product_match.ai.factory import get_embedding_generator, get_vision_analyzer
from product_match.ai.schema import VisionResult
from product_match.ai.vision_base import MockEmbeddingGenerator, MockVisionAnalyzer
from product_match.ai.vision_http import HttpEmbeddingGenerator, HttpVisionAnalyzer
from product_match.core.config import Settings
from product_match.core.errors import UpstreamError


@pytest.mark.fast
def test_factory_returns_mock_backends():
    """'mock' returns the mock analyzer and generator."""
    assert isinstance(get_vision_analyzer("mock"), MockVisionAnalyzer)
    assert isinstance(get_embedding_generator("mock"), MockEmbeddingGenerator)


@pytest.mark.fast
def test_factory_builds_http_backends_from_settings():
    """'http' builds clients whose model cards name the configured models."""
    settings = Settings(vision_model="vision-x", embedding_model="embed-y", vision_api_key="k")
    analyzer = get_vision_analyzer("http", settings)
    generator = get_embedding_generator("http", settings)
    assert isinstance(analyzer, HttpVisionAnalyzer)
    assert analyzer.get_model_card().name == "vision-x"
    assert isinstance(generator, HttpEmbeddingGenerator)
    assert generator.get_model_card().name == "embed-y"


@pytest.mark.fast
def test_factory_rejects_unknown_names():
    """Unknown backend names raise ValueError."""
    with pytest.raises(ValueError, match="Unknown vision analyzer: clip"):
        get_vision_analyzer("clip")
    with pytest.raises(ValueError, match="Unknown embedding generator: clip"):
        get_embedding_generator("clip")


@pytest.mark.fast
def test_mock_embedding_is_deterministic_unit_vector():
    """Same bytes give the same normalized vector; different bytes differ."""
    gen = MockEmbeddingGenerator(dimensions=8)
    a = asyncio.run(gen.embed(b"one"))
    b = asyncio.run(gen.embed(b"one"))
    c = asyncio.run(gen.embed(b"two"))
    assert a == b
    assert a != c
    assert len(a) == 8
    assert np.linalg.norm(a) == pytest.approx(1.0)
    assert gen.calls == 3


@pytest.mark.fast
def test_mock_vision_records_calls():
    """The mock returns its configured results and records each call."""
    results = [VisionResult(brand_name="A"), VisionResult(brand_name="B")]
    analyzer = MockVisionAnalyzer(results=results)
    assert asyncio.run(analyzer.analyze_multiple(b"x")) == results
    assert asyncio.run(analyzer.analyze(b"x")).product_name == "Placeholder product"
    assert analyzer.calls == ["analyze_multiple", "analyze"]


@pytest.mark.fast
def test_vision_result_normalizes_blank_fields():
    """Blank strings become None, a missing category becomes Other, null lists become empty."""
    v = VisionResult.model_validate(
        {"brand_name": " ", "inferred_category": None, "detected_logos": None, "image_tags": ["Metal"]}
    )
    assert v.brand_name is None
    assert v.inferred_category == "Other"
    assert v.detected_logos == []
    assert v.tag_set == {"metal"}


def _chat_response(content: str) -> dict:
    return {"choices": [{"message": {"content": content}}]}


@pytest.mark.fast
def test_http_vision_analyze_parses_fenced_json():
    """Markdown fences are stripped and the payload validated."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        content = '```json\n{"brand_name": "Stanley", "model_number": "STMT74101", "detected_logos": ["Stanley"]}\n```'
        return httpx.Response(200, json=_chat_response(content))

    analyzer = HttpVisionAnalyzer(
        "https://api.example.test/v1/", "secret", "vision-x", transport=httpx.MockTransport(handler)
    )
    result = asyncio.run(analyzer.analyze(b"\x89PNG"))
    assert result.brand_name == "Stanley"
    assert result.detected_logos == ["Stanley"]
    assert seen["url"] == "https://api.example.test/v1/chat/completions"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["model"] == "vision-x"
    image_part = seen["body"]["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")


@pytest.mark.fast
def test_http_vision_analyze_multiple_with_boxes():
    """The multi-product reply is a {'products': [...]} object with bounding boxes."""
    payload = {
        "products": [
            {"brand_name": "Coca-Cola", "bounding_box": {"x": 0.1, "y": 0.1, "width": 0.2, "height": 0.5}},
            {"brand_name": "Pepsi"},
        ]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_chat_response(json.dumps(payload)))

    analyzer = HttpVisionAnalyzer("https://api.example.test/v1", None, "vision-x", transport=httpx.MockTransport(handler))
    results = asyncio.run(analyzer.analyze_multiple(b"img"))
    assert [r.brand_name for r in results] == ["Coca-Cola", "Pepsi"]
    assert results[0].bounding_box is not None
    assert results[0].bounding_box.width == 0.2
    assert results[1].bounding_box is None


@pytest.mark.fast
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="server error"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json=_chat_response("not json at all")),
        httpx.Response(200, json=_chat_response('{"bounding_box": {"x": 5}}')),
        httpx.Response(200, text="<html>"),
    ],
)
def test_http_vision_failures_surface_as_upstream_error(response):
    """HTTP errors, odd shapes and invalid payloads raise UpstreamError."""
    analyzer = HttpVisionAnalyzer(
        "https://api.example.test/v1", None, "vision-x", transport=httpx.MockTransport(lambda request: response)
    )
    with pytest.raises(UpstreamError, match="vision failed"):
        asyncio.run(analyzer.analyze(b"img"))


@pytest.mark.fast
def test_http_embedding_describes_then_embeds():
    """Embedding is two calls: describe with the vision model, embed the description."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append((request.url.path, body["model"]))
        if request.url.path.endswith("/chat/completions"):
            assert body["max_tokens"] == 150
            return httpx.Response(200, json=_chat_response("A yellow Stanley toolbox."))
        assert body["input"] == "A yellow Stanley toolbox."
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

    gen = HttpEmbeddingGenerator(
        "https://api.example.test/v1", "k", "vision-x", "embed-y", transport=httpx.MockTransport(handler)
    )
    assert asyncio.run(gen.embed(b"img")) == [0.1, 0.2, 0.3]
    assert calls == [("/v1/chat/completions", "vision-x"), ("/v1/embeddings", "embed-y")]


@pytest.mark.fast
def test_http_embedding_bad_shape():
    """A reply without data[0].embedding raises UpstreamError."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/chat/completions"):
            return httpx.Response(200, json=_chat_response("desc"))
        return httpx.Response(200, json={"data": []})

    gen = HttpEmbeddingGenerator("https://api.example.test/v1", None, "v", "e", transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamError, match="embedding failed"):
        asyncio.run(gen.embed(b"img"))
