"""Vision analyzer and embedding generator backed by an OpenAI-compatible HTTP API (httpx)."""

import base64
import json
import logging
import re
from typing import Any

import httpx
from pydantic import ValidationError

from product_match.ai.schema import ModelCard, VisionResult
from product_match.ai.vision_base import BaseEmbeddingGenerator, BaseVisionAnalyzer
from product_match.core.errors import UpstreamError

logger = logging.getLogger(__name__)

_FIELDS_PROMPT = """\
For the product extract:
1. brand_name: visible brand name (string, or null if not visible)
2. model_number: visible model number (string, or null if not visible)
3. inferred_category: product category (Electronics, Tools, Home, Clothing, Food, Drinks, Beauty,
   Sports, Toys, Garden, Automotive, Health, Pets, Office, Other)
4. dominant_colors: array of dominant colors
5. detected_logos: array of visible logos/brands
6. detected_objects: array of objects that make up the product
7. inferred_usage_tags: array of tags describing how the product is used
8. image_tags: array of descriptive visual tags
9. product_name: suggested product name
10. product_description: short product description"""

SINGLE_PRODUCT_PROMPT = f"""\
Analyze this product image and return the information as a JSON object.

{_FIELDS_PROMPT}

Reply ONLY with the JSON object, without markdown code fences."""

MULTIPLE_PRODUCTS_PROMPT = f"""\
List EVERY individual product visible in this image as a separate entry. Do not group or merge
objects: three apples are three entries. Return a JSON object {{"products": [...]}}.

{_FIELDS_PROMPT}
11. bounding_box: location of the product with normalized (0-1) coordinates,
    x/y = top-left corner, width/height = proportion of the image size.
    Example: {{"x": 0.1, "y": 0.2, "width": 0.5, "height": 0.6}}

Reply ONLY with the JSON object, without markdown code fences."""

DESCRIBE_PROMPT = (
    "Describe this product image in one sentence. Include the product type, brand, "
    "main colors and distinctive features."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def _image_data_url(image: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(image).decode("ascii")


def _strip_fences(content: str) -> str:
    return _FENCE_RE.sub("", content.strip())


class _OpenAICompatibleClient:
    """Minimal async client for /chat/completions and /embeddings."""

    def __init__(
        self,
        api_base: str,
        api_key: str | None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def post(self, path: str, payload: dict[str, Any], service: str) -> dict[str, Any]:
        url = f"{self._api_base}{path}"
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=payload, headers=self._headers())
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as e:
                logger.error("%s API error: %s", service, e)
                raise UpstreamError(service, str(e)) from e
            except ValueError as e:
                raise UpstreamError(service, f"response is not JSON: {e}") from e

    async def chat_with_image(
        self, model: str, prompt: str, image: bytes, service: str, max_tokens: int | None = None
    ) -> str:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": _image_data_url(image)}},
                    ],
                }
            ],
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        result = await self.post("/chat/completions", payload, service)
        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError(service, f"unexpected response shape: {e}") from e
        if not content:
            raise UpstreamError(service, "empty response content")
        return content


class HttpVisionAnalyzer(BaseVisionAnalyzer):
    """Vision analyzer that prompts a multimodal chat model for structured product JSON."""

    SERVICE = "vision"

    def __init__(
        self,
        api_base: str,
        api_key: str | None,
        model: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._client = _OpenAICompatibleClient(api_base, api_key, timeout, transport)

    def get_model_card(self) -> ModelCard:
        return ModelCard(name=self._model, version="chat-completions")

    def _parse_json(self, content: str) -> Any:
        try:
            return json.loads(_strip_fences(content))
        except json.JSONDecodeError as e:
            raise UpstreamError(self.SERVICE, f"response is not valid JSON: {e}") from e

    def _to_result(self, raw: Any) -> VisionResult:
        try:
            return VisionResult.model_validate(raw)
        except ValidationError as e:
            raise UpstreamError(self.SERVICE, f"invalid product payload: {e}") from e

    async def analyze(self, image: bytes) -> VisionResult:
        content = await self._client.chat_with_image(
            self._model, SINGLE_PRODUCT_PROMPT, image, self.SERVICE
        )
        return self._to_result(self._parse_json(content))

    async def analyze_multiple(self, image: bytes) -> list[VisionResult]:
        content = await self._client.chat_with_image(
            self._model, MULTIPLE_PRODUCTS_PROMPT, image, self.SERVICE
        )
        data = self._parse_json(content)
        products = data.get("products", []) if isinstance(data, dict) else data
        if not isinstance(products, list):
            raise UpstreamError(self.SERVICE, "'products' is not a list")
        results = [self._to_result(p) for p in products]
        logger.info("Vision detected %s products", len(results))
        return results


class HttpEmbeddingGenerator(BaseEmbeddingGenerator):
    """
    Embeds an image in two calls: a multimodal model describes the product in one sentence,
    then the text embedding model embeds that description.
    """

    SERVICE = "embedding"

    def __init__(
        self,
        api_base: str,
        api_key: str | None,
        vision_model: str,
        embedding_model: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._vision_model = vision_model
        self._embedding_model = embedding_model
        self._client = _OpenAICompatibleClient(api_base, api_key, timeout, transport)

    def get_model_card(self) -> ModelCard:
        return ModelCard(name=self._embedding_model, version="embeddings")

    async def embed(self, image: bytes) -> list[float]:
        description = await self._client.chat_with_image(
            self._vision_model, DESCRIBE_PROMPT, image, self.SERVICE, max_tokens=150
        )
        result = await self._client.post(
            "/embeddings",
            {"model": self._embedding_model, "input": description},
            self.SERVICE,
        )
        try:
            vector = result["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError(self.SERVICE, f"unexpected response shape: {e}") from e
        return [float(v) for v in vector]
