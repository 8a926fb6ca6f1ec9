"""HTTP client for the vision model provider (OpenAI Responses API)."""

import json
import logging
from functools import lru_cache
from typing import Any, Literal, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from eatlock_api.core.config import get_settings
from eatlock_api.core.exceptions import UpstreamError

from .envelope import ResponseEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

ImageDetail = Literal["low", "high"]


def input_text(text: str) -> dict[str, Any]:
    """Build a text content part for the user turn."""
    return {"type": "input_text", "text": text}


def input_image(data_url: str, detail: ImageDetail = "low") -> dict[str, Any]:
    """Build an image content part for the user turn."""
    return {"type": "input_image", "image_url": data_url, "detail": detail}


class VisionModelClient:
    """
    Client for one-shot structured-output calls to the vision model.

    Every call sends system instructions, a single user turn and a strict
    JSON schema format, and returns the model's JSON validated against the
    matching pydantic model. Any provider or shape failure is raised as
    ``UpstreamError`` (502); there is no retry here.

    Usage:
        client = VisionModelClient(api_key="sk-...")
        result = await client.complete(
            VERIFY_SYSTEM_PROMPT, content, FOOD_CHECK_FORMAT, FoodCheckResult
        )
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: float = 45.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the model client.

        Args:
            api_key: Provider API key
            base_url: Provider base URL (``/responses`` is appended)
            model: Vision model name
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(
        self,
        instructions: str,
        content: list[dict[str, Any]],
        text_format: dict[str, Any],
    ) -> dict[str, Any]:
        return {
            "model": self.model,
            "instructions": instructions,
            "input": [{"role": "user", "content": content}],
            "text": {"format": text_format},
        }

    async def complete(
        self,
        instructions: str,
        content: list[dict[str, Any]],
        text_format: dict[str, Any],
        result_model: type[T],
    ) -> T:
        """
        Run one structured-output call.

        Args:
            instructions: System prompt
            content: User turn content parts (see ``input_text``/``input_image``)
            text_format: Strict ``json_schema`` format block
            result_model: Closed pydantic model the JSON must satisfy

        Returns:
            Parsed and validated model output

        Raises:
            UpstreamError: On timeout, transport failure, non-2xx status,
                malformed envelope, missing text or unparsable JSON
        """
        body = self.build_request(instructions, content, text_format)
        schema_name = text_format.get("name", "unknown")

        logger.info(f"Calling vision model {self.model} ({schema_name})")

        try:
            response = await self._get_client().post(
                f"{self.base_url}/responses",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.TimeoutException as e:
            logger.error(f"Vision model timed out after {self.timeout}s ({schema_name})")
            raise UpstreamError("AI request timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Vision model unreachable: {e}")
            raise UpstreamError("AI provider unreachable") from e

        if not response.is_success:
            logger.error(
                f"Vision model error {response.status_code}: {response.text[:300]}",
                extra={"schema": schema_name},
            )
            raise UpstreamError(f"AI error: {response.status_code}")

        try:
            envelope = ResponseEnvelope.model_validate_json(response.content)
        except ValidationError as e:
            logger.error(f"Malformed response envelope: {e.error_count()} errors")
            raise UpstreamError("Malformed AI response") from e

        text = envelope.output_text()
        if text is None:
            refusal = envelope.refusal()
            if refusal:
                logger.warning(f"Vision model refused ({schema_name}): {refusal[:200]}")
            raise UpstreamError("No text in response")

        try:
            return result_model.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Unparsable model output for {schema_name}: {text[:300]}")
            raise UpstreamError("Unparsable AI response") from e


@lru_cache
def get_vision_model_client() -> VisionModelClient:
    """
    Get a cached model client instance.

    Returns:
        VisionModelClient configured from settings
    """
    settings = get_settings()
    return VisionModelClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.vision_model,
        timeout=settings.model_timeout,
    )
