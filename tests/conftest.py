"""Pytest configuration and fixtures."""

import json
from typing import Any, AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from eatlock_api.api.dependencies import (
    get_image_store,
    get_quota_engine,
    get_upload_service,
)
from eatlock_api.core.config import Settings, get_settings
from eatlock_api.main import create_app
from eatlock_api.services.auth import IdentityClient, get_identity_client
from eatlock_api.services.quota import InMemoryQuotaStore, QuotaEngine
from eatlock_api.services.storage import InMemoryImageStore
from eatlock_api.services.upload import UploadService
from eatlock_api.services.vision import VisionModelClient, get_vision_model_client

USER_TOKEN = "header.payload-user-1.signature"
OTHER_TOKEN = "header.payload-user-2.signature"
USERS_BY_TOKEN = {USER_TOKEN: "user-1", OTHER_TOKEN: "user-2"}

# Minimal JPEG header; the server only checks content type and size
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, start: float = 1_760_000_000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def envelope(payload: dict[str, Any] | str) -> dict[str, Any]:
    """Wrap a payload in a Responses API reply."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return {
        "id": "resp_test",
        "output": [
            {"type": "reasoning", "id": "rs_1", "summary": []},
            {
                "type": "message",
                "id": "msg_1",
                "role": "assistant",
                "content": [{"type": "output_text", "text": text, "annotations": []}],
            },
        ],
    }


def food_payload(is_food: bool = True, reason: str = "OK", roast: str = "Looks great 🍝") -> dict[str, Any]:
    return {
        "isFood": is_food,
        "confidence": 0.92 if is_food else 0.3,
        "hasPlateOrBowl": is_food,
        "quality": {"brightness": 0.8, "blur": 0.1, "framing": 0.9},
        "reasonCode": reason,
        "roastLine": roast,
        "retakeHint": "" if is_food else "Point the camera at your plate.",
    }


def compare_payload(verdict: str = "EATEN", confidence: float = 0.88, reason: str = "OK") -> dict[str, Any]:
    return {
        "isSameScene": True,
        "duplicateScore": 0.1,
        "foodChangeScore": 0.9 if verdict == "EATEN" else 0.4,
        "verdict": verdict,
        "confidence": confidence,
        "reasonCode": reason,
        "roastLine": "Clean plate 🏆",
        "retakeHint": "",
    }


def nutrition_payload() -> dict[str, Any]:
    return {
        "food_label": "Spaghetti bolognese",
        "estimated_calories": 650,
        "min_calories": 500,
        "max_calories": 850,
        "confidence": 0.55,
        "notes": "Assumed a medium plate; sauce amount uncertain.",
    }


class FakeModelProvider:
    """
    MockTransport handler standing in for the model provider.

    Replies are queued per schema name (``food_check``, ``compare_meal``,
    ``nutrition_estimate``); each entry is either a payload dict, a raw
    ``httpx.Response``, or an exception to raise.
    """

    def __init__(self) -> None:
        self.replies: dict[str, list[Any]] = {}
        self.requests: list[dict[str, Any]] = []

    def queue(self, schema_name: str, *replies: Any) -> None:
        self.replies.setdefault(schema_name, []).extend(replies)

    def calls_for(self, schema_name: str) -> list[dict[str, Any]]:
        return [r for r in self.requests if r["text"]["format"]["name"] == schema_name]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        name = body["text"]["format"]["name"]
        queued = self.replies.get(name) or []
        if not queued:
            return httpx.Response(500, json={"error": {"message": f"nothing queued for {name}"}})

        reply = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=envelope(reply))


def identity_handler(request: httpx.Request) -> httpx.Response:
    token = request.headers.get("authorization", "").removeprefix("Bearer ")
    user_id = USERS_BY_TOKEN.get(token)
    if user_id is None:
        return httpx.Response(401, json={"msg": "invalid JWT"})
    return httpx.Response(200, json={"id": user_id, "aud": "authenticated"})


def auth_headers(token: str = USER_TOKEN) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        auth_service_key="service-key",
        upload_signing_secret="test-secret",
        upload_cleanup_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def image_store() -> InMemoryImageStore:
    return InMemoryImageStore()


@pytest.fixture
def quota_store() -> InMemoryQuotaStore:
    return InMemoryQuotaStore()


@pytest.fixture
def quota_engine(quota_store, settings, clock) -> QuotaEngine:
    return QuotaEngine(quota_store, settings, clock=clock)


@pytest.fixture
def model_provider() -> FakeModelProvider:
    return FakeModelProvider()


@pytest.fixture
def app(settings, clock, image_store, quota_engine, model_provider):
    """FastAPI app wired to in-memory stores, a fake identity provider and a fake model."""
    application = create_app()
    model_client = VisionModelClient(
        api_key="sk-test",
        base_url="https://model.test/v1",
        transport=httpx.MockTransport(model_provider),
    )
    identity = IdentityClient(
        base_url="https://auth.test",
        service_key="service-key",
        transport=httpx.MockTransport(identity_handler),
    )

    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_image_store] = lambda: image_store
    application.dependency_overrides[get_quota_engine] = lambda: quota_engine
    application.dependency_overrides[get_vision_model_client] = lambda: model_client
    application.dependency_overrides[get_identity_client] = lambda: identity
    application.dependency_overrides[get_upload_service] = lambda: UploadService(image_store, settings, clock)
    return application


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async test client.

    Usage:
        async def test_endpoint(client: AsyncClient):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def put_image(image_store: InMemoryImageStore, user_id: str, name: str, data: bytes = JPEG_BYTES,
                    content_type: str = "image/jpeg") -> str:
    """Place an object directly in the store and return its key."""
    key = f"uploads/{user_id}/{name}.jpg"
    await image_store.put(key, data, content_type, user_id)
    return key
