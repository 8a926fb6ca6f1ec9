"""
Factory for wiring a session controller to a vision backend.

``mock`` returns canned results with no network access, ``cloud`` talks to
the EatLock API at ``settings.api_base_url``.
"""

import logging
from typing import Callable, Iterable, Literal

import httpx

from eatlock_api.client.auth import TokenProvider
from eatlock_api.client.config import ClientSettings
from eatlock_api.client.gateway import CloudVisionGateway, MockVisionGateway
from eatlock_api.client.http import ApiClient
from eatlock_api.client.session import SessionController
from eatlock_api.client.store import InMemorySessionStore, SessionStore
from eatlock_api.client.upload import InMemoryUploader, UploadPipeline

logger = logging.getLogger(__name__)

Backend = Literal["cloud", "mock"]


def build_session_controller(
    backend: Backend,
    *,
    tokens: TokenProvider | None = None,
    store: SessionStore | None = None,
    settings: ClientSettings | None = None,
    blocked_apps: Callable[[], Iterable[str]] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SessionController:
    """
    Build a controller for the given backend.

    Args:
        backend: "cloud" or "mock"
        tokens: Token source, required for the cloud backend
        store: Session persistence (in-memory if not provided)
        settings: Client settings (read from the environment if not provided)
        blocked_apps: Snapshot source for strict-mode sessions
        transport: Optional httpx transport for the API client

    Raises:
        ValueError: If the backend is unknown or the cloud backend has no tokens
    """
    settings = settings or ClientSettings()
    store = store or InMemorySessionStore()

    if backend == "mock":
        logger.info("Using mock vision backend")
        return SessionController(
            store,
            MockVisionGateway(),
            InMemoryUploader(),
            blocked_apps=blocked_apps,
            min_meal_duration_seconds=settings.min_meal_duration_seconds,
        )

    if backend != "cloud":
        raise ValueError(f"Unknown vision backend: {backend}")
    if tokens is None:
        raise ValueError("The cloud backend needs a token provider")

    logger.info(f"Using cloud vision backend at {settings.api_base_url}")
    api = ApiClient(
        settings.api_base_url,
        tokens,
        timeout=settings.request_timeout,
        transport=transport,
    )
    return SessionController(
        store,
        CloudVisionGateway(api),
        UploadPipeline(
            api,
            max_side=settings.image_max_side,
            quality=settings.image_jpeg_quality,
            max_bytes=settings.max_upload_bytes,
        ),
        blocked_apps=blocked_apps,
        min_meal_duration_seconds=settings.min_meal_duration_seconds,
    )
