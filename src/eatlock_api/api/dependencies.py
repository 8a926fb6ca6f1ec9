"""FastAPI dependency injection factories."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from eatlock_api.core.config import Settings, get_settings
from eatlock_api.db.mongo import MongoDB
from eatlock_api.db.repositories import QuotaUsageRepository
from eatlock_api.services.auth import IdentityClient, extract_bearer_token, get_identity_client
from eatlock_api.services.quota import MongoSlidingWindowStore, QuotaEngine
from eatlock_api.services.storage import GridFSImageStore, ImageStore
from eatlock_api.services.upload import UploadService
from eatlock_api.services.vision import VisionModelClient, VisionService, get_vision_model_client


# Type aliases for cleaner route signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_database() -> AsyncIOMotorDatabase:
    """
    Get the MongoDB database instance.

    Returns:
        Motor database instance
    """
    settings = get_settings()
    return MongoDB.get_database(settings.db_name)


@lru_cache
def get_image_store() -> ImageStore:
    """Get the GridFS-backed image store."""
    return GridFSImageStore(get_database())


@lru_cache
def get_quota_engine() -> QuotaEngine:
    """
    Get the process-wide quota engine.

    The engine holds the in-memory limiter state, so it must be a singleton.
    """
    settings = get_settings()
    db = get_database()
    store = QuotaUsageRepository(db[QuotaUsageRepository.COLLECTION_NAME])
    burst_store = (
        MongoSlidingWindowStore(db[MongoSlidingWindowStore.COLLECTION_NAME])
        if settings.shared_burst_store
        else None
    )
    return QuotaEngine(store, settings, burst_store=burst_store)


async def get_current_user(
    identity: Annotated[IdentityClient, Depends(get_identity_client)],
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """
    Resolve the bearer token to the caller's user id.

    The token's shape is checked before any network call.
    """
    token = extract_bearer_token(authorization)
    return await identity.resolve_user_id(token)


def get_client_ip(request: Request) -> str:
    """Best-effort client IP: proxy headers first, then the socket peer."""
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client is not None:
        return request.client.host
    return "unknown"


def get_vision_service(
    images: Annotated[ImageStore, Depends(get_image_store)],
    model: Annotated[VisionModelClient, Depends(get_vision_model_client)],
    settings: SettingsDep,
) -> VisionService:
    """
    Get VisionService instance.

    Args:
        images: Injected image store
        model: Injected model client
        settings: Injected settings

    Returns:
        VisionService instance
    """
    return VisionService(images, model, settings)


def get_upload_service(
    images: Annotated[ImageStore, Depends(get_image_store)],
    settings: SettingsDep,
) -> UploadService:
    """
    Get UploadService instance.

    Args:
        images: Injected image store
        settings: Injected settings

    Returns:
        UploadService instance
    """
    return UploadService(images, settings)


# Type aliases for request-scoped dependencies
CurrentUserDep = Annotated[str, Depends(get_current_user)]
ClientIpDep = Annotated[str, Depends(get_client_ip)]
QuotaEngineDep = Annotated[QuotaEngine, Depends(get_quota_engine)]
VisionServiceDep = Annotated[VisionService, Depends(get_vision_service)]
UploadServiceDep = Annotated[UploadService, Depends(get_upload_service)]
