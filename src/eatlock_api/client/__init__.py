"""Device-side meal verification core: uploads, vision calls and the session lifecycle."""

from eatlock_api.client.config import ClientSettings
from eatlock_api.client.factory import build_session_controller
from eatlock_api.client.gateway import CloudVisionGateway, MockVisionGateway, VisionGateway
from eatlock_api.client.models import MealSession, MealType, SessionStatus, SessionVerification
from eatlock_api.client.session import SessionController
from eatlock_api.client.store import InMemorySessionStore, JsonFileSessionStore, SessionStore
from eatlock_api.client.upload import UploadPipeline

__all__ = [
    "ClientSettings",
    "CloudVisionGateway",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "MealSession",
    "MealType",
    "MockVisionGateway",
    "SessionController",
    "SessionStatus",
    "SessionStore",
    "SessionVerification",
    "UploadPipeline",
    "VisionGateway",
    "build_session_controller",
]
