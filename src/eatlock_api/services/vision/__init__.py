"""Vision model access and the meal verification service."""

from .client import VisionModelClient, get_vision_model_client
from .service import VisionService

__all__ = ["VisionModelClient", "VisionService", "get_vision_model_client"]
