"""Tests for build_session_controller."""

import pytest

from eatlock_api.client.auth import StaticTokenProvider
from eatlock_api.client.config import ClientSettings
from eatlock_api.client.factory import build_session_controller
from eatlock_api.client.gateway import CloudVisionGateway, MockVisionGateway
from eatlock_api.client.store import InMemorySessionStore
from eatlock_api.client.upload import InMemoryUploader, UploadPipeline


@pytest.fixture
def client_settings():
    return ClientSettings(
        _env_file=None,
        api_base_url="https://api.test/",
        request_timeout=12.0,
        min_meal_duration_seconds=60,
        image_max_side=512,
        image_jpeg_quality=70,
        max_upload_bytes=1024,
    )


class TestBuildSessionController:
    """Tests for backend selection and settings wiring."""

    def test_mock_backend(self, client_settings):
        controller = build_session_controller("mock", settings=client_settings)

        assert isinstance(controller.gateway, MockVisionGateway)
        assert isinstance(controller.uploader, InMemoryUploader)
        assert isinstance(controller.store, InMemorySessionStore)
        assert controller.min_meal_duration_seconds == 60

    def test_cloud_backend_uses_settings(self, client_settings):
        controller = build_session_controller(
            "cloud",
            tokens=StaticTokenProvider("aaa.bbb.ccc"),
            settings=client_settings,
        )

        assert isinstance(controller.gateway, CloudVisionGateway)
        pipeline = controller.uploader
        assert isinstance(pipeline, UploadPipeline)
        assert (pipeline.max_side, pipeline.quality, pipeline.max_bytes) == (512, 70, 1024)
        assert pipeline.api.base_url == "https://api.test"
        assert pipeline.api.timeout == 12.0

    def test_cloud_backend_needs_tokens(self, client_settings):
        with pytest.raises(ValueError, match="token provider"):
            build_session_controller("cloud", settings=client_settings)

    def test_unknown_backend(self, client_settings):
        with pytest.raises(ValueError, match="Unknown vision backend"):
            build_session_controller("carrier-pigeon", settings=client_settings)
