"""Tests for the meal session lifecycle."""

import io
import random

import pytest
from httpx import ASGITransport
from PIL import Image

from conftest import USER_TOKEN, FakeClock, compare_payload, food_payload, nutrition_payload
from eatlock_api.client import (
    CloudVisionGateway,
    InMemorySessionStore,
    JsonFileSessionStore,
    MealType,
    MockVisionGateway,
    SessionController,
    SessionStatus,
    UploadPipeline,
)
from eatlock_api.client.auth import StaticTokenProvider
from eatlock_api.client.errors import (
    MealTooShortError,
    NoActiveSessionError,
    SessionAlreadyActiveError,
    SessionStateError,
    UpstreamError,
)
from eatlock_api.client.gateway import mock_compare_result, mock_food_result
from eatlock_api.client.http import ApiClient
from eatlock_api.client.roasts import POST_SCAN_MESSAGES, PRE_SCAN_ROASTS
from eatlock_api.client.upload import InMemoryUploader
from eatlock_api.models.vision import CompareVerdict, FoodReasonCode


def photo(color=(180, 90, 40), size=(1600, 1200)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def controller_factory(clock):
    def make(gateway=None, store=None, blocked=("Instagram", "TikTok")):
        return SessionController(
            store or InMemorySessionStore(),
            gateway or MockVisionGateway(),
            InMemoryUploader(user_id="user-1"),
            blocked_apps=lambda: list(blocked),
            clock=clock,
            rng=random.Random(7),
        )

    return make


class TestLifecycle:
    """Tests for start/update/end."""

    def test_start_snapshots_block_list_for_strict(self, controller_factory):
        controller = controller_factory()

        session = controller.start_session(MealType.LUNCH, strict=True, pre_image_key="uploads/user-1/a.jpg")

        assert session.status == SessionStatus.ACTIVE
        assert session.blockedAppsAtTime == ["Instagram", "TikTok"]
        assert controller.active_session.id == session.id

    def test_relaxed_session_blocks_nothing(self, controller_factory):
        session = controller_factory().start_session(MealType.SNACK, strict=False)

        assert session.blockedAppsAtTime == []

    def test_second_start_rejected(self, controller_factory):
        """Test an active session is never overwritten."""
        controller = controller_factory()
        first = controller.start_session(MealType.DINNER, strict=True)

        with pytest.raises(SessionAlreadyActiveError):
            controller.start_session(MealType.DINNER, strict=False)

        assert controller.active_session.id == first.id

    def test_update_merges_and_protects_fields(self, controller_factory):
        controller = controller_factory()
        controller.start_session(MealType.BREAKFAST, strict=True)

        updated = controller.update_active_session({"note": "oats", "foodName": "Porridge"})
        assert updated.note == "oats"
        assert controller.active_session.foodName == "Porridge"

        with pytest.raises(SessionStateError):
            controller.update_active_session({"blockedAppsAtTime": []})
        with pytest.raises(SessionStateError):
            controller.update_active_session({"status": SessionStatus.VERIFIED})

    def test_update_without_session(self, controller_factory):
        with pytest.raises(NoActiveSessionError):
            controller_factory().update_active_session({"note": "x"})

    def test_end_without_session_is_noop(self, controller_factory):
        controller = controller_factory()

        assert controller.end_session(SessionStatus.FAILED) is None
        assert controller.history() == []

    def test_end_moves_session_to_history(self, controller_factory, clock):
        controller = controller_factory()
        controller.start_session(MealType.LUNCH, strict=False)
        clock.advance(30)

        ended = controller.end_session(SessionStatus.PARTIAL, "Half done")

        assert ended.status == SessionStatus.PARTIAL
        assert ended.endedAt > ended.startedAt
        assert ended.roastMessage == "Half done"
        assert controller.active_session is None
        assert [s.id for s in controller.history()] == [ended.id]

        # A new session can start once the slot is free
        controller.start_session(MealType.SNACK, strict=False)

    def test_cannot_end_as_active(self, controller_factory):
        controller = controller_factory()
        controller.start_session(MealType.LUNCH, strict=False)

        with pytest.raises(SessionStateError):
            controller.end_session(SessionStatus.ACTIVE)

    @pytest.mark.parametrize(
        "verdict, status",
        [
            (CompareVerdict.EATEN, SessionStatus.VERIFIED),
            (CompareVerdict.PARTIAL, SessionStatus.PARTIAL),
            (CompareVerdict.UNCHANGED, SessionStatus.FAILED),
            (CompareVerdict.UNVERIFIABLE, SessionStatus.INCOMPLETE),
            ("SOMETHING_NEW", SessionStatus.INCOMPLETE),
        ],
    )
    def test_verdict_mapping(self, verdict, status):
        assert SessionController.status_for_verdict(verdict) == status


class TestMealFlow:
    """Tests for begin_meal / finish_meal with the mock gateway."""

    async def test_rejected_photo_starts_nothing(self, controller_factory):
        gateway = MockVisionGateway(food_result=mock_food_result(False, FoodReasonCode.TOO_DARK))
        controller = controller_factory(gateway=gateway)

        result = await controller.begin_meal(photo(), MealType.DINNER, strict=True)

        assert result.accepted is False
        assert result.message in PRE_SCAN_ROASTS[FoodReasonCode.TOO_DARK]
        assert controller.active_session is None
        assert [name for name, _ in gateway.calls] == ["verify_food"]

    async def test_time_gate(self, controller_factory, clock):
        controller = controller_factory()
        await controller.begin_meal(photo(), MealType.LUNCH, strict=True)

        clock.advance(120)
        assert controller.can_finish() is False
        with pytest.raises(MealTooShortError) as exc_info:
            await controller.finish_meal(photo((20, 20, 20)))
        assert exc_info.value.remaining_seconds == pytest.approx(180)
        assert controller.active_session is not None

        clock.advance(180)
        assert controller.can_finish() is True

    @pytest.mark.parametrize("verdict", list(CompareVerdict))
    async def test_finish_maps_every_verdict(self, controller_factory, clock, verdict):
        gateway = MockVisionGateway(compare_result=mock_compare_result(verdict))
        controller = controller_factory(gateway=gateway)
        begin = await controller.begin_meal(photo(), MealType.DINNER, strict=True)
        clock.advance(300)

        ended = await controller.finish_meal(photo((250, 250, 250)))

        assert ended.status == SessionController.status_for_verdict(verdict)
        assert ended.preImageKey == begin.key
        assert ended.postImageKey != begin.key
        assert ended.verification.compareResult.verdict == verdict
        assert ended.roastMessage
        if not mock_compare_result(verdict).roastLine:
            assert ended.roastMessage in POST_SCAN_MESSAGES[verdict]

    async def test_finish_reuses_before_key(self, controller_factory, clock):
        gateway = MockVisionGateway()
        controller = controller_factory(gateway=gateway)
        begin = await controller.begin_meal(photo(), MealType.LUNCH, strict=False)
        clock.advance(301)

        await controller.finish_meal(photo((0, 0, 0)), pre_image=photo())

        compare_call = [args for name, args in gateway.calls if name == "compare_meal"][0]
        assert compare_call[0] == begin.key
        assert len(controller.uploader.objects) == 2

    async def test_failed_compare_keeps_session_active(self, controller_factory, clock):
        class FailingGateway(MockVisionGateway):
            async def compare_meal(self, pre_key, post_key):
                raise UpstreamError("AI error: 500", status_code=502)

        controller = controller_factory(gateway=FailingGateway())
        await controller.begin_meal(photo(), MealType.LUNCH, strict=True)
        clock.advance(300)

        with pytest.raises(UpstreamError) as exc_info:
            await controller.finish_meal(photo((0, 0, 0)))

        assert exc_info.value.retryable is True
        assert controller.active_session.status == SessionStatus.ACTIVE

    async def test_override_ends_incomplete(self, controller_factory):
        controller = controller_factory()
        await controller.begin_meal(photo(), MealType.SNACK, strict=True)

        ended = controller.override_session("Emergency call")

        assert ended.status == SessionStatus.INCOMPLETE
        assert ended.overrideUsed is True
        assert controller.override_session() is None

    async def test_begin_with_active_session_spends_nothing(self, controller_factory):
        gateway = MockVisionGateway()
        controller = controller_factory(gateway=gateway)
        await controller.begin_meal(photo(), MealType.LUNCH, strict=True)
        calls_before = list(gateway.calls)

        with pytest.raises(SessionAlreadyActiveError):
            await controller.begin_meal(photo(), MealType.DINNER, strict=True)

        assert gateway.calls == calls_before
        assert len(controller.uploader.objects) == 1

    async def test_verdict_for_replaced_session_is_discarded(self, controller_factory, clock):
        class AbandoningGateway(MockVisionGateway):
            controller = None

            async def compare_meal(self, pre_key, post_key):
                self.controller.override_session("left the screen")
                self.controller.start_session(MealType.DINNER, strict=False)
                return await super().compare_meal(pre_key, post_key)

        gateway = AbandoningGateway()
        controller = controller_factory(gateway=gateway)
        gateway.controller = controller
        lunch = (await controller.begin_meal(photo(), MealType.LUNCH, strict=True)).session
        clock.advance(301)

        assert await controller.finish_meal(photo((0, 0, 0))) is None

        dinner = controller.active_session
        assert dinner is not None
        assert dinner.mealType == MealType.DINNER
        assert dinner.status == SessionStatus.ACTIVE
        assert dinner.postImageKey is None
        assert dinner.verification.compareResult is None

        history = controller.history()
        assert [s.id for s in history] == [lunch.id]
        assert history[0].status == SessionStatus.INCOMPLETE
        assert history[0].verification.compareResult is None

    async def test_verdict_after_abandon_leaves_no_session(self, controller_factory, clock):
        class AbandoningGateway(MockVisionGateway):
            controller = None

            async def compare_meal(self, pre_key, post_key):
                self.controller.override_session()
                return await super().compare_meal(pre_key, post_key)

        gateway = AbandoningGateway()
        controller = controller_factory(gateway=gateway)
        gateway.controller = controller
        await controller.begin_meal(photo(), MealType.LUNCH, strict=True)
        clock.advance(301)

        assert await controller.finish_meal(photo((0, 0, 0))) is None
        assert controller.active_session is None
        assert len(controller.history()) == 1

    async def test_nutrition_attached_when_available(self, controller_factory):
        controller = controller_factory()

        result = await controller.begin_meal(photo(), MealType.LUNCH, strict=False)

        assert result.session.preNutrition.food_label == "Mock meal"
        assert result.session.foodName == "Mock meal"

    async def test_nutrition_optional(self, controller_factory):
        controller = controller_factory(gateway=MockVisionGateway(nutrition_enabled=False))

        result = await controller.begin_meal(photo(), MealType.LUNCH, strict=False)

        assert result.accepted is True
        assert result.session.preNutrition is None


class TestJsonFileStore:
    """Tests for the file-backed session store."""

    async def test_survives_reload(self, tmp_path, clock):
        store = JsonFileSessionStore(tmp_path)
        controller = SessionController(store, MockVisionGateway(), InMemoryUploader(), clock=clock)
        await controller.begin_meal(photo(), MealType.DINNER, strict=True)

        reloaded = JsonFileSessionStore(tmp_path)
        assert reloaded.get_active().mealType == MealType.DINNER

        clock.advance(300)
        await controller.finish_meal(photo((1, 1, 1)))

        history = JsonFileSessionStore(tmp_path).get_history()
        assert reloaded.get_active() is None
        assert history[0].status == SessionStatus.VERIFIED
        assert not list(tmp_path.glob("*.tmp"))


class TestScenarioEndToEnd:
    """Full pipeline against the API app: upload, verify, wait, compare."""

    async def test_verified_meal(self, app, clock, image_store, model_provider):
        model_provider.queue("food_check", food_payload())
        model_provider.queue("nutrition_estimate", nutrition_payload())
        model_provider.queue("compare_meal", compare_payload("EATEN"))

        api = ApiClient("http://test", StaticTokenProvider(USER_TOKEN), transport=ASGITransport(app=app))
        controller = SessionController(
            InMemorySessionStore(),
            CloudVisionGateway(api),
            UploadPipeline(api),
            blocked_apps=lambda: ["YouTube"],
            clock=clock,
        )

        begin = await controller.begin_meal(photo(), MealType.DINNER, strict=True)
        assert begin.accepted is True
        assert begin.message == "Looks great 🍝"
        assert begin.session.preNutrition.estimated_calories == 650
        assert begin.session.preNutrition.source == "vision"
        assert begin.key in image_store

        clock.advance(5 * 60)
        ended = await controller.finish_meal(photo((240, 240, 240)))

        assert ended.status == SessionStatus.VERIFIED
        assert ended.blockedAppsAtTime == ["YouTube"]
        assert ended.roastMessage == "Clean plate 🏆"
        assert len(image_store) == 0
        await api.close()

    async def test_session_clock_uses_fake_time(self):
        clock = FakeClock(start=0)
        controller = SessionController(InMemorySessionStore(), MockVisionGateway(), InMemoryUploader(), clock=clock)

        session = controller.start_session(MealType.CUSTOM, strict=False)

        assert session.startedAt.timestamp() == 0
