"""Meal session lifecycle: start, patch, finish and override."""

import logging
import random
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from eatlock_api.client.errors import (
    MealTooShortError,
    NoActiveSessionError,
    SessionAlreadyActiveError,
    SessionStateError,
)
from eatlock_api.client.gateway import VisionGateway
from eatlock_api.client.models import (
    MealNutrition,
    MealSession,
    MealType,
    SessionStatus,
    SessionVerification,
)
from eatlock_api.client.roasts import food_confirmed_message, post_scan_roast, pre_scan_roast
from eatlock_api.client.store import SessionStore
from eatlock_api.client.upload import Uploader
from eatlock_api.models.vision import CompareVerdict, FoodCheckResult, UploadKind
from eatlock_api.utils.dates import UTC_TZ, Clock, SystemClock

logger = logging.getLogger(__name__)

VERDICT_STATUS: dict[CompareVerdict, SessionStatus] = {
    CompareVerdict.EATEN: SessionStatus.VERIFIED,
    CompareVerdict.PARTIAL: SessionStatus.PARTIAL,
    CompareVerdict.UNCHANGED: SessionStatus.FAILED,
    CompareVerdict.UNVERIFIABLE: SessionStatus.INCOMPLETE,
}

# Fields a merge-patch may never touch
PROTECTED_FIELDS = frozenset({"id", "startedAt", "endedAt", "status", "blockedAppsAtTime"})


@dataclass
class BeginMealResult:
    """Outcome of the before-photo step."""

    check: FoodCheckResult
    key: str
    message: str
    session: MealSession | None = None

    @property
    def accepted(self) -> bool:
        return self.session is not None


class SessionController:
    """
    Owns the single active meal session on this device.

    Sessions move from ACTIVE to exactly one terminal status. Starting a
    session while one is active is rejected rather than overwriting it.
    """

    def __init__(
        self,
        store: SessionStore,
        gateway: VisionGateway,
        uploader: Uploader,
        *,
        blocked_apps: Callable[[], Iterable[str]] | None = None,
        min_meal_duration_seconds: float = 300,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.uploader = uploader
        self.blocked_apps = blocked_apps or (lambda: [])
        self.min_meal_duration_seconds = min_meal_duration_seconds
        self.clock = clock or SystemClock()
        self.rng = rng

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock.now(), UTC_TZ)

    @property
    def active_session(self) -> MealSession | None:
        return self.store.get_active()

    def history(self) -> list[MealSession]:
        """Finished sessions, newest first."""
        return self.store.get_history()

    # =========================================================================
    # Lifecycle primitives
    # =========================================================================

    def start_session(
        self,
        meal_type: MealType,
        strict: bool,
        pre_image_key: str | None = None,
        pre_check: FoodCheckResult | None = None,
        *,
        note: str = "",
        food_name: str | None = None,
        pre_nutrition: MealNutrition | None = None,
    ) -> MealSession:
        """
        Create and persist the active session.

        The block-list is snapshotted into ``blockedAppsAtTime`` for strict
        sessions and never changes afterwards.

        Raises:
            SessionAlreadyActiveError: If a session is already active
        """
        current = self.store.get_active()
        if current is not None:
            raise SessionAlreadyActiveError(current.id)

        now = self._now()
        session = MealSession(
            id=f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}",
            startedAt=now,
            mealType=meal_type,
            foodName=food_name,
            note=note,
            strictMode=strict,
            preImageKey=pre_image_key,
            preNutrition=pre_nutrition,
            verification=SessionVerification(preCheck=pre_check),
            blockedAppsAtTime=list(self.blocked_apps()) if strict else [],
        )
        self.store.set_active(session)
        logger.info(f"Started {meal_type.value} session {session.id} (strict={strict})")
        return session

    def update_active_session(self, patch: dict[str, Any]) -> MealSession:
        """
        Shallow-merge ``patch`` into the active session and persist it.

        Raises:
            NoActiveSessionError: If no session is active
            SessionStateError: If the patch touches a protected field
        """
        current = self.store.get_active()
        if current is None:
            raise NoActiveSessionError()

        protected = PROTECTED_FIELDS.intersection(patch)
        if protected:
            raise SessionStateError(f"Cannot patch {', '.join(sorted(protected))}")

        merged = {**current.model_dump(), **patch}
        updated = MealSession.model_validate(merged)
        self.store.set_active(updated)
        return updated

    def end_session(self, status: SessionStatus, roast_message: str | None = None) -> MealSession | None:
        """
        Finalize the active session with a terminal ``status``.

        Returns the finished session, or None when nothing was active.

        Raises:
            SessionStateError: If ``status`` is ACTIVE
        """
        if not status.is_terminal:
            raise SessionStateError("A session can only end with a terminal status")

        current = self.store.get_active()
        if current is None:
            return None

        completed = current.model_copy(
            update={
                "endedAt": self._now(),
                "status": status,
                "roastMessage": roast_message or current.roastMessage,
            }
        )
        self.store.append_history(completed)
        self.store.set_active(None)
        logger.info(f"Ended session {completed.id} as {status.value}")
        return completed

    @staticmethod
    def status_for_verdict(verdict: CompareVerdict | str) -> SessionStatus:
        """Map a comparison verdict to a terminal status. Unknown verdicts are INCOMPLETE."""
        try:
            return VERDICT_STATUS[CompareVerdict(verdict)]
        except ValueError:
            return SessionStatus.INCOMPLETE

    # =========================================================================
    # Time gate
    # =========================================================================

    def remaining_seconds(self) -> float:
        """Seconds until the active session may be finished (0 when allowed)."""
        current = self.store.get_active()
        if current is None:
            raise NoActiveSessionError()
        elapsed = (self._now() - current.startedAt).total_seconds()
        return max(0.0, self.min_meal_duration_seconds - elapsed)

    def can_finish(self) -> bool:
        return self.remaining_seconds() == 0

    # =========================================================================
    # User actions
    # =========================================================================

    async def begin_meal(
        self,
        image: bytes,
        meal_type: MealType,
        strict: bool,
        *,
        note: str = "",
        with_nutrition: bool = True,
    ) -> BeginMealResult:
        """
        Upload the before-photo, verify it, and start a session if it shows food.

        A rejected photo returns a result with no session and a roast line
        for the user; nothing is persisted.

        Raises:
            SessionAlreadyActiveError: If a session is already active (checked
                before any upload or model call)
        """
        current = self.store.get_active()
        if current is not None:
            raise SessionAlreadyActiveError(current.id)

        key = await self.uploader.upload(image, UploadKind.BEFORE)
        check = await self.gateway.verify_food(key)

        if not check.isFood:
            message = check.roastLine or pre_scan_roast(check.reasonCode, self.rng)
            logger.info(f"Before-photo rejected: {check.reasonCode.value}")
            return BeginMealResult(check=check, key=key, message=message)

        nutrition = await self.gateway.estimate_nutrition(key) if with_nutrition else None
        session = self.start_session(
            meal_type,
            strict,
            pre_image_key=key,
            pre_check=check,
            note=note,
            food_name=nutrition.food_label if nutrition else None,
            pre_nutrition=nutrition,
        )
        message = check.roastLine or food_confirmed_message(self.rng)
        return BeginMealResult(check=check, key=key, message=message, session=session)

    async def finish_meal(
        self, image: bytes, pre_image: bytes | None = None
    ) -> MealSession | None:
        """
        Upload the after-photo, compare it with the before-photo and end the session.

        The before key stored on the session is reused; ``pre_image`` is only
        uploaded when the session has no usable key.

        If the session was ended or replaced while the comparison was in
        flight, the result is discarded and None is returned; the session
        now in the active slot is left untouched.

        Raises:
            NoActiveSessionError: If no session is active
            MealTooShortError: If the minimum meal duration has not elapsed
            VisionError: If an upload or the comparison fails (session stays active)
        """
        remaining = self.remaining_seconds()
        if remaining > 0:
            raise MealTooShortError(remaining)

        current = self.store.get_active()
        session_id = current.id
        pre_key = await self.uploader.ensure_key(pre_image, UploadKind.BEFORE, current.preImageKey)
        post_key = await self.uploader.upload(image, UploadKind.AFTER)

        result = await self.gateway.compare_meal(pre_key, post_key)

        active = self.store.get_active()
        if active is None or active.id != session_id:
            logger.warning(
                f"Discarding {result.verdict.value} verdict for session {session_id}: "
                "it is no longer active"
            )
            return None

        verification = active.verification.model_copy(update={"compareResult": result})
        self.update_active_session(
            {
                "preImageKey": pre_key,
                "postImageKey": post_key,
                "verification": verification.model_dump(),
            }
        )
        roast = result.roastLine or post_scan_roast(result.verdict, self.rng)
        return self.end_session(self.status_for_verdict(result.verdict), roast)

    def override_session(self, reason: str | None = None) -> MealSession | None:
        """Abandon the active session early: marks the override and ends it INCOMPLETE."""
        if self.store.get_active() is None:
            return None
        self.update_active_session({"overrideUsed": True})
        logger.info(f"Session overridden{': ' + reason if reason else ''}")
        return self.end_session(SessionStatus.INCOMPLETE, reason)
