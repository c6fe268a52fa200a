"""Last-resort profile built from static templates, with no network access."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from .cache.local_store import LocalCacheStore
from .cache.profile_cache import load_cached_profile, save_cached_profile
from .document_store import utc_now
from .normalization import epoch_ms
from .preferences import derive_preferences
from .telemetry import SyncEvent, emit_event
from .user_profile import (
    AppSettings,
    IntegratedUserProfile,
    OnboardingAnswers,
    PreferenceProfile,
    Quest,
    QuestPattern,
    SkillAtom,
    initial_progress,
)

logger = logging.getLogger(__name__)

FALLBACK_STAGE = "fallback"
DEFAULT_FALLBACK_MINUTES = 30


class FallbackProfileBuilder:
    """Always returns a complete, internally consistent profile."""

    def __init__(self, cache: LocalCacheStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._cache = cache
        self._clock = clock

    def build(self, answers: OnboardingAnswers, user_id: Optional[str] = None) -> IntegratedUserProfile:
        now = self._clock()
        stamp = epoch_ms(now)
        resolved_id = user_id or f"fallback_{stamp}_{uuid.uuid4().hex[:6]}"

        try:
            preferences = derive_preferences(answers)
        except Exception:  # noqa: BLE001
            logger.exception("Preference derivation failed while building fallback profile")
            preferences = PreferenceProfile(
                time_budget_min_per_day=answers.time_budget_min_per_day,
                long_term_goal=answers.goal_text,
            )

        category = answers.goal_category
        skill_atoms = [
            SkillAtom(id="fallback_basics", name="Basics", level=0, estimated_hours=5, tags=[category]),
            SkillAtom(id="fallback_practice", name="Practice", level=0, estimated_hours=10, tags=[category]),
        ]
        quest = Quest(
            quest_id=f"quest_{stamp}_0",
            title=f"Read up on: {answers.goal_text}",
            description="Read an introductory resource and take notes.",
            deliverable="Notes with three questions to follow up on",
            minutes=answers.preferred_session_length_min or DEFAULT_FALLBACK_MINUTES,
            difficulty=0.3,
            pattern=QuestPattern.READ_NOTE_Q,
            skill_atom_ids=["fallback_basics"],
            tags=["fallback"],
        )
        profile = IntegratedUserProfile(
            user_id=resolved_id,
            created_at=now,
            updated_at=now,
            revision=self._next_revision(resolved_id),
            goal_id=None,
            onboarding_answers=answers,
            preference_profile=preferences,
            skill_atoms=skill_atoms,
            quests=[quest],
            app_settings=AppSettings(ai_assistance_enabled=False),
            progress=initial_progress([quest]),
            degraded_stages=[FALLBACK_STAGE],
        )

        try:
            save_cached_profile(self._cache, profile, now)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to cache fallback profile for %s", resolved_id)

        emit_event(SyncEvent.FALLBACK_PROFILE_BUILT, user_id=resolved_id, synthetic_id=user_id is None)
        return profile

    def _next_revision(self, user_id: str) -> int:
        try:
            cached = load_cached_profile(self._cache)
        except Exception:  # noqa: BLE001
            logger.warning("Cached profile unreadable while building fallback for %s", user_id)
            return 1
        if cached is not None and cached.user_id == user_id:
            return cached.revision + 1
        return 1


__all__ = ["FALLBACK_STAGE", "FallbackProfileBuilder"]
