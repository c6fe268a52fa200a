"""Quest completion: the append-only progress channel."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from .cache.profile_cache import save_cached_profile
from .context import SyncContext
from .documents import (
    USERS_COLLECTION,
    DailyStats,
    ProfileStats,
    ProgressDocument,
    progress_path,
    quests_path,
)
from .errors import DocumentNotFoundError
from .normalization import progress_id, skill_progression
from .profile_loader import ProfileLoader
from .telemetry import SyncEvent, emit_event
from .user_profile import IntegratedUserProfile, TodaysProgress

logger = logging.getLogger(__name__)


def next_streak(last_completed_on: Optional[date], current_streak: int, today: date) -> int:
    if last_completed_on == today:
        return max(current_streak, 1)
    if last_completed_on == today - timedelta(days=1):
        return current_streak + 1
    return 1


def apply_completion(
    profile: IntegratedUserProfile,
    quest_id: str,
    minutes: int,
    now: datetime,
) -> IntegratedUserProfile:
    """Return a copy of ``profile`` with ``quest_id`` completed. Pure."""
    quest = profile.find_quest(quest_id)
    if quest is None:
        raise LookupError(f"Quest '{quest_id}' was not found.")
    today = now.date()

    quests = [
        item.model_copy(update={"status": "completed"}) if item.quest_id == quest_id else item
        for item in profile.quests
    ]
    todays = [
        entry.model_copy(update={"completed": True}) if entry.quest_id == quest_id else entry
        for entry in profile.progress.todays_quests
    ]
    previous = profile.progress
    same_day = previous.last_completed_on == today
    completed_today = sum(1 for entry in todays if entry.completed)
    time_spent = (previous.todays_progress.time_spent_min if same_day else 0) + max(minutes, 0)

    weekly = list(previous.weekly_progress)
    weekly[today.weekday()] = round(completed_today / len(todays), 4) if todays else 1.0
    streak = next_streak(previous.last_completed_on, previous.current_streak, today)

    progress = previous.model_copy(
        update={
            "todays_quests": todays,
            "todays_progress": TodaysProgress(
                completed=completed_today,
                total=len(todays),
                time_spent_min=time_spent,
            ),
            "current_streak": streak,
            "longest_streak": max(previous.longest_streak, streak),
            "completed_quests": previous.completed_quests + 1,
            "total_quests": max(previous.total_quests, len(quests)),
            "weekly_progress": weekly,
            "skill_progression": skill_progression(profile.skill_atoms, quests),
            "last_completed_on": today,
        }
    )
    updated = profile.model_copy(
        update={
            "quests": quests,
            "progress": progress,
            "revision": profile.revision + 1,
            "updated_at": now,
        }
    )
    # Round-trip through validation so the invariants are re-checked.
    return IntegratedUserProfile.model_validate(updated.model_dump())


class QuestProgressRecorder:
    def __init__(self, context: SyncContext, loader: Optional[ProfileLoader] = None) -> None:
        self._ctx = context
        self._loader = loader or ProfileLoader(context)

    async def complete_quest(self, quest_id: str, *, time_spent_min: Optional[int] = None) -> IntegratedUserProfile:
        profile = await self._loader.load()
        if profile is None:
            raise LookupError("No profile found; complete onboarding first.")
        quest = profile.find_quest(quest_id)
        if quest is None:
            raise LookupError(f"Quest '{quest_id}' was not found.")
        if quest.status == "completed":
            logger.info("Quest %s already completed for %s", quest_id, profile.user_id)
            return profile

        now = self._ctx.clock()
        minutes = time_spent_min if time_spent_min is not None else quest.minutes
        updated = apply_completion(profile, quest_id, minutes, now)

        try:
            await self._write_documents(updated, quest_id, minutes, now)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not record completion of %s remotely or locally: %s", quest_id, exc)

        try:
            save_cached_profile(self._ctx.cache, updated, now)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to cache profile after completing %s", quest_id)

        emit_event(
            SyncEvent.QUEST_COMPLETED,
            user_id=updated.user_id,
            quest_id=quest_id,
            minutes=minutes,
            streak=updated.progress.current_streak,
            revision=updated.revision,
        )
        return updated

    async def _write_documents(
        self,
        profile: IntegratedUserProfile,
        quest_id: str,
        minutes: int,
        now: datetime,
    ) -> None:
        router = self._ctx.router
        user_id = profile.user_id
        progress = profile.progress
        quest = profile.find_quest(quest_id)
        skill_ids = set(quest.skill_atom_ids) if quest is not None else set()

        completion = {"status": "completed", "completedAt": now.isoformat()}
        try:
            await router.update(quests_path(user_id), quest_id, completion)
        except DocumentNotFoundError:
            await self._complete_mirrored_quest(user_id, quest_id, completion)

        day = progress_id(now.date())
        path = progress_path(user_id)
        existing = await router.read(path, day)
        stats = DailyStats.model_validate(existing.get("dailyStats", {})) if existing else DailyStats()
        document = ProgressDocument(
            id=day,
            user_id=user_id,
            goal_id=profile.goal_id or "",
            date=day,
            daily_stats=DailyStats(
                quests_completed=stats.quests_completed + 1,
                total_minutes=stats.total_minutes + minutes,
                session_count=stats.session_count + 1,
                skill_atoms_progressed=sorted(set(stats.skill_atoms_progressed) | skill_ids),
            ),
            todays_quest_ids=[entry.quest_id for entry in progress.todays_quests],
            streak_days=progress.current_streak,
            weekly_pattern=progress.weekly_progress,
        )
        payload = document.to_payload()
        if existing:
            await router.update(path, day, payload)
        else:
            await router.create(path, day, payload)

        stored_profile = await router.read(USERS_COLLECTION, user_id)
        if stored_profile is None:
            logger.debug("Profile document for %s not stored; only the cache is updated", user_id)
            return
        previous_stats = ProfileStats.model_validate(stored_profile.get("stats") or {})
        stats_doc = ProfileStats(
            total_quests=progress.total_quests,
            completed_quests=progress.completed_quests,
            current_streak=progress.current_streak,
            longest_streak=progress.longest_streak,
            total_learning_minutes=previous_stats.total_learning_minutes + minutes,
            last_active_date=now.date().isoformat(),
        )
        await router.update(
            USERS_COLLECTION,
            user_id,
            {"stats": stats_doc.model_dump(mode="json", by_alias=True), "revision": profile.revision},
        )

    async def _complete_mirrored_quest(self, user_id: str, quest_id: str, completion: dict) -> None:
        if self._ctx.router.uses_local():
            logger.debug("Quest %s has no stored document; only the cache is updated", quest_id)
            return
        try:
            await self._ctx.local.update(quests_path(user_id), quest_id, completion)
        except DocumentNotFoundError:
            logger.debug("Quest %s has no stored document; only the cache is updated", quest_id)


__all__ = ["QuestProgressRecorder", "apply_completion", "next_streak"]
