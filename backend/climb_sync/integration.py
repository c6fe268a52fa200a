"""Onboarding answers in, integrated profile out, whatever fails along the way."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .cache.profile_cache import load_cached_profile, save_cached_profile
from .content_generator import static_fallback_quest, static_skill_map
from .context import SyncContext
from .document_store import BatchOperation, QueryCondition
from .documents import (
    USERS_COLLECTION,
    PersistedRecord,
    goals_path,
    progress_path,
    quests_path,
    responses_path,
)
from .errors import DocumentNotFoundError
from .fallback_profile import FALLBACK_STAGE, FallbackProfileBuilder
from .normalization import assign_quest_ids, build_record, record_to_profile
from .preferences import derive_preferences
from .skill_graph import prune_quest_skill_refs, validate_skill_map
from .stages import Degraded, Ok, StageResult
from .telemetry import SyncEvent, emit_event
from .user_profile import (
    AppSettings,
    IntegratedUserProfile,
    OnboardingAnswers,
    PreferenceProfile,
    Quest,
    SkillAtom,
)

logger = logging.getLogger(__name__)


@dataclass
class IntegrationReport:
    profile: IntegratedUserProfile
    stages: Dict[str, StageResult[Any]] = field(default_factory=dict)
    used_fallback_builder: bool = False

    @property
    def degraded_stages(self) -> List[str]:
        return [name for name, result in self.stages.items() if result.degraded]

    @property
    def fully_succeeded(self) -> bool:
        return not self.used_fallback_builder and not self.degraded_stages


class ProfileIntegrationPipeline:
    """Runs identify, derive, generate, normalize, persist, assemble and cache.

    Generation and persistence failures degrade their stage and the run
    continues. A failed identify step or any unexpected error hands over to the
    fallback builder, so ``integrate`` never raises for valid answers.
    """

    def __init__(self, context: SyncContext) -> None:
        self._ctx = context
        self._fallback = FallbackProfileBuilder(context.cache, clock=context.clock)

    async def integrate(self, answers: OnboardingAnswers) -> IntegratedUserProfile:
        report = await self.integrate_with_report(answers)
        return report.profile

    async def integrate_with_report(self, answers: OnboardingAnswers) -> IntegrationReport:
        try:
            user_id = await self._ctx.identity.resolve_user_id()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not resolve a user id, building fallback profile: %s", exc)
            return self._fallback_report(answers, None, "identify", exc)

        try:
            return await self._run(user_id, answers)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Integration failed for %s, building fallback profile", user_id)
            return self._fallback_report(answers, user_id, "pipeline", exc)

    def _fallback_report(
        self,
        answers: OnboardingAnswers,
        user_id: Optional[str],
        stage: str,
        exc: Exception,
    ) -> IntegrationReport:
        profile = self._fallback.build(answers, user_id)
        reason = f"{type(exc).__name__}: {exc}"
        stages: Dict[str, StageResult[Any]] = {stage: Degraded(None, reason), FALLBACK_STAGE: Degraded(profile, reason)}
        return IntegrationReport(profile=profile, stages=stages, used_fallback_builder=True)

    async def _run(self, user_id: str, answers: OnboardingAnswers) -> IntegrationReport:
        now = self._ctx.clock()
        stages: Dict[str, StageResult[Any]] = {"identify": Ok(user_id)}

        preferences = derive_preferences(answers)
        stages["preferences"] = Ok(preferences)

        skills = await self._skill_stage(answers, preferences)
        stages["skill_map"] = skills

        quests = await self._quest_stage(answers, preferences, skills.value)
        stages["quests"] = quests
        quest_list = assign_quest_ids(prune_quest_skill_refs(quests.value, skills.value), now)

        revision = await self._next_revision(user_id)
        record = build_record(
            user_id=user_id,
            answers=answers,
            preferences=preferences,
            skill_atoms=skills.value,
            quests=quest_list,
            app_settings=self._app_settings(),
            revision=revision,
            degraded_stages=[name for name, result in stages.items() if result.degraded],
            now=now,
        )
        stages["normalize"] = Ok(record)

        stages["persist"] = await self._persist(user_id, record)

        degraded = [name for name, result in stages.items() if result.degraded]
        profile = record_to_profile(record, now=now).model_copy(update={"degraded_stages": degraded})
        stages["assemble"] = Ok(profile)

        stages["cache"] = self._cache(profile, now)

        report = IntegrationReport(profile=profile, stages=stages)
        emit_event(
            SyncEvent.INTEGRATION_COMPLETED,
            user_id=user_id,
            goal_id=record.goal.id,
            revision=revision,
            quest_count=len(profile.quests),
            degraded_stages=report.degraded_stages,
        )
        return report

    def _app_settings(self) -> AppSettings:
        settings = self._ctx.settings
        return AppSettings(
            language=settings.default_language,
            timezone=settings.default_timezone,
            ai_assistance_enabled=self._ctx.mode.describe().ai_enabled,
        )

    def _degrade(self, stage: str, exc: Exception) -> str:
        reason = f"{type(exc).__name__}: {exc}"
        logger.warning("Integration stage %s degraded: %s", stage, reason)
        emit_event(SyncEvent.STAGE_DEGRADED, stage=stage, reason=reason)
        return reason

    async def _skill_stage(
        self,
        answers: OnboardingAnswers,
        preferences: PreferenceProfile,
    ) -> StageResult[List[SkillAtom]]:
        try:
            atoms = await self._ctx.generator.generate_skill_map(
                answers.goal_text,
                preferences.current_level_tags,
                preferences.priority_areas,
            )
            return Ok(validate_skill_map(atoms))
        except Exception as exc:  # noqa: BLE001
            reason = self._degrade("skill_map", exc)
            return Degraded(static_skill_map(answers.goal_category), reason)

    async def _quest_stage(
        self,
        answers: OnboardingAnswers,
        preferences: PreferenceProfile,
        skill_atoms: List[SkillAtom],
    ) -> StageResult[List[Quest]]:
        try:
            quests = await self._ctx.generator.generate_quests(preferences, skill_atoms)
            if not quests:
                raise ValueError("content generator returned no quests")
            return Ok(list(quests))
        except Exception as exc:  # noqa: BLE001
            reason = self._degrade("quests", exc)
            return Degraded([static_fallback_quest(answers.goal_text)], reason)

    async def _next_revision(self, user_id: str) -> int:
        current = 0
        cached = load_cached_profile(self._ctx.cache)
        if cached is not None and cached.user_id == user_id:
            current = cached.revision
        try:
            existing = await self._ctx.router.read(USERS_COLLECTION, user_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not read current revision for %s: %s", user_id, exc)
            existing = None
        if existing:
            current = max(current, int(existing.get("revision") or 0))
        return current + 1

    async def _persist(self, user_id: str, record: PersistedRecord) -> StageResult[PersistedRecord]:
        router = self._ctx.router
        try:
            await self._archive_active_goals(user_id, record.goal.id)
            await router.create(goals_path(user_id), record.goal.id, record.goal.to_payload())
            if record.quests:
                await router.batch_write(
                    [
                        BatchOperation("create", quests_path(user_id), quest.id, quest.to_payload())
                        for quest in record.quests
                    ]
                )
            await router.create(progress_path(user_id), record.progress.id, record.progress.to_payload())
            if record.responses:
                await router.batch_write(
                    [
                        BatchOperation("create", responses_path(user_id), response.id, response.to_payload())
                        for response in record.responses
                    ]
                )
            # Written last: a crash before this point leaves the previous profile current.
            await router.create(USERS_COLLECTION, user_id, record.profile.to_payload())
        except Exception as exc:  # noqa: BLE001
            reason = self._degrade("persist", exc)
            return Degraded(record, reason)
        logger.info("Persisted goal %s with %d quests for %s", record.goal.id, len(record.quests), user_id)
        return Ok(record)

    async def _archive_active_goals(self, user_id: str, keep_goal_id: str) -> None:
        path = goals_path(user_id)
        active = await self._ctx.router.query(path, [QueryCondition("status", "==", "active")])
        operations = [
            BatchOperation("update", path, goal["id"], {"status": "archived"})
            for goal in active
            if goal.get("id") != keep_goal_id
        ]
        if not operations:
            return
        try:
            await self._ctx.router.batch_write(operations)
        except DocumentNotFoundError as exc:
            # The active goals came from the local mirror and the remote store lacks them.
            logger.warning("Skipped archiving previous goals for %s: %s", user_id, exc)
            return
        logger.info("Archived %d previous goals for %s", len(operations), user_id)

    def _cache(self, profile: IntegratedUserProfile, now: datetime) -> StageResult[IntegratedUserProfile]:
        try:
            save_cached_profile(self._ctx.cache, profile, now)
        except Exception as exc:  # noqa: BLE001
            reason = self._degrade("cache", exc)
            return Degraded(profile, reason)
        return Ok(profile)


__all__ = ["IntegrationReport", "ProfileIntegrationPipeline"]
