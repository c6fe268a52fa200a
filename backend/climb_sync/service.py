"""Facade over the sync engine used by the HTTP layer."""

from __future__ import annotations

import logging
from typing import List, Optional

from .cache.profile_cache import clear_cached_profile
from .context import SyncContext
from .document_store import BatchOperation, Unsubscribe
from .documents import USERS_COLLECTION, user_subcollections
from .integration import IntegrationReport, ProfileIntegrationPipeline
from .mode import EnvironmentInfo
from .profile_loader import ProfileLoader
from .progress import QuestProgressRecorder
from .subscriptions import ProfileCallback, SubscriptionManager
from .telemetry import SyncEvent, emit_event
from .user_profile import IntegratedUserProfile, OnboardingAnswers

logger = logging.getLogger(__name__)


class ProfileSyncService:
    def __init__(self, context: SyncContext) -> None:
        self.context = context
        self.loader = ProfileLoader(context)
        self.pipeline = ProfileIntegrationPipeline(context)
        self.progress = QuestProgressRecorder(context, self.loader)
        self.subscriptions = SubscriptionManager(context, self.loader)

    def environment(self) -> EnvironmentInfo:
        return self.context.mode.describe()

    async def integrate(self, answers: OnboardingAnswers) -> IntegratedUserProfile:
        return await self.pipeline.integrate(answers)

    async def integrate_with_report(self, answers: OnboardingAnswers) -> IntegrationReport:
        return await self.pipeline.integrate_with_report(answers)

    async def load_profile(self) -> Optional[IntegratedUserProfile]:
        return await self.loader.load()

    async def complete_quest(self, quest_id: str, *, time_spent_min: Optional[int] = None) -> IntegratedUserProfile:
        return await self.progress.complete_quest(quest_id, time_spent_min=time_spent_min)

    async def subscribe_to_profile(self, user_id: str, callback: ProfileCallback) -> Unsubscribe:
        return await self.subscriptions.subscribe_to_profile(user_id, callback)

    async def reset_profile(self) -> List[str]:
        """Delete the user's documents and cached profile; the device identity is kept.

        Returns the collection paths that could not be cleared.
        """
        user_id = await self.context.identity.resolve_user_id()
        router = self.context.router
        failed: List[str] = []

        for path in user_subcollections(user_id):
            try:
                documents = await router.query(path)
                if documents:
                    await router.batch_write([BatchOperation("delete", path, doc["id"]) for doc in documents])
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to clear %s during reset: %s", path, exc)
                failed.append(path)
        try:
            await router.delete(USERS_COLLECTION, user_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to delete profile document for %s: %s", user_id, exc)
            failed.append(USERS_COLLECTION)

        # The local mirror may hold documents written during an outage.
        self.context.local.purge(f"{USERS_COLLECTION}/{user_id}")
        await self.context.local.delete(USERS_COLLECTION, user_id)
        clear_cached_profile(self.context.cache)

        emit_event(SyncEvent.PROFILE_RESET, user_id=user_id, failed_paths=failed)
        return failed


__all__ = ["ProfileSyncService"]
