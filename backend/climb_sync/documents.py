"""Remote document shapes (camelCase on the wire) and their collection paths."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .user_profile import (
    WEEK_SLOTS,
    AppSettings,
    GoalCategory,
    Modality,
    OnboardingAnswers,
    PreferenceProfile,
    QuestPattern,
    QuestStatus,
    SkillAtom,
)

USERS_COLLECTION = "users"
ONBOARDING_VERSION = "1"

GoalStatus = Literal["active", "paused", "completed", "archived"]


def goals_path(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/goals"


def quests_path(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/quests"


def progress_path(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/progress"


def responses_path(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/profileResponses"


def user_subcollections(user_id: str) -> List[str]:
    return [goals_path(user_id), quests_path(user_id), progress_path(user_id), responses_path(user_id)]


class StoredDocument(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for a write; the store stamps the timestamps and keys the id."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id", "created_at", "updated_at"},
        )


class ProfileStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_quests: int = 0
    completed_quests: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_learning_minutes: int = 0
    last_active_date: Optional[str] = None


class ProfileDocument(StoredDocument):
    user_id: str
    onboarding_completed: bool = False
    onboarding_completed_at: Optional[datetime] = None
    onboarding_version: str = ONBOARDING_VERSION
    current_goal_id: Optional[str] = None
    revision: int = 0
    onboarding_answers: Optional[OnboardingAnswers] = None
    ai_profile: PreferenceProfile
    skill_atoms: List[SkillAtom] = Field(default_factory=list)
    app_settings: AppSettings = Field(default_factory=AppSettings)
    stats: ProfileStats = Field(default_factory=ProfileStats)
    degraded_stages: List[str] = Field(default_factory=list)


class GoalDocument(StoredDocument):
    id: str = Field(min_length=1)
    user_id: str
    goal_text: str
    goal_category: GoalCategory
    goal_deadline: str
    goal_importance: int
    time_budget_per_day: int
    preferred_session_length: int
    env_constraints: List[str] = Field(default_factory=list)
    modality_preference: List[Modality] = Field(default_factory=list)
    avoid_modality: List[Modality] = Field(default_factory=list)
    status: GoalStatus = "active"


class QuestDocument(StoredDocument):
    id: str = Field(min_length=1)
    user_id: str
    goal_id: str = ""
    title: str
    description: str = ""
    deliverable: str = ""
    minutes: int
    difficulty: float
    pattern: QuestPattern
    skill_atom_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    status: QuestStatus = "pending"
    completed_at: Optional[datetime] = None


class DailyStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quests_completed: int = 0
    total_minutes: int = 0
    session_count: int = 0
    skill_atoms_progressed: List[str] = Field(default_factory=list)


class ProgressDocument(StoredDocument):
    id: str = Field(min_length=1)
    user_id: str
    goal_id: str = ""
    date: str
    daily_stats: DailyStats = Field(default_factory=DailyStats)
    todays_quest_ids: List[str] = Field(default_factory=list)
    streak_days: int = 0
    weekly_pattern: List[float] = Field(default_factory=lambda: [0.0] * WEEK_SLOTS)

    @field_validator("weekly_pattern")
    @classmethod
    def _seven_slots(cls, value: List[float]) -> List[float]:
        if len(value) != WEEK_SLOTS:
            raise ValueError(f"weekly_pattern must have exactly {WEEK_SLOTS} slots")
        return value


class ProfileResponseDocument(StoredDocument):
    id: str = Field(min_length=1)
    user_id: str
    goal_id: str = ""
    question_id: str
    response: Any = None
    memo: Optional[str] = None


class PersistedRecord(BaseModel):
    """The profile denormalized into its remote collections, linked by goal id."""

    profile: ProfileDocument
    goal: GoalDocument
    quests: List[QuestDocument] = Field(default_factory=list)
    progress: ProgressDocument
    responses: List[ProfileResponseDocument] = Field(default_factory=list)

    @model_validator(mode="after")
    def _goal_links(self) -> "PersistedRecord":
        goal_id = self.goal.id
        linked = [*self.quests, self.progress, *self.responses]
        for document in linked:
            if document.goal_id != goal_id:
                raise ValueError(
                    f"{type(document).__name__} {document.id!r} links goal {document.goal_id!r}, expected {goal_id!r}"
                )
        if self.profile.current_goal_id != goal_id:
            raise ValueError("profile document must point at the record's goal")
        return self


__all__ = [
    "DailyStats",
    "GoalDocument",
    "GoalStatus",
    "ONBOARDING_VERSION",
    "PersistedRecord",
    "ProfileDocument",
    "ProfileResponseDocument",
    "ProfileStats",
    "ProgressDocument",
    "QuestDocument",
    "StoredDocument",
    "USERS_COLLECTION",
    "goals_path",
    "progress_path",
    "quests_path",
    "responses_path",
    "user_subcollections",
]
