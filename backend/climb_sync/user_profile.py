"""Domain models for onboarding answers and the integrated learning profile."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

GoalCategory = Literal["learning", "career", "health", "skill", "creative", "other"]
Modality = Literal["read", "video", "audio", "dialog", "mimesis"]
QuestRating = Literal["love", "like", "dislike"]
QuestStatus = Literal["pending", "active", "completed", "skipped", "failed"]

TODAYS_QUEST_LIMIT = 3
WEEK_SLOTS = 7


def _now() -> datetime:
    return datetime.now(timezone.utc)


class QuestPattern(str, Enum):
    READ_NOTE_Q = "read_note_q"
    FLASHCARDS = "flashcards"
    BUILD_MICRO = "build_micro"
    CONFIG_VERIFY = "config_verify"
    DEBUG_EXPLAIN = "debug_explain"
    FEYNMAN = "feynman"
    PAST_PAPER = "past_paper"
    SOCRATIC = "socratic"
    SHADOWING = "shadowing"
    RETROSPECTIVE = "retrospective"
    RESEARCH = "research"


class OnboardingAnswers(BaseModel):
    """Raw questionnaire responses. Superseded by a new onboarding run, never edited."""

    model_config = ConfigDict(frozen=True)

    goal_text: str = Field(min_length=1)
    goal_category: GoalCategory = "learning"
    goal_deadline: str = "3m"
    goal_importance: int = Field(3, ge=1, le=5)
    time_budget_min_per_day: int = Field(gt=0)
    preferred_session_length_min: int = Field(20, gt=0)
    env_constraints: List[str] = Field(default_factory=list)
    modality_preference: List[Modality] = Field(default_factory=list)
    avoid_modality: List[Modality] = Field(default_factory=list)
    profile_answers: Dict[str, Any] = Field(default_factory=dict)
    memos: Dict[str, str] = Field(default_factory=dict)
    quest_preferences: Dict[str, QuestRating] = Field(default_factory=dict)
    completed_at: datetime = Field(default_factory=_now)

    @field_validator("goal_text")
    @classmethod
    def _strip_goal(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("goal_text cannot be blank")
        return stripped


class PreferenceProfile(BaseModel):
    time_budget_min_per_day: int = Field(gt=0)
    peak_hours: List[int] = Field(default_factory=list)
    env_constraints: List[str] = Field(default_factory=list)
    hard_constraints: List[str] = Field(default_factory=list)
    motivation_style: Literal["push", "pull", "social"] = "push"
    difficulty_tolerance: float = Field(0.5, ge=0.0, le=1.0)
    novelty_preference: float = Field(0.5, ge=0.0, le=1.0)
    pace_preference: Literal["sprint", "cadence"] = "cadence"
    long_term_goal: Optional[str] = None
    milestone_granularity: Optional[float] = Field(None, ge=0.0, le=1.0)
    current_level_tags: List[str] = Field(default_factory=list)
    priority_areas: List[str] = Field(default_factory=list)
    heat_level: int = Field(3, ge=1, le=5)
    risk_factors: List[str] = Field(default_factory=list)
    preferred_session_length_min: int = Field(20, gt=0)
    modality_preference: List[Modality] = Field(default_factory=lambda: ["read"])
    deliverable_preferences: List[str] = Field(default_factory=lambda: ["note"])
    weekly_minimum_commitment_min: int = Field(120, ge=0)


class SkillAtom(BaseModel):
    id: str = Field(min_length=1)
    name: str
    level: int = Field(0, ge=0)
    dependencies: List[str] = Field(default_factory=list)
    estimated_hours: float = Field(0.0, ge=0.0)
    tags: List[str] = Field(default_factory=list)


class Quest(BaseModel):
    quest_id: str = ""
    title: str = Field(min_length=1)
    description: str = ""
    deliverable: str = ""
    minutes: int = Field(gt=0)
    difficulty: float = Field(0.5, ge=0.0, le=1.0)
    pattern: QuestPattern = QuestPattern.READ_NOTE_Q
    skill_atom_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    status: QuestStatus = "pending"


class TodayQuest(BaseModel):
    quest_id: str
    title: str
    deliverable: str = ""
    minutes: int = Field(gt=0)
    completed: bool = False


class TodaysProgress(BaseModel):
    completed: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    time_spent_min: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _completed_within_total(self) -> "TodaysProgress":
        if self.completed > self.total:
            raise ValueError("completed quests cannot exceed today's total")
        return self


class Progress(BaseModel):
    todays_quests: List[TodayQuest] = Field(default_factory=list, max_length=TODAYS_QUEST_LIMIT)
    todays_progress: TodaysProgress = Field(default_factory=TodaysProgress)
    current_streak: int = Field(0, ge=0)
    longest_streak: int = Field(0, ge=0)
    completed_quests: int = Field(0, ge=0)
    total_quests: int = Field(0, ge=0)
    weekly_progress: List[float] = Field(default_factory=lambda: [0.0] * WEEK_SLOTS)
    skill_progression: Dict[str, float] = Field(default_factory=dict)
    last_completed_on: Optional[date] = None

    @field_validator("weekly_progress")
    @classmethod
    def _seven_slots(cls, value: List[float]) -> List[float]:
        if len(value) != WEEK_SLOTS:
            raise ValueError(f"weekly_progress must have exactly {WEEK_SLOTS} slots")
        return value

    @field_validator("skill_progression")
    @classmethod
    def _unit_interval(cls, value: Dict[str, float]) -> Dict[str, float]:
        for skill_id, amount in value.items():
            if not 0.0 <= amount <= 1.0:
                raise ValueError(f"skill progression for {skill_id} must be within [0, 1]")
        return value


class AppSettings(BaseModel):
    notifications_enabled: bool = True
    theme: Literal["light", "dark", "auto"] = "auto"
    language: Literal["ja", "en"] = "en"
    timezone: str = "UTC"
    ai_assistance_enabled: bool = True


class IntegratedUserProfile(BaseModel):
    """The aggregate every caller receives, whichever backend produced it."""

    user_id: str = Field(min_length=1)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    revision: int = Field(1, ge=0)
    goal_id: Optional[str] = None
    onboarding_answers: Optional[OnboardingAnswers] = None
    preference_profile: PreferenceProfile
    skill_atoms: List[SkillAtom] = Field(default_factory=list)
    quests: List[Quest] = Field(default_factory=list)
    app_settings: AppSettings = Field(default_factory=AppSettings)
    progress: Progress = Field(default_factory=Progress)
    degraded_stages: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "IntegratedUserProfile":
        quest_ids = {quest.quest_id for quest in self.quests}
        for today in self.progress.todays_quests:
            if today.quest_id not in quest_ids:
                raise ValueError(f"today's quest {today.quest_id!r} is not in the quest list")
        atom_ids = {atom.id for atom in self.skill_atoms}
        for atom in self.skill_atoms:
            missing = [dep for dep in atom.dependencies if dep not in atom_ids]
            if missing:
                raise ValueError(f"skill atom {atom.id!r} depends on unknown atoms {missing}")
        return self

    @property
    def goal_text(self) -> Optional[str]:
        if self.onboarding_answers is not None:
            return self.onboarding_answers.goal_text
        return self.preference_profile.long_term_goal

    def find_quest(self, quest_id: str) -> Optional[Quest]:
        for quest in self.quests:
            if quest.quest_id == quest_id:
                return quest
        return None


def select_todays_quests(quests: List[Quest], limit: int = TODAYS_QUEST_LIMIT) -> List[TodayQuest]:
    """Pick the first open quests (pending or active) as today's slate."""
    selected: List[TodayQuest] = []
    for quest in quests:
        if quest.status not in ("pending", "active"):
            continue
        selected.append(
            TodayQuest(
                quest_id=quest.quest_id,
                title=quest.title,
                deliverable=quest.deliverable,
                minutes=quest.minutes,
                completed=False,
            )
        )
        if len(selected) >= limit:
            break
    return selected


def initial_progress(quests: List[Quest]) -> Progress:
    todays = select_todays_quests(quests)
    return Progress(
        todays_quests=todays,
        todays_progress=TodaysProgress(completed=0, total=len(todays), time_spent_min=0),
        total_quests=len(quests),
    )


__all__ = [
    "AppSettings",
    "GoalCategory",
    "IntegratedUserProfile",
    "Modality",
    "OnboardingAnswers",
    "PreferenceProfile",
    "Progress",
    "Quest",
    "QuestPattern",
    "QuestStatus",
    "SkillAtom",
    "TODAYS_QUEST_LIMIT",
    "TodayQuest",
    "TodaysProgress",
    "WEEK_SLOTS",
    "initial_progress",
    "select_todays_quests",
]
