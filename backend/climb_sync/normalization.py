"""Conversion between the integrated profile and its denormalized documents."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, TypeVar

from .documents import (
    GoalDocument,
    PersistedRecord,
    ProfileDocument,
    ProfileResponseDocument,
    ProfileStats,
    ProgressDocument,
    QuestDocument,
    StoredDocument,
)
from .user_profile import (
    WEEK_SLOTS,
    AppSettings,
    IntegratedUserProfile,
    OnboardingAnswers,
    PreferenceProfile,
    Progress,
    Quest,
    SkillAtom,
    TodayQuest,
    TodaysProgress,
    select_todays_quests,
)

D = TypeVar("D", bound=StoredDocument)


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def new_goal_id(moment: datetime) -> str:
    return f"goal_{epoch_ms(moment)}_{uuid.uuid4().hex[:6]}"


def progress_id(day: date) -> str:
    return day.isoformat()


def assign_quest_ids(quests: Sequence[Quest], moment: datetime) -> List[Quest]:
    stamp = epoch_ms(moment)
    return [
        quest.model_copy(update={"quest_id": f"quest_{stamp}_{index}", "status": "pending"})
        for index, quest in enumerate(quests)
    ]


def link_to_goal(documents: Sequence[D], goal_id: str) -> List[D]:
    """Back-fill the owning goal's id into dependent documents."""
    if not goal_id:
        raise ValueError("Cannot link documents to an empty goal id")
    return [document.model_copy(update={"goal_id": goal_id}) for document in documents]


def _parse_timestamp(value: Optional[str], default: datetime) -> datetime:
    if not value:
        return default
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return default
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def build_record(
    *,
    user_id: str,
    answers: OnboardingAnswers,
    preferences: PreferenceProfile,
    skill_atoms: Sequence[SkillAtom],
    quests: Sequence[Quest],
    app_settings: AppSettings,
    revision: int,
    degraded_stages: Sequence[str],
    now: datetime,
) -> PersistedRecord:
    """Denormalize one integration run. ``quests`` must already carry their ids."""
    goal_id = new_goal_id(now)
    today = progress_id(now.date())
    stamp = epoch_ms(now)

    goal = GoalDocument(
        id=goal_id,
        user_id=user_id,
        goal_text=answers.goal_text,
        goal_category=answers.goal_category,
        goal_deadline=answers.goal_deadline,
        goal_importance=answers.goal_importance,
        time_budget_per_day=answers.time_budget_min_per_day,
        preferred_session_length=answers.preferred_session_length_min,
        env_constraints=list(answers.env_constraints),
        modality_preference=list(answers.modality_preference),
        avoid_modality=list(answers.avoid_modality),
        status="active",
    )
    quest_docs = [
        QuestDocument(
            id=quest.quest_id,
            user_id=user_id,
            title=quest.title,
            description=quest.description,
            deliverable=quest.deliverable,
            minutes=quest.minutes,
            difficulty=quest.difficulty,
            pattern=quest.pattern,
            skill_atom_ids=list(quest.skill_atom_ids),
            tags=list(quest.tags),
            status=quest.status,
        )
        for quest in quests
    ]
    todays = select_todays_quests(list(quests))
    progress = ProgressDocument(
        id=today,
        user_id=user_id,
        date=today,
        todays_quest_ids=[entry.quest_id for entry in todays],
    )
    responses = [
        ProfileResponseDocument(
            id=f"response_{stamp}_{index}",
            user_id=user_id,
            question_id=question_id,
            response=value,
            memo=answers.memos.get(question_id),
        )
        for index, (question_id, value) in enumerate(answers.profile_answers.items())
    ]
    profile = ProfileDocument(
        user_id=user_id,
        onboarding_completed=True,
        onboarding_completed_at=answers.completed_at,
        current_goal_id=goal_id,
        revision=revision,
        onboarding_answers=answers,
        ai_profile=preferences,
        skill_atoms=list(skill_atoms),
        app_settings=app_settings,
        stats=ProfileStats(total_quests=len(quest_docs)),
        degraded_stages=list(degraded_stages),
    )
    return PersistedRecord(
        profile=profile,
        goal=goal,
        quests=link_to_goal(quest_docs, goal_id),
        progress=link_to_goal([progress], goal_id)[0],
        responses=link_to_goal(responses, goal_id),
    )


def skill_progression(skill_atoms: Sequence[SkillAtom], quests: Sequence[Quest]) -> Dict[str, float]:
    progression: Dict[str, float] = {}
    for atom in skill_atoms:
        related = [quest for quest in quests if atom.id in quest.skill_atom_ids]
        if not related:
            continue
        done = sum(1 for quest in related if quest.status == "completed")
        progression[atom.id] = round(done / len(related), 4)
    return progression


def quest_from_document(document: QuestDocument) -> Quest:
    return Quest(
        quest_id=document.id,
        title=document.title,
        description=document.description,
        deliverable=document.deliverable,
        minutes=document.minutes,
        difficulty=document.difficulty,
        pattern=document.pattern,
        skill_atom_ids=list(document.skill_atom_ids),
        tags=list(document.tags),
        status=document.status,
    )


def documents_to_profile(
    profile_doc: ProfileDocument,
    quest_docs: Sequence[QuestDocument],
    progress_docs: Sequence[ProgressDocument],
    *,
    today: date,
    now: Optional[datetime] = None,
) -> IntegratedUserProfile:
    """Reassemble the aggregate. ``progress_docs`` are expected newest first."""
    now = now or datetime.now(timezone.utc)
    quests = [quest_from_document(document) for document in quest_docs]
    by_id = {quest.quest_id: quest for quest in quests}
    today_doc = next((doc for doc in progress_docs if doc.id == progress_id(today)), None)

    if today_doc is not None and today_doc.todays_quest_ids:
        todays = [
            TodayQuest(
                quest_id=by_id[quest_id].quest_id,
                title=by_id[quest_id].title,
                deliverable=by_id[quest_id].deliverable,
                minutes=by_id[quest_id].minutes,
                completed=by_id[quest_id].status == "completed",
            )
            for quest_id in today_doc.todays_quest_ids
            if quest_id in by_id
        ]
    else:
        todays = select_todays_quests(quests)

    time_spent = today_doc.daily_stats.total_minutes if today_doc is not None else 0
    weekly = list(progress_docs[0].weekly_pattern) if progress_docs else [0.0] * WEEK_SLOTS
    stats = profile_doc.stats
    last_completed = date.fromisoformat(stats.last_active_date) if stats.last_active_date else None

    progress = Progress(
        todays_quests=todays,
        todays_progress=TodaysProgress(
            completed=sum(1 for entry in todays if entry.completed),
            total=len(todays),
            time_spent_min=time_spent,
        ),
        current_streak=stats.current_streak,
        longest_streak=max(stats.longest_streak, stats.current_streak),
        completed_quests=stats.completed_quests,
        total_quests=stats.total_quests or len(quests),
        weekly_progress=weekly,
        skill_progression=skill_progression(profile_doc.skill_atoms, quests),
        last_completed_on=last_completed,
    )
    return IntegratedUserProfile(
        user_id=profile_doc.user_id,
        created_at=_parse_timestamp(profile_doc.created_at, now),
        updated_at=_parse_timestamp(profile_doc.updated_at, now),
        revision=profile_doc.revision,
        goal_id=profile_doc.current_goal_id,
        onboarding_answers=profile_doc.onboarding_answers,
        preference_profile=profile_doc.ai_profile,
        skill_atoms=list(profile_doc.skill_atoms),
        quests=quests,
        app_settings=profile_doc.app_settings,
        progress=progress,
        degraded_stages=list(profile_doc.degraded_stages),
    )


def record_to_profile(record: PersistedRecord, *, now: datetime) -> IntegratedUserProfile:
    """Assemble from the in-memory record, without reading anything back."""
    profile = documents_to_profile(
        record.profile,
        record.quests,
        [record.progress],
        today=now.date(),
        now=now,
    )
    return profile.model_copy(update={"created_at": now, "updated_at": now})


__all__ = [
    "assign_quest_ids",
    "build_record",
    "documents_to_profile",
    "epoch_ms",
    "link_to_goal",
    "new_goal_id",
    "progress_id",
    "quest_from_document",
    "record_to_profile",
    "skill_progression",
]
