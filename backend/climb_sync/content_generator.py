"""Content generator contract, the offline template generator and static substitutes."""

from __future__ import annotations

import logging
from typing import Dict, List, Protocol, Sequence, Tuple

from .skill_graph import topological_order
from .user_profile import PreferenceProfile, Quest, QuestPattern, SkillAtom

logger = logging.getLogger(__name__)

FALLBACK_QUEST_MINUTES = 25
FALLBACK_QUEST_DIFFICULTY = 0.3


class ContentGenerator(Protocol):
    """Black-box skill map and quest generation. Implementations raise fast on failure."""

    async def generate_skill_map(
        self,
        goal_text: str,
        level_tags: Sequence[str],
        priority_areas: Sequence[str],
    ) -> List[SkillAtom]:
        ...

    async def generate_quests(
        self,
        preference_profile: PreferenceProfile,
        skill_atoms: Sequence[SkillAtom],
    ) -> List[Quest]:
        ...


def static_skill_map(goal_category: str) -> List[SkillAtom]:
    """Two-node map used when the generator cannot produce a usable graph."""
    return [
        SkillAtom(
            id="skill_foundation",
            name="Foundation skills",
            level=0,
            dependencies=[],
            estimated_hours=10,
            tags=[goal_category],
        ),
        SkillAtom(
            id="skill_intermediate",
            name="Intermediate skills",
            level=1,
            dependencies=["skill_foundation"],
            estimated_hours=20,
            tags=[goal_category],
        ),
    ]


def static_fallback_quest(goal_text: str) -> Quest:
    return Quest(
        title=f"Research the basics of: {goal_text}",
        description="Look up the core information you need to reach the goal.",
        deliverable="A short memo summarising what you found",
        minutes=FALLBACK_QUEST_MINUTES,
        difficulty=FALLBACK_QUEST_DIFFICULTY,
        pattern=QuestPattern.RESEARCH,
        skill_atom_ids=[],
        tags=["foundation"],
    )


# keyword group -> (foundation, first branch, second branch, capstone)
_SKILL_THEMES: List[Tuple[Tuple[str, ...], Tuple[str, str, str, str]]] = [
    (
        ("toeic", "toefl", "ielts", "english", "language", "vocabulary", "japanese"),
        ("Core vocabulary", "Listening practice", "Reading practice", "Timed mock exam"),
    ),
    (
        ("python", "programming", "code", "coding", "developer", "software", "app"),
        ("Language fundamentals", "Tooling and debugging", "Small builds", "End-to-end project"),
    ),
    (
        ("exam", "certification", "test", "pass", "license"),
        ("Syllabus overview", "Key concepts", "Practice questions", "Full past paper"),
    ),
    (
        ("run", "marathon", "fitness", "health", "weight", "sleep"),
        ("Baseline routine", "Endurance", "Recovery habits", "Target session"),
    ),
]
_DEFAULT_THEME = ("Fundamentals", "Guided practice", "Applied practice", "Capstone")

_MODALITY_PATTERNS: Dict[str, QuestPattern] = {
    "read": QuestPattern.READ_NOTE_Q,
    "video": QuestPattern.FEYNMAN,
    "audio": QuestPattern.SHADOWING,
    "dialog": QuestPattern.SOCRATIC,
    "mimesis": QuestPattern.BUILD_MICRO,
}
_DELIVERABLES: Dict[QuestPattern, str] = {
    QuestPattern.READ_NOTE_Q: "One-page note with three self-check questions",
    QuestPattern.FEYNMAN: "Plain-language explanation of the topic",
    QuestPattern.SHADOWING: "Recording of one shadowed passage",
    QuestPattern.SOCRATIC: "List of questions answered in your own words",
    QuestPattern.BUILD_MICRO: "A small working artefact",
    QuestPattern.PAST_PAPER: "Scored practice set",
    QuestPattern.RETROSPECTIVE: "Short reflection on what worked",
}


def _theme_for(goal_text: str) -> Tuple[str, str, str, str]:
    normalized = goal_text.lower()
    for keywords, theme in _SKILL_THEMES:
        if any(keyword in normalized for keyword in keywords):
            return theme
    return _DEFAULT_THEME


class TemplateContentGenerator:
    """Deterministic offline generator driven by keyword heuristics."""

    async def generate_skill_map(
        self,
        goal_text: str,
        level_tags: Sequence[str],
        priority_areas: Sequence[str],
    ) -> List[SkillAtom]:
        foundation, branch_a, branch_b, capstone = _theme_for(goal_text)
        tags = [area for area in priority_areas if area] or ["general"]
        # Learners who already report a level skip the foundation hours.
        foundation_hours = 4.0 if level_tags else 8.0
        return [
            SkillAtom(id="atom_foundation", name=foundation, level=0, estimated_hours=foundation_hours, tags=tags),
            SkillAtom(
                id="atom_branch_a",
                name=branch_a,
                level=1,
                dependencies=["atom_foundation"],
                estimated_hours=12,
                tags=tags,
            ),
            SkillAtom(
                id="atom_branch_b",
                name=branch_b,
                level=1,
                dependencies=["atom_foundation"],
                estimated_hours=12,
                tags=tags,
            ),
            SkillAtom(
                id="atom_capstone",
                name=capstone,
                level=2,
                dependencies=["atom_branch_a", "atom_branch_b"],
                estimated_hours=20,
                tags=tags,
            ),
        ]

    async def generate_quests(
        self,
        preference_profile: PreferenceProfile,
        skill_atoms: Sequence[SkillAtom],
    ) -> List[Quest]:
        by_id = {atom.id: atom for atom in skill_atoms}
        order = topological_order(skill_atoms)
        modality = preference_profile.modality_preference[0] if preference_profile.modality_preference else "read"
        base_pattern = _MODALITY_PATTERNS.get(modality, QuestPattern.READ_NOTE_Q)
        minutes = max(10, min(preference_profile.preferred_session_length_min, preference_profile.time_budget_min_per_day))
        tolerance = preference_profile.difficulty_tolerance

        quests: List[Quest] = []
        for atom_id in order:
            atom = by_id[atom_id]
            pattern = QuestPattern.PAST_PAPER if atom.level >= 2 and "exam" in atom.name.lower() else base_pattern
            difficulty = min(1.0, round(0.2 + 0.15 * atom.level + 0.2 * tolerance, 2))
            quests.append(
                Quest(
                    title=f"{atom.name}: focused session",
                    description=f"Work on {atom.name.lower()} for one session.",
                    deliverable=_DELIVERABLES.get(pattern, "Session notes"),
                    minutes=minutes,
                    difficulty=difficulty,
                    pattern=pattern,
                    skill_atom_ids=[atom.id],
                    tags=list(atom.tags),
                )
            )
        quests.append(
            Quest(
                title="Weekly retrospective",
                description="Review the sessions you completed and adjust next week's plan.",
                deliverable=_DELIVERABLES[QuestPattern.RETROSPECTIVE],
                minutes=min(minutes, 15),
                difficulty=0.1,
                pattern=QuestPattern.RETROSPECTIVE,
                skill_atom_ids=[],
                tags=["reflection"],
            )
        )
        logger.debug("Template generator produced %d quests", len(quests))
        return quests


__all__ = [
    "ContentGenerator",
    "FALLBACK_QUEST_DIFFICULTY",
    "FALLBACK_QUEST_MINUTES",
    "TemplateContentGenerator",
    "static_fallback_quest",
    "static_skill_map",
]
