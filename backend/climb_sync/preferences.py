"""Pure derivation of the preference profile from onboarding answers."""

from __future__ import annotations

from typing import Any, List

from .user_profile import Modality, OnboardingAnswers, PreferenceProfile

DEFAULT_PEAK_HOURS = [9, 14, 19]
_MOTIVATION_STYLES = {"push", "pull", "social"}
_SPRINT_DEADLINES = {"1w", "2w", "1m"}


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


def _peak_hours(answers: OnboardingAnswers) -> List[int]:
    raw = answers.profile_answers.get("peak_hours")
    if isinstance(raw, (list, tuple)):
        hours = sorted({int(hour) for hour in raw if isinstance(hour, int) and 0 <= hour <= 23})
        if hours:
            return hours[:8]
    return list(DEFAULT_PEAK_HOURS)


def _modalities(answers: OnboardingAnswers) -> List[Modality]:
    avoided = set(answers.avoid_modality)
    preferred = [modality for modality in answers.modality_preference if modality not in avoided]
    return list(dict.fromkeys(preferred)) or ["read"]


def derive_preferences(answers: OnboardingAnswers) -> PreferenceProfile:
    """Deterministic, side-effect free. Recomputed on every integration."""
    motivation = answers.profile_answers.get("motivation_style")
    if motivation not in _MOTIVATION_STYLES:
        motivation = "push"
    pace = "sprint" if answers.goal_deadline in _SPRINT_DEADLINES or answers.goal_importance == 5 else "cadence"
    # Importance 1..5 nudges tolerance around the 0.7 baseline.
    difficulty_tolerance = round(min(1.0, max(0.0, 0.7 + 0.05 * (answers.goal_importance - 3))), 2)

    return PreferenceProfile(
        time_budget_min_per_day=answers.time_budget_min_per_day,
        peak_hours=_peak_hours(answers),
        env_constraints=list(answers.env_constraints),
        hard_constraints=[f"avoid:{modality}" for modality in answers.avoid_modality],
        motivation_style=motivation,
        difficulty_tolerance=difficulty_tolerance,
        novelty_preference=0.6,
        pace_preference=pace,
        long_term_goal=answers.goal_text,
        milestone_granularity=0.5,
        current_level_tags=_as_list(answers.profile_answers.get("current_level")),
        priority_areas=[answers.goal_category],
        heat_level=answers.goal_importance,
        risk_factors=_as_list(answers.profile_answers.get("risk_factors")),
        preferred_session_length_min=answers.preferred_session_length_min,
        modality_preference=_modalities(answers),
        deliverable_preferences=["note"],
        weekly_minimum_commitment_min=answers.time_budget_min_per_day * 7,
    )


__all__ = ["DEFAULT_PEAK_HOURS", "derive_preferences"]
