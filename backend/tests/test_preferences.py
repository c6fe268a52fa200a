from __future__ import annotations

import pytest

from climb_sync.preferences import DEFAULT_PEAK_HOURS, derive_preferences
from climb_sync.user_profile import OnboardingAnswers


def _answers(**overrides) -> OnboardingAnswers:
    fields = {"goal_text": "Learn to draw portraits", "time_budget_min_per_day": 30}
    fields.update(overrides)
    return OnboardingAnswers(**fields)


def test_defaults_for_minimal_answers() -> None:
    preferences = derive_preferences(_answers())

    assert preferences.time_budget_min_per_day == 30
    assert preferences.peak_hours == DEFAULT_PEAK_HOURS
    assert preferences.motivation_style == "push"
    assert preferences.pace_preference == "cadence"
    assert preferences.difficulty_tolerance == 0.7
    assert preferences.modality_preference == ["read"]
    assert preferences.priority_areas == ["learning"]
    assert preferences.weekly_minimum_commitment_min == 210
    assert preferences.long_term_goal == "Learn to draw portraits"


@pytest.mark.parametrize(
    ("deadline", "importance", "pace"),
    [("1w", 3, "sprint"), ("1m", 1, "sprint"), ("6m", 5, "sprint"), ("6m", 4, "cadence")],
)
def test_pace_follows_deadline_and_importance(deadline, importance, pace) -> None:
    preferences = derive_preferences(_answers(goal_deadline=deadline, goal_importance=importance))
    assert preferences.pace_preference == pace


def test_importance_shifts_tolerance() -> None:
    assert derive_preferences(_answers(goal_importance=1)).difficulty_tolerance == 0.6
    assert derive_preferences(_answers(goal_importance=5)).difficulty_tolerance == 0.8


def test_avoided_modalities_become_hard_constraints() -> None:
    preferences = derive_preferences(
        _answers(modality_preference=["video", "read", "video"], avoid_modality=["video"])
    )

    assert preferences.modality_preference == ["read"]
    assert preferences.hard_constraints == ["avoid:video"]


def test_profile_answers_feed_level_tags_and_peaks() -> None:
    preferences = derive_preferences(
        _answers(
            profile_answers={
                "current_level": "beginner",
                "peak_hours": [21, 7, 7, 30],
                "motivation_style": "social",
                "risk_factors": ["night shifts", ""],
            }
        )
    )

    assert preferences.current_level_tags == ["beginner"]
    assert preferences.peak_hours == [7, 21]
    assert preferences.motivation_style == "social"
    assert preferences.risk_factors == ["night shifts"]


def test_derivation_is_deterministic() -> None:
    answers = _answers(goal_importance=4, env_constraints=["commute"])
    assert derive_preferences(answers) == derive_preferences(answers)


def test_blank_goal_is_rejected() -> None:
    with pytest.raises(ValueError):
        _answers(goal_text="   ")
