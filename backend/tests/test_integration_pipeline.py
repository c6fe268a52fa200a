"""End-to-end behaviour of onboarding integration under healthy and failing collaborators."""

from __future__ import annotations

import asyncio

import pytest

from climb_sync.cache.profile_cache import load_cached_profile
from climb_sync.documents import USERS_COLLECTION, goals_path, progress_path, quests_path, responses_path
from climb_sync.errors import ConnectivityError, GenerationError, StorePermissionError
from climb_sync.integration import ProfileIntegrationPipeline
from climb_sync.service import ProfileSyncService
from climb_sync.user_profile import IntegratedUserProfile, OnboardingAnswers, QuestPattern, SkillAtom


class _BrokenIdentity:
    state = "unauthenticated"

    async def resolve_user_id(self) -> str:
        raise ConnectivityError("auth backend offline")


def _assert_consistent(profile: IntegratedUserProfile) -> None:
    IntegratedUserProfile.model_validate(profile.model_dump())
    atom_ids = {atom.id for atom in profile.skill_atoms}
    for atom in profile.skill_atoms:
        assert set(atom.dependencies) <= atom_ids
    quest_ids = {quest.quest_id for quest in profile.quests}
    assert all(quest.quest_id for quest in profile.quests)
    assert {entry.quest_id for entry in profile.progress.todays_quests} <= quest_ids


def test_toeic_goal_produces_complete_profile(make_context, remote, events) -> None:
    answers = OnboardingAnswers(goal_text="Pass TOEIC with 800 points in 3 months", time_budget_min_per_day=45)
    pipeline = ProfileIntegrationPipeline(make_context())

    report = asyncio.run(pipeline.integrate_with_report(answers))
    profile = report.profile

    assert report.fully_succeeded
    assert profile.preference_profile.time_budget_min_per_day == 45
    assert 0 < len(profile.progress.todays_quests) <= 3
    assert profile.skill_atoms
    assert [atom.name for atom in profile.skill_atoms][-1] == "Timed mock exam"
    assert profile.revision == 1
    assert profile.goal_id and profile.goal_id.startswith("goal_")
    _assert_consistent(profile)
    assert remote.documents(USERS_COLLECTION)[profile.user_id]["currentGoalId"] == profile.goal_id
    assert any(event.name == "integration_completed" for event in events)


def test_quest_generation_failure_yields_single_research_quest(make_context, generator, answers, events) -> None:
    generator.quest_error = GenerationError("model timed out")
    pipeline = ProfileIntegrationPipeline(make_context())

    report = asyncio.run(pipeline.integrate_with_report(answers))

    assert len(report.profile.quests) == 1
    quest = report.profile.quests[0]
    assert quest.pattern is QuestPattern.RESEARCH
    assert quest.tags == ["foundation"]
    assert not report.used_fallback_builder
    assert report.degraded_stages == ["quests"]
    assert report.profile.degraded_stages == ["quests"]
    assert [event.payload["stage"] for event in events if event.name == "integration_stage_degraded"] == ["quests"]


def test_invalid_skill_map_is_replaced_with_static_map(make_context, generator, answers) -> None:
    generator.skill_map = [
        SkillAtom(id="a", name="A", dependencies=["b"]),
        SkillAtom(id="b", name="B", dependencies=["a"]),
    ]
    report = asyncio.run(ProfileIntegrationPipeline(make_context()).integrate_with_report(answers))

    assert [atom.id for atom in report.profile.skill_atoms] == ["skill_foundation", "skill_intermediate"]
    assert "skill_map" in report.degraded_stages
    _assert_consistent(report.profile)


def test_total_availability_when_store_and_generator_fail(make_context, remote, generator, answers) -> None:
    remote.fail_with(ConnectivityError("offline"))
    generator.skill_error = GenerationError("skill map unavailable")
    generator.quest_error = GenerationError("quests unavailable")
    context = make_context()

    profile = asyncio.run(ProfileIntegrationPipeline(context).integrate(answers))

    assert profile is not None
    assert profile.goal_text == answers.goal_text
    assert len(profile.quests) == 1
    _assert_consistent(profile)
    # The documents landed in the local mirror instead.
    assert context.local.collection_paths(f"{USERS_COLLECTION}/{profile.user_id}")


def test_unexpected_error_hands_over_to_fallback_builder(make_context, answers, monkeypatch, events) -> None:
    def explode(**_kwargs):
        raise RuntimeError("normalizer bug")

    monkeypatch.setattr("climb_sync.integration.build_record", explode)
    context = make_context()

    report = asyncio.run(ProfileIntegrationPipeline(context).integrate_with_report(answers))

    assert report.used_fallback_builder
    assert "pipeline" in report.degraded_stages
    assert report.profile.degraded_stages == ["fallback"]
    assert report.profile.app_settings.ai_assistance_enabled is False
    assert report.profile.user_id.startswith("user_")
    _assert_consistent(report.profile)
    assert load_cached_profile(context.cache).user_id == report.profile.user_id
    assert any(event.name == "fallback_profile_built" for event in events)


def test_identity_failure_uses_synthetic_fallback_id(make_context, answers) -> None:
    context = make_context(identity=_BrokenIdentity())

    report = asyncio.run(ProfileIntegrationPipeline(context).integrate_with_report(answers))

    assert report.used_fallback_builder
    assert "identify" in report.degraded_stages
    assert report.profile.user_id.startswith("fallback_")
    assert report.profile.revision == 1


def test_fallback_is_idempotent_with_failing_store(make_context, remote, answers, monkeypatch) -> None:
    def reject(**_kwargs):
        raise ValueError("record rejected")

    remote.fail_with(StorePermissionError("denied"))
    monkeypatch.setattr("climb_sync.integration.build_record", reject)
    pipeline = ProfileIntegrationPipeline(make_context())

    first = asyncio.run(pipeline.integrate(answers))
    second = asyncio.run(pipeline.integrate(answers))

    for profile in (first, second):
        _assert_consistent(profile)
        assert len(profile.quests) == 1
        assert profile.progress.todays_progress.total == 1
    assert first.user_id == second.user_id
    assert second.revision == first.revision + 1


def test_persisted_documents_link_to_goal(make_context, remote, answers) -> None:
    profile = asyncio.run(ProfileIntegrationPipeline(make_context()).integrate(answers))
    user_id = profile.user_id

    goals = remote.documents(goals_path(user_id))
    assert list(goals) == [profile.goal_id]
    for path in (quests_path(user_id), progress_path(user_id), responses_path(user_id)):
        documents = remote.documents(path)
        assert documents
        assert {doc["goalId"] for doc in documents.values()} == {profile.goal_id}
    assert len(remote.documents(responses_path(user_id))) == len(answers.profile_answers)
    assert set(remote.documents(quests_path(user_id))) == {quest.quest_id for quest in profile.quests}


def test_restricted_mode_never_touches_remote_store(make_context, remote, answers) -> None:
    service = ProfileSyncService(make_context(mode="restricted"))

    profile = asyncio.run(service.integrate(answers))
    loaded = asyncio.run(service.load_profile())

    assert remote.total_calls == 0
    assert loaded is not None
    assert loaded.user_id == profile.user_id


@pytest.mark.parametrize("mode", ["full", "restricted"])
def test_load_after_integrate_returns_same_goal(make_context, answers, mode) -> None:
    service = ProfileSyncService(make_context(mode=mode))

    profile = asyncio.run(service.integrate(answers))
    loaded = asyncio.run(service.load_profile())

    assert loaded is not None
    assert loaded.user_id == profile.user_id
    assert loaded.goal_text == answers.goal_text
    assert loaded.revision == profile.revision


def test_reintegration_archives_previous_goal_and_bumps_revision(make_context, remote, answers, clock) -> None:
    pipeline = ProfileIntegrationPipeline(make_context())

    first = asyncio.run(pipeline.integrate(answers))
    clock.advance(minutes=5)
    second = asyncio.run(pipeline.integrate(answers.model_copy(update={"goal_text": "Run a half marathon"})))

    goals = remote.documents(goals_path(first.user_id))
    assert goals[first.goal_id]["status"] == "archived"
    assert goals[second.goal_id]["status"] == "active"
    assert second.revision == first.revision + 1
    assert remote.documents(USERS_COLLECTION)[first.user_id]["revision"] == second.revision


def test_goals_known_only_locally_do_not_block_persisting(make_context, remote, answers, clock) -> None:
    pipeline = ProfileIntegrationPipeline(make_context())
    remote.fail_with(ConnectivityError("offline"))
    first = asyncio.run(pipeline.integrate(answers))
    remote.fail_with(ConnectivityError("index missing"), "query")
    clock.advance(minutes=5)

    report = asyncio.run(pipeline.integrate_with_report(answers))

    assert "persist" not in report.degraded_stages
    second = report.profile
    assert second.goal_id != first.goal_id
    assert remote.documents(goals_path(second.user_id))[second.goal_id]["status"] == "active"
    assert remote.documents(USERS_COLLECTION)[second.user_id]["currentGoalId"] == second.goal_id
    assert set(remote.documents(quests_path(second.user_id))) == {quest.quest_id for quest in second.quests}


def test_cache_write_failure_degrades_cache_stage(make_context, answers, monkeypatch) -> None:
    def broken_save(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("climb_sync.integration.save_cached_profile", broken_save)
    report = asyncio.run(ProfileIntegrationPipeline(make_context()).integrate_with_report(answers))

    assert not report.used_fallback_builder
    assert report.degraded_stages == ["cache"]
