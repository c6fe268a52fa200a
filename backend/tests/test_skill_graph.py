from __future__ import annotations

import asyncio

import pytest

from climb_sync.content_generator import TemplateContentGenerator, static_fallback_quest, static_skill_map
from climb_sync.errors import GenerationError
from climb_sync.skill_graph import (
    dangling_dependencies,
    prune_quest_skill_refs,
    topological_order,
    validate_skill_map,
)
from climb_sync.user_profile import PreferenceProfile, Quest, QuestPattern, SkillAtom


def _atom(atom_id: str, *deps: str) -> SkillAtom:
    return SkillAtom(id=atom_id, name=atom_id.title(), dependencies=list(deps))


def test_diamond_orders_dependencies_first() -> None:
    atoms = [_atom("top", "left", "right"), _atom("left", "base"), _atom("right", "base"), _atom("base")]

    order = topological_order(atoms)

    assert order[0] == "base"
    assert order[-1] == "top"
    assert set(order) == {"base", "left", "right", "top"}


@pytest.mark.parametrize(
    "atoms",
    [
        [_atom("a", "b"), _atom("b", "a")],
        [_atom("a", "a")],
        [_atom("a", "missing")],
        [_atom("a"), _atom("a")],
        [],
    ],
)
def test_invalid_maps_raise_generation_error(atoms) -> None:
    with pytest.raises(GenerationError) as excinfo:
        validate_skill_map(atoms)
    assert excinfo.value.stage == "skill_map"


def test_dangling_dependencies_are_listed() -> None:
    assert dangling_dependencies([_atom("a", "x"), _atom("b", "a", "y")]) == ["x", "y"]


def test_prune_drops_unknown_skill_ids() -> None:
    quest = Quest(title="Drill", minutes=20, skill_atom_ids=["a", "ghost"])

    pruned = prune_quest_skill_refs([quest], [_atom("a")])

    assert pruned[0].skill_atom_ids == ["a"]
    assert quest.skill_atom_ids == ["a", "ghost"]


def test_static_substitutes_are_valid() -> None:
    atoms = static_skill_map("career")
    assert validate_skill_map(atoms) == atoms
    assert all(atom.tags == ["career"] for atom in atoms)

    quest = static_fallback_quest("Get promoted")
    assert quest.pattern is QuestPattern.RESEARCH
    assert quest.minutes == 25
    assert "Get promoted" in quest.title


def test_template_generator_follows_skill_order_and_budget() -> None:
    generator = TemplateContentGenerator()
    preferences = PreferenceProfile(
        time_budget_min_per_day=15,
        preferred_session_length_min=40,
        modality_preference=["audio"],
        priority_areas=["learning"],
    )

    async def scenario():
        atoms = await generator.generate_skill_map("Pass the IELTS exam", [], ["learning"])
        quests = await generator.generate_quests(preferences, atoms)
        return atoms, quests

    atoms, quests = asyncio.run(scenario())

    assert validate_skill_map(atoms) == atoms
    assert len(quests) == len(atoms) + 1
    assert quests[0].skill_atom_ids == ["atom_foundation"]
    assert quests[0].pattern is QuestPattern.SHADOWING
    assert quests[3].pattern is QuestPattern.PAST_PAPER
    assert quests[-1].pattern is QuestPattern.RETROSPECTIVE
    assert {quest.minutes for quest in quests[:-1]} == {15}
    assert all(0.0 <= quest.difficulty <= 1.0 for quest in quests)
