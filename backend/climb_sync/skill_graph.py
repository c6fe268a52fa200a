"""Checks on generated skill maps: ids unique, dependencies resolved, no cycles."""

from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Sequence

from .errors import GenerationError
from .user_profile import Quest, SkillAtom


def topological_order(atoms: Sequence[SkillAtom]) -> List[str]:
    """Return atom ids ordered so that every dependency precedes its dependents.

    Raises ``GenerationError`` for duplicate ids, dangling dependencies or cycles.
    Diamonds are fine.
    """
    by_id: Dict[str, SkillAtom] = {}
    for atom in atoms:
        if atom.id in by_id:
            raise GenerationError(f"Duplicate skill atom id {atom.id!r}", stage="skill_map")
        by_id[atom.id] = atom

    indegree: Dict[str, int] = {atom_id: 0 for atom_id in by_id}
    dependents: Dict[str, List[str]] = {atom_id: [] for atom_id in by_id}
    for atom in atoms:
        for dependency in dict.fromkeys(atom.dependencies):
            if dependency not in by_id:
                raise GenerationError(
                    f"Skill atom {atom.id!r} depends on unknown atom {dependency!r}",
                    stage="skill_map",
                )
            indegree[atom.id] += 1
            dependents[dependency].append(atom.id)

    ready = deque(atom.id for atom in atoms if indegree[atom.id] == 0)
    ordered: List[str] = []
    while ready:
        current = ready.popleft()
        ordered.append(current)
        for child in dependents[current]:
            indegree[child] -= 1
            if indegree[child] == 0:
                ready.append(child)

    if len(ordered) != len(by_id):
        stuck = sorted(atom_id for atom_id, degree in indegree.items() if degree > 0)
        raise GenerationError(f"Skill map contains a dependency cycle through {stuck}", stage="skill_map")
    return ordered


def validate_skill_map(atoms: Sequence[SkillAtom]) -> List[SkillAtom]:
    if not atoms:
        raise GenerationError("Skill map is empty", stage="skill_map")
    topological_order(atoms)
    return list(atoms)


def dangling_dependencies(atoms: Iterable[SkillAtom]) -> List[str]:
    atoms = list(atoms)
    known = {atom.id for atom in atoms}
    return sorted({dep for atom in atoms for dep in atom.dependencies if dep not in known})


def prune_quest_skill_refs(quests: Sequence[Quest], atoms: Sequence[SkillAtom]) -> List[Quest]:
    """Drop skill ids that the quests reference but the skill map does not define."""
    known = {atom.id for atom in atoms}
    pruned: List[Quest] = []
    for quest in quests:
        kept = [atom_id for atom_id in quest.skill_atom_ids if atom_id in known]
        if len(kept) != len(quest.skill_atom_ids):
            quest = quest.model_copy(update={"skill_atom_ids": kept})
        pruned.append(quest)
    return pruned


__all__ = [
    "dangling_dependencies",
    "prune_quest_skill_refs",
    "topological_order",
    "validate_skill_map",
]
