"""Content generator backed by an OpenAI agent."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Sequence, cast

from agents import Agent, ModelSettings, RunConfig, Runner
from openai.types.shared.reasoning import Reasoning
from openai.types.shared.reasoning_effort import ReasoningEffort
from pydantic import BaseModel, Field, ValidationError

from .config import Settings
from .errors import GenerationError
from .user_profile import PreferenceProfile, Quest, QuestPattern, SkillAtom

logger = logging.getLogger(__name__)


SKILL_MAP_INSTRUCTIONS = (
    "You are the Climb skill mapper. Break the learner's goal into 3-8 skill atoms that form a dependency graph."
    " Dependencies must only reference atoms you return and must not form cycles. Output only JSON with key"
    " atoms: array of {id, name, level, dependencies, estimated_hours, tags}."
)

QUEST_INSTRUCTIONS = (
    "You are the Climb quest planner. Produce 3-6 concrete daily quests that fit the learner's time budget and"
    " preferred session length. Each quest must use one of the allowed patterns. Output only JSON with key"
    " quests: array of {title, description, deliverable, minutes, difficulty, pattern, skill_atom_ids, tags}."
)


class SkillMapPayload(BaseModel):
    atoms: List[SkillAtom] = Field(default_factory=list)


class QuestPayload(BaseModel):
    quests: List[Quest] = Field(default_factory=list)


def _effort(value: str) -> ReasoningEffort:
    allowed = {"minimal", "low", "medium", "high"}
    effort = value if value in allowed else "low"
    return cast(ReasoningEffort, effort)


def _coerce(payload: Any, model: type[BaseModel]) -> Any:
    if isinstance(payload, model):
        return payload
    if isinstance(payload, dict):
        return model.model_validate(payload)
    if isinstance(payload, BaseModel):
        return model.model_validate(payload.model_dump())
    if isinstance(payload, str):
        return model.model_validate(json.loads(payload))
    raise TypeError(f"Unsupported agent payload type: {type(payload).__name__}")


class AgentContentGenerator:
    """Runs one agent call per capability; any failure raises ``GenerationError``."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._agents: Dict[str, Agent[None]] = {}

    def _agent(self, name: str, instructions: str) -> Agent[None]:
        if name not in self._agents:
            self._agents[name] = Agent[None](
                name=name,
                instructions=instructions,
                model=self._settings.agent_model,
                tools=[],
                model_settings=ModelSettings(store=False),
            )
        return self._agents[name]

    def _run_config(self) -> RunConfig:
        return RunConfig(
            model_settings=ModelSettings(
                reasoning=Reasoning(effort=_effort(self._settings.agent_reasoning), summary="auto"),
            )
        )

    async def _run(self, stage: str, agent: Agent[None], message: str) -> Any:
        try:
            result = await Runner.run(agent, message, context=None, run_config=self._run_config())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Agent call for %s failed: %s", stage, exc)
            raise GenerationError(f"{stage} agent call failed: {exc}", stage=stage) from exc
        return result.final_output

    async def generate_skill_map(
        self,
        goal_text: str,
        level_tags: Sequence[str],
        priority_areas: Sequence[str],
    ) -> List[SkillAtom]:
        context = {
            "goal": goal_text,
            "current_level_tags": list(level_tags),
            "priority_areas": list(priority_areas),
        }
        message = f"LEARNER CONTEXT:\n{json.dumps(context, ensure_ascii=False, indent=2)}"
        output = await self._run("skill_map", self._agent("Climb Skill Mapper", SKILL_MAP_INSTRUCTIONS), message)
        try:
            payload = _coerce(output, SkillMapPayload)
        except (ValidationError, ValueError, TypeError) as exc:
            raise GenerationError(f"Skill map payload invalid: {exc}", stage="skill_map") from exc
        return list(payload.atoms)

    async def generate_quests(
        self,
        preference_profile: PreferenceProfile,
        skill_atoms: Sequence[SkillAtom],
    ) -> List[Quest]:
        context: Dict[str, Any] = {
            "profile": preference_profile.model_dump(mode="json"),
            "skill_atoms": [atom.model_dump(mode="json") for atom in skill_atoms],
            "allowed_patterns": [pattern.value for pattern in QuestPattern],
        }
        message = f"LEARNER CONTEXT:\n{json.dumps(context, ensure_ascii=False, indent=2)}"
        output = await self._run("quests", self._agent("Climb Quest Planner", QUEST_INSTRUCTIONS), message)
        try:
            payload = _coerce(output, QuestPayload)
        except (ValidationError, ValueError, TypeError) as exc:
            raise GenerationError(f"Quest payload invalid: {exc}", stage="quests") from exc
        return list(payload.quests)


__all__ = ["AgentContentGenerator"]
