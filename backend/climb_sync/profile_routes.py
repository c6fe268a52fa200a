"""Profile REST endpoints backed by the sync engine."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from .service import ProfileSyncService
from .user_profile import IntegratedUserProfile, OnboardingAnswers

router = APIRouter(prefix="/api/profile", tags=["profile"])
logger = logging.getLogger(__name__)


class OnboardingResult(BaseModel):
    profile: IntegratedUserProfile
    degraded_stages: List[str] = Field(default_factory=list)
    used_fallback: bool = False


class QuestCompletionRequest(BaseModel):
    time_spent_min: Optional[int] = Field(default=None, ge=0)


class ResetResult(BaseModel):
    status: str
    failed_paths: List[str] = Field(default_factory=list)


def get_service(request: Request) -> ProfileSyncService:
    return request.app.state.service


@router.post("/onboarding", response_model=OnboardingResult, status_code=status.HTTP_201_CREATED)
async def complete_onboarding(
    answers: OnboardingAnswers,
    service: ProfileSyncService = Depends(get_service),
) -> OnboardingResult:
    report = await service.integrate_with_report(answers)
    return OnboardingResult(
        profile=report.profile,
        degraded_stages=report.degraded_stages,
        used_fallback=report.used_fallback_builder,
    )


@router.get("", response_model=IntegratedUserProfile, status_code=status.HTTP_200_OK)
async def get_profile(service: ProfileSyncService = Depends(get_service)) -> IntegratedUserProfile:
    profile = await service.load_profile()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No profile found; complete onboarding first.",
        )
    return profile


@router.post(
    "/quests/{quest_id}/complete",
    response_model=IntegratedUserProfile,
    status_code=status.HTTP_200_OK,
)
async def complete_quest(
    quest_id: str,
    payload: Optional[QuestCompletionRequest] = None,
    service: ProfileSyncService = Depends(get_service),
) -> IntegratedUserProfile:
    try:
        return await service.complete_quest(
            quest_id,
            time_spent_min=payload.time_spent_min if payload else None,
        )
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.delete("", response_model=ResetResult, status_code=status.HTTP_200_OK)
async def reset_profile(service: ProfileSyncService = Depends(get_service)) -> ResetResult:
    failed = await service.reset_profile()
    if failed:
        logger.warning("Profile reset left %d collections behind: %s", len(failed), failed)
    return ResetResult(status="partial" if failed else "reset", failed_paths=failed)


__all__ = ["router"]
