# ============================================================================
# Challenge Endpoints
# ============================================================================
from fastapi import APIRouter, Depends, Query
from typing import List
from uuid import UUID

from quiz_engine.api.deps import get_challenge_builder
from quiz_engine.schemas.challenge import (
    CreateChallengeRequest,
    CreateChallengeResponse,
    ChallengeResponse,
    DismissChallengeRequest,
    EstimateDurationRequest,
    EstimateDurationResponse,
)
from quiz_engine.services.quiz.challenge_builder import ChallengeBuilder

router = APIRouter(prefix="/challenges", tags=["challenges"])


@router.post("", response_model=CreateChallengeResponse, status_code=201)
async def create_challenge(
    request: CreateChallengeRequest,
    builder: ChallengeBuilder = Depends(get_challenge_builder)
):
    """Assign a challenge to a student, or self-assign one"""
    challenge = await builder.build(
        assigned_by=request.assigned_by,
        assigned_to=request.assigned_to,
        challenge_type=request.challenge_type.value,
        scope=request.scope,
        question_count=request.question_count,
        focus_area=request.focus_area.value,
        expires_at=request.expires_at,
        title=request.title,
    )
    return CreateChallengeResponse(
        challenge_id=challenge.id,
        focus_area=challenge.focus_area,
        focus_fallback=challenge.focus_fallback,
        question_count=challenge.question_count,
        estimated_minutes=challenge.estimated_minutes,
        allocation=challenge.allocation or [],
        expires_at=challenge.expires_at,
    )


@router.post("/estimate", response_model=EstimateDurationResponse)
async def estimate_challenge_duration(
    request: EstimateDurationRequest,
    builder: ChallengeBuilder = Depends(get_challenge_builder)
):
    """Minutes a challenge over this scope is expected to take"""
    minutes = await builder.estimate_duration(request.scope, request.question_count)
    return EstimateDurationResponse(question_count=request.question_count, estimated_minutes=minutes)


@router.get("/pending", response_model=List[ChallengeResponse])
async def pending_challenges(
    student_id: UUID = Query(...),
    builder: ChallengeBuilder = Depends(get_challenge_builder)
):
    challenges = await builder.list_pending(student_id)
    return [ChallengeResponse.model_validate(c) for c in challenges]


@router.post("/{challenge_id}/dismiss", response_model=ChallengeResponse)
async def dismiss_challenge(
    challenge_id: UUID,
    request: DismissChallengeRequest,
    builder: ChallengeBuilder = Depends(get_challenge_builder)
):
    challenge = await builder.dismiss(challenge_id, request.student_id)
    return ChallengeResponse.model_validate(challenge)
