# ============================================================================
# Topic Performance Endpoints
# ============================================================================
from fastapi import APIRouter, Depends, Query
from typing import Optional
from uuid import UUID

from quiz_engine.api.deps import get_tracker
from quiz_engine.schemas.challenge import PerformanceSummaryResponse
from quiz_engine.services.quiz.performance_tracker import TopicPerformanceTracker

router = APIRouter(prefix="/performance", tags=["performance"])


@router.get("/{student_id}", response_model=PerformanceSummaryResponse)
async def performance_summary(
    student_id: UUID,
    subject: Optional[str] = Query(None),
    tracker: TopicPerformanceTracker = Depends(get_tracker)
):
    """Topics grouped into strong / neutral / weak for the challenge creator"""
    summary = await tracker.get_performance_summary(student_id, subject=subject)
    return PerformanceSummaryResponse(student_id=student_id, subject=subject, **summary)
