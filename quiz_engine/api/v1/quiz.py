# ============================================================================
# Quiz Session Endpoints
# ============================================================================
from fastapi import APIRouter, Depends, Query
from typing import List
from uuid import UUID

from quiz_engine.api.deps import get_session_manager
from quiz_engine.schemas.quiz import (
    StartQuizRequest,
    StartQuizResponse,
    SubmitAnswerRequest,
    AnswerResponse,
    SessionActionRequest,
    NextQuestionResponse,
    QuizSummaryResponse,
    QuestionPayload,
    SessionReviewResponse,
    AnswerRecordResponse,
    SessionHistoryItem,
)
from quiz_engine.services.quiz.session_manager import QuizSessionManager, QuizSummary

router = APIRouter(prefix="/quiz", tags=["quiz"])


def _summary_response(summary: QuizSummary) -> QuizSummaryResponse:
    return QuizSummaryResponse(
        session_id=summary.session_id,
        score_percentage=summary.score_percentage,
        correct_answers=summary.correct_answers,
        wrong_answers=summary.wrong_answers,
        total_points=summary.total_points,
        time_taken=summary.time_taken,
        answered_questions=summary.answered_questions,
        total_questions=summary.total_questions,
        ended_early=summary.ended_early,
    )


@router.post("/start", response_model=StartQuizResponse)
async def start_quiz(
    request: StartQuizRequest,
    manager: QuizSessionManager = Depends(get_session_manager)
):
    """Start a quiz on a module, or consume a pending challenge"""
    started = await manager.start_quiz(
        student_id=request.student_id,
        module_id=request.module_id,
        challenge_id=request.challenge_id,
        question_count=request.question_count,
        focus_area=request.focus_area.value if request.focus_area else None,
    )
    return StartQuizResponse(
        session_id=started.session.id,
        question=QuestionPayload.model_validate(started.question),
        current_question_number=started.current_question_number,
        total_questions=started.total_questions,
        focus_area=started.session.focus_area,
    )


@router.post("/sessions/{session_id}/answer", response_model=AnswerResponse)
async def submit_answer(
    session_id: UUID,
    request: SubmitAnswerRequest,
    manager: QuizSessionManager = Depends(get_session_manager)
):
    """Submit (or time out) the current question; safe to retry"""
    outcome = await manager.submit_answer(
        session_id=session_id,
        question_id=request.question_id,
        answer=request.answer,
        time_spent=request.time_spent,
        student_id=request.student_id,
    )
    return AnswerResponse(
        is_correct=outcome.record.is_correct,
        correct_answer=outcome.correct_answer,
        points_earned=outcome.record.points_earned,
        explanation=outcome.explanation,
        duplicate=outcome.duplicate,
    )


@router.post("/sessions/{session_id}/next", response_model=NextQuestionResponse)
async def next_question(
    session_id: UUID,
    request: SessionActionRequest,
    manager: QuizSessionManager = Depends(get_session_manager)
):
    step = await manager.get_next_question(session_id, student_id=request.student_id)
    if step.completed:
        return NextQuestionResponse(
            completed=True,
            total_questions=step.total_questions,
            summary=_summary_response(step.summary),
        )
    return NextQuestionResponse(
        completed=False,
        question=QuestionPayload.model_validate(step.question),
        current_question_number=step.current_question_number,
        total_questions=step.total_questions,
    )


@router.post("/sessions/{session_id}/complete", response_model=QuizSummaryResponse)
async def complete_quiz(
    session_id: UUID,
    request: SessionActionRequest,
    manager: QuizSessionManager = Depends(get_session_manager)
):
    """Finish the quiz; repeated calls return the same summary"""
    summary = await manager.complete_quiz(session_id, student_id=request.student_id)
    return _summary_response(summary)


@router.post("/sessions/{session_id}/abandon")
async def abandon_quiz(
    session_id: UUID,
    request: SessionActionRequest,
    manager: QuizSessionManager = Depends(get_session_manager)
):
    session = await manager.abandon_session(session_id, student_id=request.student_id)
    return {"session_id": str(session.id), "status": session.status}


@router.get("/sessions/{session_id}", response_model=SessionReviewResponse)
async def review_session(
    session_id: UUID,
    student_id: UUID = Query(...),
    manager: QuizSessionManager = Depends(get_session_manager)
):
    """Answer-by-answer review of a session"""
    review = await manager.get_session_review(session_id, student_id=student_id)
    session = review.session
    return SessionReviewResponse(
        session_id=session.id,
        student_id=session.student_id,
        status=session.status,
        focus_area=session.focus_area,
        started_at=session.started_at,
        completed_at=session.completed_at,
        total_questions=session.total_questions,
        score_percentage=float(session.score_percentage) if session.score_percentage is not None else None,
        total_points=session.total_points or 0,
        answers=[AnswerRecordResponse.model_validate(r) for r in review.records],
    )


@router.get("/history", response_model=List[SessionHistoryItem])
async def session_history(
    student_id: UUID = Query(...),
    limit: int = Query(20, ge=1, le=100),
    manager: QuizSessionManager = Depends(get_session_manager)
):
    sessions = await manager.get_session_history(student_id, limit=limit)
    return [
        SessionHistoryItem(
            session_id=s.id,
            status=s.status,
            started_at=s.started_at,
            completed_at=s.completed_at,
            total_questions=s.total_questions,
            correct_answers=s.correct_count or 0,
            score_percentage=float(s.score_percentage) if s.score_percentage is not None else None,
            challenge_id=s.challenge_id,
        )
        for s in sessions
    ]
