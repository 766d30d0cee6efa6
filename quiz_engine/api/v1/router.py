# ============================================================================
# Main API Router
# ============================================================================
from fastapi import APIRouter

from quiz_engine.api.v1 import quiz, challenges, performance

api_router = APIRouter()

api_router.include_router(quiz.router)
api_router.include_router(challenges.router)
api_router.include_router(performance.router)
