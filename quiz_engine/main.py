# ============================================================================
# FastAPI Application Entry Point
# ============================================================================
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from quiz_engine.config import get_settings
from quiz_engine.core.exceptions import QuizEngineException

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown"""
    logger.info(f"Starting {settings.APP_NAME}...")

    # Register every table on Base.metadata before create_all
    import quiz_engine.models  # noqa: F401
    from quiz_engine.core.database import engine, Base

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    # Redis only backs the distributed lock registry
    if settings.SESSION_LOCK_BACKEND == "redis":
        from quiz_engine.core.redis import redis_client
        await redis_client.ping()
        logger.info("Redis connected for session locks")

    yield

    logger.info("Shutting down...")
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Adaptive quiz sessions, topic performance tracking and challenges",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuizEngineException)
async def quiz_engine_exception_handler(request: Request, exc: QuizEngineException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code}
    )


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.APP_NAME}


from quiz_engine.api.v1.router import api_router  # noqa: E402

app.include_router(api_router, prefix=settings.API_V1_PREFIX)
