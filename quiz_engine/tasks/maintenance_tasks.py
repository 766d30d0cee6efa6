# ============================================================================
# Maintenance Tasks
# ============================================================================
from celery import shared_task
import asyncio
import logging

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@shared_task(name="quiz_engine.tasks.maintenance_tasks.reconcile_stale_sessions")
def reconcile_stale_sessions():
    """Abandon quiz sessions left active past the inactivity bound"""
    async def _reconcile():
        from quiz_engine.core.database import async_session_maker
        from quiz_engine.services.quiz import maintenance

        async with async_session_maker() as db:
            return await maintenance.reconcile_stale_sessions(db)

    count = run_async(_reconcile())
    logger.info(f"Stale session sweep finished: {count} abandoned")
    return count


@shared_task(name="quiz_engine.tasks.maintenance_tasks.expire_challenges")
def expire_challenges():
    """Mark overdue pending challenges as expired"""
    async def _expire():
        from quiz_engine.core.database import async_session_maker
        from quiz_engine.services.quiz import maintenance

        async with async_session_maker() as db:
            return await maintenance.expire_challenges(db)

    count = run_async(_expire())
    logger.info(f"Challenge expiry sweep finished: {count} expired")
    return count
