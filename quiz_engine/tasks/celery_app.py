# ============================================================================
# Celery Application Configuration
# ============================================================================
from celery import Celery
from celery.schedules import crontab
from quiz_engine.config import get_settings

settings = get_settings()

celery_app = Celery(
    "quiz_engine",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "quiz_engine.tasks.maintenance_tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    # Idle Active sessions -> abandoned (hourly)
    "reconcile-stale-sessions": {
        "task": "quiz_engine.tasks.maintenance_tasks.reconcile_stale_sessions",
        "schedule": crontab(minute=15),
    },

    # Overdue pending challenges -> expired (every 30 minutes)
    "expire-challenges": {
        "task": "quiz_engine.tasks.maintenance_tasks.expire_challenges",
        "schedule": crontab(minute="*/30"),
    },
}
