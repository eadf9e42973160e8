"""Celery app and task registration."""

from celery import Celery

from folio.config import settings

celery_app = Celery(
    "folio",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        # Quote cache TTL is 15 min by default; refreshing on the same cadence
        # keeps current_price roughly as fresh as the cache allows.
        "refresh-prices": {
            "task": "folio.tasks.price_tasks.refresh_all_prices",
            "schedule": settings.price_refresh_interval_minutes * 60.0,
        },
    },
)

# Import tasks so Celery discovers them
from folio.tasks import price_tasks  # noqa: F401, E402
