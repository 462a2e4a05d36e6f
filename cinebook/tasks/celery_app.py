"""
Celery application used to hand bookings to the Fulfillment Service.

The fulfillment worker lives outside this package; the engine only publishes
to its queue by task name.
"""

from celery import Celery

from ..config import Settings, get_settings


def create_celery_app(settings: Settings) -> Celery:
    """Create a producer-side Celery app for the configured broker."""
    app = Celery(
        "cinebook",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
    )

    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_routes={
            settings.fulfillment_task_name: {"queue": settings.fulfillment_queue},
        },
        task_ignore_result=True,
        broker_connection_retry_on_startup=True,
    )
    return app


celery_app = create_celery_app(get_settings())
