"""
Publishing issued reservations to the Fulfillment Service.
"""

import logging
from typing import Optional, Protocol

from celery import Celery

from ..config import Settings, get_settings
from ..schemas.fulfillment import FulfillmentPayload

logger = logging.getLogger(__name__)


class FulfillmentPublisher(Protocol):
    """Receives a reservation once its tickets exist."""

    async def publish(self, payload: FulfillmentPayload) -> None: ...


class CeleryFulfillmentPublisher:
    """Sends fulfillment payloads to the fulfillment queue by task name."""

    def __init__(self, app: Optional[Celery] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        if app is None:
            from .celery_app import celery_app
            app = celery_app
        self.app = app

    async def publish(self, payload: FulfillmentPayload) -> None:
        """
        Queue the payload for rendering and delivery.

        Failures are logged and swallowed; tickets and payment are already
        committed and must not be undone by a broker outage.
        """
        try:
            self.app.send_task(
                self.settings.fulfillment_task_name,
                args=[payload.model_dump(mode="json")],
                queue=self.settings.fulfillment_queue,
            )
            logger.info(f"Fulfillment queued for reservation {payload.reservation_id}")
        except Exception as e:
            logger.warning(f"Failed to queue fulfillment for reservation {payload.reservation_id}: {e}")
