"""
Booking engine facade wiring every component to one database.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from redis.exceptions import RedisError

from .cache import RedisCache
from .config import Settings, get_settings
from .database import DatabaseManager
from .services.catalog_service import CatalogService
from .services.payment_service import PaymentGateway, PaymentService
from .services.pricing_engine import PricingEngine
from .services.promo_code_ledger import PromoCodeLedger
from .services.reservation_workflow import ReservationWorkflow
from .services.seat_inventory import SeatInventory
from .services.ticket_service import TicketService
from .tasks.fulfillment import CeleryFulfillmentPublisher, FulfillmentPublisher
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


class BookingEngine:
    """
    Entry point for the presentation tier.

    Usage:
        async with BookingEngine.open() as engine:
            started = await engine.workflow.start_for_user(user_id, screening_id)
    """

    def __init__(
        self,
        database: DatabaseManager,
        cache: Optional[RedisCache] = None,
        gateway: Optional[PaymentGateway] = None,
        publisher: Optional[FulfillmentPublisher] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or database.settings or get_settings()
        self.database = database
        self.cache = cache

        session_factory = database.require_session_factory()

        self.seat_inventory = SeatInventory(session_factory, self.settings)
        self.promo_codes = PromoCodeLedger(session_factory, self.settings)
        self.pricing = PricingEngine(self.settings.tax_rate)
        self.catalog = CatalogService(session_factory, self.seat_inventory, cache, self.settings)
        self.workflow = ReservationWorkflow(
            session_factory,
            self.catalog,
            self.seat_inventory,
            self.promo_codes,
            self.pricing,
            self.settings
        )
        self.payments = PaymentService(session_factory, gateway, self.settings)
        self.tickets = TicketService(session_factory, self.payments, publisher, self.settings)

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        settings: Optional[Settings] = None,
        gateway: Optional[PaymentGateway] = None,
        publisher: Optional[FulfillmentPublisher] = None,
        create_tables: bool = False,
        configure_logging: bool = True
    ) -> AsyncGenerator["BookingEngine", None]:
        """
        Configure logging, acquire the database (and the catalog cache when
        enabled), yield an engine, and release everything on exit.
        """
        settings = settings or get_settings()
        if configure_logging:
            setup_logging(
                log_level=settings.log_level,
                log_file=settings.log_file,
                enable_json_logging=settings.enable_json_logging,
                environment=settings.environment
            )

        database = DatabaseManager(settings)
        await database.initialize(create_tables=create_tables)

        cache = None
        try:
            if settings.enable_catalog_cache:
                cache = RedisCache(settings)
                try:
                    await cache.initialize()
                except RedisError as e:
                    logger.warning(f"Catalog cache unavailable, continuing without it: {e}")
                    await cache.close()
                    cache = None

            if publisher is None:
                publisher = CeleryFulfillmentPublisher(settings=settings)

            yield cls(database, cache=cache, gateway=gateway, publisher=publisher, settings=settings)
        finally:
            if cache is not None:
                await cache.close()
            await database.close()
