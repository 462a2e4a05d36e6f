"""
Promo code ledger: code definitions and their usage counters.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings, get_settings
from ..database import AbortTransaction, execute_atomically, read_session
from ..models.promo_code import DiscountType, PromoCode
from ..schemas.promo_code import PromoCodeCreate, PromoCodeUpdate
from ..utils.exceptions import (
    CinebookError,
    DuplicatePromoCodeError,
    PromoCodeNotFoundError,
    PromoCodeRejectedError,
    PromoRejection,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from ..utils.result import Ack, Err, Ok, Result

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


class PromoCodeLedger:
    """
    Service owning promo code rows.

    ``validate`` is a read-only check used for quotes; ``redeem`` re-checks the
    code in the same statement that increments ``current_uses``, so concurrent
    redemptions can never push the counter past ``max_uses``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def create_promo_code(self, data: PromoCodeCreate) -> Result[PromoCode, CinebookError]:
        """Create a promo code; codes are unique after upper-casing."""

        async def work(db: AsyncSession) -> PromoCode:
            existing = await self._find(db, data.code)
            if existing is not None:
                raise AbortTransaction(DuplicatePromoCodeError(data.code))

            promo = PromoCode(
                code=data.code,
                description=data.description,
                discount_type=data.discount_type,
                discount_amount=data.discount_amount,
                valid_from=data.valid_from,
                valid_until=data.valid_until,
                max_uses=data.max_uses,
                current_uses=0,
                min_purchase_amount=data.min_purchase_amount,
                is_active=True
            )
            db.add(promo)
            await db.flush()
            return promo

        outcome = await execute_atomically(
            self.session_factory, work, operation="create_promo_code",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            logger.info(f"Created promo code {data.code}")
        return outcome

    async def get_promo_code(self, code: str) -> Optional[PromoCode]:
        async with read_session(self.session_factory) as db:
            return await self._find(db, normalize_code(code))

    async def list_promo_codes(self, active_only: bool = False) -> List[PromoCode]:
        """List promo codes ordered by code."""
        async with read_session(self.session_factory) as db:
            query = select(PromoCode).order_by(PromoCode.code)
            if active_only:
                query = query.where(PromoCode.is_active.is_(True))
            result = await db.execute(query)
            return list(result.scalars().all())

    async def deactivate_promo_code(self, code: str) -> Result[Ack, CinebookError]:
        code = normalize_code(code)

        async def work(db: AsyncSession) -> Ack:
            result = await db.execute(
                update(PromoCode)
                .where(PromoCode.code == code)
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise AbortTransaction(PromoCodeNotFoundError(code))
            return Ack(affected=result.rowcount)

        outcome = await execute_atomically(
            self.session_factory, work, operation="deactivate_promo_code",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            logger.info(f"Deactivated promo code {code}")
        return outcome

    async def update_promo_code(self, code: str, data: PromoCodeUpdate) -> Result[PromoCode, CinebookError]:
        """
        Edit a promo code in place.

        The merged definition must still be coherent, and ``max_uses`` may
        not drop below the uses already recorded. Reservations keep the
        discount they were priced with.
        """
        code = normalize_code(code)
        changes = data.changes()

        async def work(db: AsyncSession) -> PromoCode:
            result = await db.execute(
                select(PromoCode)
                .where(PromoCode.code == code)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            promo = result.scalar_one_or_none()
            if promo is None:
                raise AbortTransaction(PromoCodeNotFoundError(code))

            new_code = changes.get("code", promo.code)
            if new_code != promo.code and await self._find(db, new_code) is not None:
                raise AbortTransaction(DuplicatePromoCodeError(new_code))

            errors = self._update_errors(promo, changes)
            if errors:
                raise AbortTransaction(ValidationError(f"Invalid update for promo code {code}", field_errors=errors))

            for name, value in changes.items():
                setattr(promo, name, value)
            await db.flush()
            return promo

        outcome = await execute_atomically(
            self.session_factory, work, operation="update_promo_code",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            logger.info(f"Updated promo code {code}: {', '.join(sorted(changes)) or 'no changes'}")
        return outcome

    async def delete_promo_code(self, code: str) -> Result[Ack, CinebookError]:
        """
        Remove a promo code.

        Reservations that used it keep their frozen amounts; their link to the
        code is cleared by the foreign key.
        """
        code = normalize_code(code)

        async def work(db: AsyncSession) -> Ack:
            result = await db.execute(
                delete(PromoCode)
                .where(PromoCode.code == code)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise AbortTransaction(PromoCodeNotFoundError(code))
            return Ack(affected=result.rowcount)

        outcome = await execute_atomically(
            self.session_factory, work, operation="delete_promo_code",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            logger.info(f"Deleted promo code {code}")
        return outcome

    @staticmethod
    def _update_errors(promo: PromoCode, changes: dict) -> Dict[str, List[str]]:
        errors: Dict[str, List[str]] = {}
        valid_from = changes.get("valid_from", promo.valid_from)
        valid_until = changes.get("valid_until", promo.valid_until)
        if valid_from > valid_until:
            errors["valid_until"] = ["must not be before valid_from"]

        discount_type = changes.get("discount_type", promo.discount_type)
        discount_amount = changes.get("discount_amount", promo.discount_amount)
        if discount_type == DiscountType.PERCENTAGE and discount_amount > 100:
            errors["discount_amount"] = ["percentage discounts must be in (0, 100]"]

        max_uses = changes.get("max_uses", promo.max_uses)
        if max_uses is not None and max_uses < promo.current_uses:
            errors["max_uses"] = [f"already used {promo.current_uses} times"]
        return errors

    async def validate(
        self,
        code: str,
        purchase_amount: Decimal,
        as_of: Optional[date] = None,
        session: Optional[AsyncSession] = None
    ) -> Result[PromoCode, PromoCodeRejectedError]:
        """
        Check a code against a purchase amount without using it.

        Checks run in a fixed order (not found, inactive, not yet valid,
        expired, max uses reached, below minimum purchase) and the first
        failing one is reported.
        """
        code = normalize_code(code)
        as_of = as_of or date.today()

        async with read_session(self.session_factory, session) as db:
            promo = await self._find(db, code, refresh=True)

        if promo is None:
            return Err(PromoCodeRejectedError(code, PromoRejection.NOT_FOUND))

        rejection = promo.rejection_for(as_of, purchase_amount)
        if rejection is not None:
            return Err(self._rejection(promo, rejection))
        return Ok(promo)

    async def redeem(
        self,
        code: str,
        as_of: Optional[date] = None,
        session: Optional[AsyncSession] = None
    ) -> Result[Ack, CinebookError]:
        """
        Use a code once.

        The increment is a single conditional UPDATE that repeats the
        validity checks, so the row lock taken by the UPDATE serializes
        concurrent redemptions of the same code.
        """
        code = normalize_code(code)
        as_of = as_of or date.today()

        async def work(db: AsyncSession) -> Ack:
            result = await db.execute(
                update(PromoCode)
                .where(
                    PromoCode.code == code,
                    PromoCode.is_active.is_(True),
                    PromoCode.valid_from <= as_of,
                    PromoCode.valid_until >= as_of,
                    or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses)
                )
                .values(current_uses=PromoCode.current_uses + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return Ack(affected=1)

            promo = await self._find(db, code, refresh=True)
            if promo is None:
                raise AbortTransaction(PromoCodeRejectedError(code, PromoRejection.NOT_FOUND))
            reason = promo.rejection_for(as_of) or PromoRejection.MAX_USES_REACHED
            raise AbortTransaction(self._rejection(promo, reason))

        outcome = await execute_atomically(
            self.session_factory, work, session=session, operation="redeem_promo_code",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            log_business_event("promo_code_redeemed", {"promo_code": code})
        else:
            logger.info(f"Promo code {code} not redeemed: {outcome.error.message}")
        return outcome

    async def preview_discount(
        self,
        code: str,
        purchase_amount: Decimal,
        as_of: Optional[date] = None
    ) -> Result[Decimal, PromoCodeRejectedError]:
        """Discount a code would give on ``purchase_amount``, for display only."""
        validated = await self.validate(code, purchase_amount, as_of)
        if validated.is_err():
            return validated
        return Ok(validated.value.calculate_discount(purchase_amount))

    @staticmethod
    async def _find(db: AsyncSession, code: str, refresh: bool = False) -> Optional[PromoCode]:
        query = select(PromoCode).where(PromoCode.code == code)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    def _rejection(self, promo: PromoCode, reason: PromoRejection) -> PromoCodeRejectedError:
        extra = {}
        if reason == PromoRejection.NOT_YET_VALID:
            extra["valid_from"] = promo.valid_from.isoformat()
        elif reason == PromoRejection.EXPIRED:
            extra["valid_until"] = promo.valid_until.isoformat()
        elif reason == PromoRejection.MAX_USES_REACHED:
            extra["max_uses"] = promo.max_uses
        elif reason == PromoRejection.BELOW_MINIMUM_PURCHASE:
            extra["min_purchase_amount"] = (
                f"{self.settings.currency_symbol}{Decimal(promo.min_purchase_amount):.2f}"
            )
        return PromoCodeRejectedError(promo.code, reason, extra)
