"""Receipt processing application service.

Turns a ``DocumentAnalysisResult`` from the document-analysis
collaborator into a stored Receipt aggregate, and fronts the read paths
that need application policy (clock, week start, page-size limits,
currency defaults).

Every item name is resolved to its canonical ``ItemName`` row before the
receipt is written; resolution commits per name, so a failure after it
leaves only reusable item names behind, never a partial receipt.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from receiptscanner.core.config import clamp_page_size, settings
from receiptscanner.core.observability import sentry_breadcrumb, sentry_capture, sentry_set_tags
from receiptscanner.models.enums import GroupingBucket, ReceiptStatus, WeekStart
from receiptscanner.models.schemas import (
    DocumentAnalysisResult,
    PagedResult,
    ProcessingOutcome,
    Receipt,
    ReceiptGroup,
    ReceiptSummary,
)
from receiptscanner.services.item_names import ItemNameResolver
from receiptscanner.services.merchants import MerchantRepository
from receiptscanner.services.receipt_repository import ReceiptRepository
from receiptscanner.services.user_settings import UserSettingsRepository
from receiptscanner.utils import currency
from receiptscanner.utils.helpers import utcnow
from receiptscanner.utils.periods import period_boundaries

logger = logging.getLogger(__name__)


def _naive_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


class ReceiptProcessingService:
    """Application service over the receipt core.

    ``clock`` returns the current naive UTC time; tests pass a fixed one.
    """

    def __init__(self, db: AsyncSession, clock: Optional[Callable[[], dt.datetime]] = None) -> None:
        self.db = db
        self.clock = clock or utcnow
        self.receipts = ReceiptRepository(db)
        self.merchants = MerchantRepository(db)
        self.resolver = ItemNameResolver(db)
        self.user_settings = UserSettingsRepository(db)

    @property
    def week_start(self) -> WeekStart:
        return WeekStart(settings.WEEK_START.strip().lower())

    async def process_analysis(
        self,
        result: DocumentAnalysisResult,
        user_id: str,
        image_path: Optional[str] = None,
    ) -> ProcessingOutcome:
        """Persist the receipt described by ``result`` for ``user_id``.

        Unsuccessful analyses are rejected without touching storage.  Any
        failure while building or storing the receipt is logged, reported
        and returned as an unsuccessful outcome.
        """
        if not result.is_success:
            return ProcessingOutcome(
                is_success=False,
                error_message=result.error_message or "Receipt analysis failed",
            )

        sentry_set_tags({"receipt.user_id": user_id})
        try:
            receipt = await self._build_receipt(result, user_id, image_path)
            stored = await self.receipts.add(receipt)
        except Exception as exc:
            logger.exception("[processing] failed to store analysed receipt user_id=%s", user_id)
            sentry_capture(exc)
            await self.db.rollback()
            return ProcessingOutcome(is_success=False, error_message=str(exc))

        logger.info(
            "[processing] stored receipt id=%s user_id=%s items=%d", stored.id, user_id, len(stored.items)
        )
        sentry_breadcrumb(
            category="processing",
            message="receipt.processed",
            data={"receipt_id": str(stored.id), "items": len(stored.items)},
        )
        return ProcessingOutcome(is_success=True, receipt=stored)

    async def _build_receipt(
        self, result: DocumentAnalysisResult, user_id: str, image_path: Optional[str]
    ) -> Receipt:
        merchant = await self.merchants.get_or_create(
            result.merchant_name,
            user_id,
            address=result.merchant_address,
            phone_number=result.merchant_phone,
        )
        currency_code = result.currency or await self.user_settings.get_default_currency_name(user_id)
        receipt_date = _naive_utc(result.transaction_date) if result.transaction_date else self.clock()

        receipt = Receipt.create(
            receipt_number=result.receipt_number or uuid.uuid4().hex[:8],
            receipt_date=receipt_date,
            sub_total=result.sub_total or Decimal("0"),
            tax_amount=result.tax or Decimal("0"),
            total_amount=result.total or Decimal("0"),
            merchant_id=merchant.id,
            user_id=user_id,
            currency=currency_code or "GBP",
            image_path=image_path,
            raw_text=result.raw_text,
            reward=result.reward,
        ).with_merchant(merchant)

        for analysed in result.items:
            name = (analysed.name or "").strip()
            if not name:
                continue
            item_id = await self.resolver.resolve_item(name)
            receipt = receipt.add_item(
                receipt.new_item(
                    name,
                    analysed.quantity or Decimal("1"),
                    analysed.unit_price or analysed.total_price or Decimal("0"),
                    quantity_unit=analysed.quantity_unit,
                    total_price=analysed.total_price,
                    item_id=item_id,
                )
            )

        return receipt.update_processing_results(
            raw_text=result.raw_text,
            sub_total=receipt.sub_total,
            tax_amount=receipt.tax_amount,
            total_amount=receipt.total_amount,
        )

    async def update_status(self, receipt_id: uuid.UUID, user_id: str, status: ReceiptStatus) -> Optional[Receipt]:
        return await self.receipts.update_status(receipt_id, user_id, status)

    async def get_summary(self, user_id: str, now: Optional[dt.datetime] = None) -> ReceiptSummary:
        """Spending totals with week/month/year cutoffs taken from ``now``."""
        bounds = period_boundaries(now or self.clock(), self.week_start)
        return await self.receipts.get_summary(
            user_id, bounds.start_of_year, bounds.start_of_month, bounds.start_of_week
        )

    async def list_receipts(self, user_id: str, page: int = 1, page_size: Optional[int] = None) -> PagedResult[Receipt]:
        take = clamp_page_size(page_size)
        skip = (max(page, 1) - 1) * take
        return await self.receipts.get_all_by_user_paged(user_id, skip, take)

    async def get_grouped(
        self,
        user_id: str,
        bucket: GroupingBucket,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> PagedResult[ReceiptGroup]:
        return await self.receipts.get_grouped(
            user_id, bucket, max(page, 1), clamp_page_size(page_size), self.week_start
        )

    @staticmethod
    def currency_symbol(code: Optional[str]) -> str:
        return currency.currency_symbol(code)
