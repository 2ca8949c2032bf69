"""Receipt aggregate repository.

Tenant-isolated CRUD, paging and aggregation over the Receipt aggregate
(receipt row, its merchant, and its ordered items with their canonical
item names and categories).

Every read takes the tenant id and filters by it; there is no way to
load a receipt or item by id alone.

Writes follow an explicit unit of work rather than relying on the ORM
tracking whatever the caller happened to load earlier:

- ``add`` inserts the receipt and all of its items in one transaction.
- ``update`` loads the stored aggregate, diffs its items against the
  incoming value (``compute_item_changes``) and applies exactly the
  needed deletes, inserts and updates, plus the receipt's own columns,
  in one transaction.
- ``delete_receipt_items`` and ``delete`` are single bulk statements;
  the session's identity map is synchronized by the ORM.

Page counts come from a separate ``COUNT`` over the same predicate, so
under concurrent writes a page and its ``total_count`` may disagree.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from receiptscanner.core.observability import sentry_breadcrumb
from receiptscanner.models.enums import GroupingBucket, ReceiptStatus, WeekStart
from receiptscanner.models.schemas import (
    ALLOWED_STATUS_TRANSITIONS,
    InvalidStatusTransition,
    PagedResult,
    Receipt,
    ReceiptGroup,
    ReceiptItem,
    ReceiptSummary,
)
from receiptscanner.models.tables import ItemNameRow, MerchantRow, ReceiptItemRow, ReceiptRow
from receiptscanner.services.merchants import _apply_merchant
from receiptscanner.utils.helpers import to_money
from receiptscanner.utils.periods import truncate

logger = logging.getLogger(__name__)

# Columns of a receipt item that an update may change.
ITEM_FIELDS = (
    "name",
    "description",
    "quantity",
    "quantity_unit",
    "unit_price",
    "total_price",
    "category",
    "sku",
    "item_id",
)

RECEIPT_FIELDS = (
    "receipt_number",
    "receipt_date",
    "sub_total",
    "tax_amount",
    "total_amount",
    "reward",
    "currency",
    "image_path",
    "raw_text",
    "status",
    "merchant_id",
)


@dataclass(frozen=True)
class ItemChangeSet:
    """Difference between a stored item collection and an incoming one."""

    added: Tuple[ReceiptItem, ...] = ()
    removed: Tuple[uuid.UUID, ...] = ()
    changed: Tuple[ReceiptItem, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


def compute_item_changes(stored: Sequence[ReceiptItem], incoming: Sequence[ReceiptItem]) -> ItemChangeSet:
    """Diff two item collections by item id.

    Items only in ``incoming`` are added, items only in ``stored`` are
    removed, and items in both whose persisted columns differ are changed.
    """
    stored_by_id = {item.id: item for item in stored}
    incoming_ids = {item.id for item in incoming}
    added = tuple(item for item in incoming if item.id not in stored_by_id)
    removed = tuple(item.id for item in stored if item.id not in incoming_ids)
    changed = tuple(
        item
        for item in incoming
        if item.id in stored_by_id
        and any(getattr(item, f) != getattr(stored_by_id[item.id], f) for f in ITEM_FIELDS)
    )
    return ItemChangeSet(added=added, removed=removed, changed=changed)


def _new_item_row(item: ReceiptItem, line_number: int) -> ReceiptItemRow:
    row = ReceiptItemRow(
        id=item.id,
        receipt_id=item.receipt_id,
        user_id=item.user_id,
        line_number=line_number,
        created_at=item.created_at,
    )
    _apply_item(row, item)
    return row


def _apply_item(row: ReceiptItemRow, item: ReceiptItem) -> None:
    for field in ITEM_FIELDS:
        setattr(row, field, getattr(item, field))
    row.updated_at = item.updated_at


def _apply_receipt(row: ReceiptRow, receipt: Receipt) -> None:
    for field in RECEIPT_FIELDS:
        setattr(row, field, getattr(receipt, field))
    row.updated_at = receipt.updated_at


def _check_ownership(receipt: Receipt, items: Sequence[ReceiptItem]) -> None:
    for item in items:
        if item.receipt_id != receipt.id or item.user_id != receipt.user_id:
            raise ValueError(f"item {item.id} does not belong to receipt {receipt.id}")


class ReceiptRepository:
    """Tenant-scoped persistence for Receipt aggregates."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------
    def _aggregate_query(self):
        return (
            select(ReceiptRow)
            .options(
                selectinload(ReceiptRow.merchant),
                selectinload(ReceiptRow.items)
                .selectinload(ReceiptItemRow.item_name)
                .selectinload(ItemNameRow.category),
            )
            .execution_options(populate_existing=True)
        )

    async def _fetch(self, *criteria, order_by: Sequence[Any] = ()) -> List[Receipt]:
        result = await self.db.execute(self._aggregate_query().where(*criteria).order_by(*order_by))
        return [Receipt.model_validate(row) for row in result.scalars().all()]

    async def _fetch_paged(
        self,
        criteria: Sequence[Any],
        order_by: Sequence[Any],
        skip: int,
        take: int,
    ) -> PagedResult[Receipt]:
        if skip < 0 or take < 1:
            raise ValueError("skip must be >= 0 and take >= 1")
        count = await self.db.execute(select(func.count(ReceiptRow.id)).where(*criteria))
        total = int(count.scalar() or 0)
        result = await self.db.execute(
            self._aggregate_query().where(*criteria).order_by(*order_by).offset(skip).limit(take)
        )
        items = [Receipt.model_validate(row) for row in result.scalars().all()]
        return PagedResult[Receipt](items=items, total_count=total, skip=skip, take=take)

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    _NEWEST_FIRST = (ReceiptRow.created_at.desc(), ReceiptRow.id.desc())
    _LATEST_DATE_FIRST = (ReceiptRow.receipt_date.desc(), ReceiptRow.created_at.desc(), ReceiptRow.id.desc())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_by_id(self, receipt_id: uuid.UUID, user_id: str) -> Optional[Receipt]:
        """Load the aggregate with its merchant and items ordered by creation."""
        found = await self._fetch(ReceiptRow.id == receipt_id, ReceiptRow.user_id == user_id)
        return found[0] if found else None

    async def get_with_items(self, receipt_id: uuid.UUID, user_id: str) -> Optional[Receipt]:
        return await self.get_by_id(receipt_id, user_id)

    async def get_all_by_user(self, user_id: str) -> List[Receipt]:
        return await self._fetch(ReceiptRow.user_id == user_id, order_by=self._NEWEST_FIRST)

    async def get_all_by_user_paged(self, user_id: str, skip: int, take: int) -> PagedResult[Receipt]:
        return await self._fetch_paged([ReceiptRow.user_id == user_id], self._NEWEST_FIRST, skip, take)

    async def get_by_merchant(self, merchant_id: uuid.UUID, user_id: str) -> List[Receipt]:
        return await self._fetch(
            ReceiptRow.merchant_id == merchant_id,
            ReceiptRow.user_id == user_id,
            order_by=self._NEWEST_FIRST,
        )

    async def get_by_merchant_paged(
        self, merchant_id: uuid.UUID, user_id: str, skip: int, take: int
    ) -> PagedResult[Receipt]:
        return await self._fetch_paged(
            [ReceiptRow.merchant_id == merchant_id, ReceiptRow.user_id == user_id],
            self._NEWEST_FIRST,
            skip,
            take,
        )

    async def get_by_date_range(self, start: dt.datetime, end: dt.datetime, user_id: str) -> List[Receipt]:
        """Receipts dated within ``[start, end]``, latest date first."""
        return await self._fetch(
            ReceiptRow.receipt_date >= start,
            ReceiptRow.receipt_date <= end,
            ReceiptRow.user_id == user_id,
            order_by=self._LATEST_DATE_FIRST,
        )

    async def get_by_date_range_paged(
        self, start: dt.datetime, end: dt.datetime, user_id: str, skip: int, take: int
    ) -> PagedResult[Receipt]:
        return await self._fetch_paged(
            [ReceiptRow.receipt_date >= start, ReceiptRow.receipt_date <= end, ReceiptRow.user_id == user_id],
            self._LATEST_DATE_FIRST,
            skip,
            take,
        )

    async def get_by_status(self, status: ReceiptStatus, user_id: str) -> List[Receipt]:
        return await self._fetch(
            ReceiptRow.status == ReceiptStatus(status),
            ReceiptRow.user_id == user_id,
            order_by=self._NEWEST_FIRST,
        )

    async def get_receipt_by_item_id(self, receipt_item_id: uuid.UUID, user_id: str) -> Optional[Receipt]:
        owning = (
            select(ReceiptItemRow.receipt_id)
            .where(ReceiptItemRow.id == receipt_item_id, ReceiptItemRow.user_id == user_id)
            .scalar_subquery()
        )
        found = await self._fetch(ReceiptRow.id == owning, ReceiptRow.user_id == user_id)
        return found[0] if found else None

    async def get_by_category(self, category_id: uuid.UUID, user_id: str) -> List[Receipt]:
        """Receipts with at least one item whose canonical name has ``category_id``."""
        return await self._fetch(
            ReceiptRow.user_id == user_id,
            ReceiptRow.items.any(ReceiptItemRow.item_name.has(ItemNameRow.category_id == category_id)),
            order_by=self._NEWEST_FIRST,
        )

    async def get_items_by_category(self, category_id: Optional[uuid.UUID], user_id: str) -> List[ReceiptItem]:
        """Items whose canonical name has ``category_id``; ``None`` selects uncategorized items."""
        stmt = (
            select(ReceiptItemRow)
            .outerjoin(ItemNameRow, ReceiptItemRow.item_id == ItemNameRow.id)
            .where(ReceiptItemRow.user_id == user_id)
            .options(selectinload(ReceiptItemRow.item_name).selectinload(ItemNameRow.category))
            .order_by(ReceiptItemRow.created_at, ReceiptItemRow.line_number)
            .execution_options(populate_existing=True)
        )
        if category_id is None:
            stmt = stmt.where(ItemNameRow.category_id.is_(None))
        else:
            stmt = stmt.where(ItemNameRow.category_id == category_id)
        result = await self.db.execute(stmt)
        return [ReceiptItem.model_validate(row) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    async def get_summary(
        self,
        user_id: str,
        start_of_year: dt.datetime,
        start_of_month: dt.datetime,
        start_of_week: dt.datetime,
    ) -> ReceiptSummary:
        """Sum ``total_amount`` overall and since each caller-supplied cutoff.

        One aggregate statement over the tenant's receipts, bucketed by
        ``receipt_date``.
        """

        def since(cutoff: dt.datetime):
            return func.coalesce(
                func.sum(case((ReceiptRow.receipt_date >= cutoff, ReceiptRow.total_amount), else_=0)),
                0,
            )

        stmt = select(
            func.coalesce(func.sum(ReceiptRow.total_amount), 0),
            since(start_of_year),
            since(start_of_month),
            since(start_of_week),
        ).where(ReceiptRow.user_id == user_id)
        total, this_year, this_month, this_week = (await self.db.execute(stmt)).one()
        return ReceiptSummary(
            total=to_money(total),
            this_year=to_money(this_year),
            this_month=to_money(this_month),
            this_week=to_money(this_week),
        )

    async def get_grouped(
        self,
        user_id: str,
        bucket: GroupingBucket,
        page: int = 1,
        page_size: int = 10,
        week_start: WeekStart = WeekStart.SUNDAY,
    ) -> PagedResult[ReceiptGroup]:
        """Group receipts by ``receipt_date`` truncated to ``bucket``.

        Groups are ordered newest bucket first and paged ``page_size`` groups
        at a time (``page`` is 1-based).  Only the receipts of the requested
        page are loaded as full aggregates.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be >= 1")
        bucket = GroupingBucket(bucket)
        index = await self.db.execute(
            select(ReceiptRow.id, ReceiptRow.receipt_date, ReceiptRow.total_amount)
            .where(ReceiptRow.user_id == user_id)
            .order_by(*self._LATEST_DATE_FIRST)
        )
        buckets: Dict[dt.datetime, List[Tuple[uuid.UUID, Decimal]]] = {}
        for receipt_id, receipt_date, total_amount in index.all():
            key = truncate(receipt_date, bucket, week_start)
            buckets.setdefault(key, []).append((receipt_id, to_money(total_amount)))

        skip = (page - 1) * page_size
        page_keys = list(buckets)[skip : skip + page_size]
        wanted = [receipt_id for key in page_keys for receipt_id, _ in buckets[key]]
        loaded: Dict[uuid.UUID, Receipt] = {}
        if wanted:
            for receipt in await self._fetch(ReceiptRow.id.in_(wanted), ReceiptRow.user_id == user_id):
                loaded[receipt.id] = receipt

        groups = [
            ReceiptGroup(
                bucket=bucket,
                period_start=key,
                receipts=[loaded[receipt_id] for receipt_id, _ in buckets[key] if receipt_id in loaded],
                subtotal=sum((amount for _, amount in buckets[key]), Decimal("0.00")),
            )
            for key in page_keys
        ]
        return PagedResult[ReceiptGroup](items=groups, total_count=len(buckets), skip=skip, take=page_size)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def add(self, receipt: Receipt) -> Receipt:
        """Insert a fresh receipt and all of its items in one transaction."""
        _check_ownership(receipt, receipt.items)
        row = ReceiptRow(id=receipt.id, user_id=receipt.user_id, created_at=receipt.created_at)
        _apply_receipt(row, receipt)
        row.items = [_new_item_row(item, position) for position, item in enumerate(receipt.items)]
        self.db.add(row)
        await self._commit()
        logger.info(
            "[receipts] added id=%s user_id=%s items=%d", receipt.id, receipt.user_id, len(receipt.items)
        )
        sentry_breadcrumb(
            category="receipts",
            message="receipt.added",
            data={"receipt_id": str(receipt.id), "items": len(receipt.items)},
        )
        stored = await self.get_with_items(receipt.id, receipt.user_id)
        if stored is None:
            raise RuntimeError(f"receipt {receipt.id} vanished after insert")
        return stored

    async def update(self, receipt: Receipt) -> Optional[Receipt]:
        """Write ``receipt`` over the stored aggregate in one transaction.

        A status change must be an allowed transition from the stored status,
        otherwise ``InvalidStatusTransition`` is raised before any write.

        Items missing from ``receipt.items`` are deleted, new ones inserted
        after the existing lines, and changed ones updated.  When the value
        carries a ``merchant`` it overwrites that merchant's stored details.
        Returns the reloaded aggregate, or ``None`` if the tenant has no such
        receipt.
        """
        _check_ownership(receipt, receipt.items)
        result = await self.db.execute(
            self._aggregate_query().where(ReceiptRow.id == receipt.id, ReceiptRow.user_id == receipt.user_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None

        if receipt.status != row.status and receipt.status not in ALLOWED_STATUS_TRANSITIONS[row.status]:
            raise InvalidStatusTransition(row.status, receipt.status)

        stored_items = [ReceiptItem.model_validate(item_row) for item_row in row.items]
        changes = compute_item_changes(stored_items, receipt.items)

        if receipt.merchant_id != row.merchant_id or receipt.merchant is not None:
            merchant_row = await self.db.execute(
                select(MerchantRow).where(
                    MerchantRow.id == receipt.merchant_id, MerchantRow.user_id == receipt.user_id
                )
            )
            merchant = merchant_row.scalar_one_or_none()
            if merchant is None:
                raise ValueError(f"merchant {receipt.merchant_id} not found for tenant")
            if receipt.merchant is not None:
                _apply_merchant(merchant, receipt.merchant)

        _apply_receipt(row, receipt)
        rows_by_id = {item_row.id: item_row for item_row in row.items}
        for item_id in changes.removed:
            row.items.remove(rows_by_id[item_id])
        for item in changes.changed:
            _apply_item(rows_by_id[item.id], item)
        next_line = max((item_row.line_number for item_row in rows_by_id.values()), default=-1) + 1
        for offset, item in enumerate(changes.added):
            row.items.append(_new_item_row(item, next_line + offset))

        await self._commit()
        logger.info(
            "[receipts] updated id=%s added=%d removed=%d changed=%d",
            receipt.id,
            len(changes.added),
            len(changes.removed),
            len(changes.changed),
        )
        return await self.get_with_items(receipt.id, receipt.user_id)

    async def update_status(self, receipt_id: uuid.UUID, user_id: str, status: ReceiptStatus) -> Optional[Receipt]:
        """Move the receipt to ``status``; raises ``InvalidStatusTransition`` when not allowed."""
        current = await self.get_by_id(receipt_id, user_id)
        if current is None:
            return None
        moved = current.with_status(status)
        await self.db.execute(
            update(ReceiptRow)
            .where(ReceiptRow.id == receipt_id, ReceiptRow.user_id == user_id)
            .values(status=moved.status, updated_at=moved.updated_at)
        )
        await self._commit()
        logger.info("[receipts] status id=%s %s -> %s", receipt_id, current.status.value, moved.status.value)
        return await self.get_by_id(receipt_id, user_id)

    async def delete_receipt_items(self, receipt_id: uuid.UUID, user_id: str) -> int:
        """Delete every item of the receipt with one statement; returns the row count."""
        result = await self.db.execute(
            delete(ReceiptItemRow).where(
                ReceiptItemRow.receipt_id == receipt_id,
                ReceiptItemRow.user_id == user_id,
            )
        )
        await self._commit()
        logger.info("[receipts] cleared items id=%s count=%s", receipt_id, result.rowcount)
        return int(result.rowcount or 0)

    async def delete(self, receipt_id: uuid.UUID, user_id: str) -> bool:
        """Delete the receipt; its items go with it through the storage cascade."""
        result = await self.db.execute(
            delete(ReceiptRow).where(ReceiptRow.id == receipt_id, ReceiptRow.user_id == user_id)
        )
        await self._commit()
        deleted = bool(result.rowcount)
        if deleted:
            logger.info("[receipts] deleted id=%s user_id=%s", receipt_id, user_id)
            sentry_breadcrumb(category="receipts", message="receipt.deleted", data={"receipt_id": str(receipt_id)})
        return deleted
