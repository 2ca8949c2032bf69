"""Tenant categories and category assignment for canonical item names.

Category assignment writes to the ``item_names`` row only.  Receipt
items pick the category up live through their ``item_id`` link at read
time, so one assignment re-categorizes every item that shares the name.
The legacy free-text ``ReceiptItem.category`` is never touched here.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from receiptscanner.core.observability import sentry_breadcrumb
from receiptscanner.models.schemas import Category, ItemName
from receiptscanner.models.tables import CategoryRow, ReceiptItemRow
from receiptscanner.services.item_names import ItemNameRepository

logger = logging.getLogger(__name__)


class CategoryRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get_row(self, category_id: uuid.UUID, user_id: str) -> Optional[CategoryRow]:
        result = await self.db.execute(
            select(CategoryRow).where(CategoryRow.id == category_id, CategoryRow.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str) -> List[Category]:
        result = await self.db.execute(
            select(CategoryRow).where(CategoryRow.user_id == user_id).order_by(CategoryRow.name)
        )
        return [Category.model_validate(row) for row in result.scalars().all()]

    async def get_by_id(self, category_id: uuid.UUID, user_id: str) -> Optional[Category]:
        row = await self._get_row(category_id, user_id)
        return Category.model_validate(row) if row else None

    async def get_by_name(self, name: str, user_id: str) -> Optional[Category]:
        result = await self.db.execute(
            select(CategoryRow).where(CategoryRow.name == name, CategoryRow.user_id == user_id)
        )
        row = result.scalar_one_or_none()
        return Category.model_validate(row) if row else None

    async def exists(self, category_id: uuid.UUID, user_id: str) -> bool:
        return await self._get_row(category_id, user_id) is not None

    async def add(self, category: Category) -> Category:
        row = CategoryRow(
            id=category.id,
            name=category.name,
            icon=category.icon,
            user_id=category.user_id,
            created_at=category.created_at,
        )
        self.db.add(row)
        await self.db.commit()
        return Category.model_validate(row)

    async def rename(self, category: Category) -> Optional[Category]:
        """Persist name/icon changes of ``category`` (tenant-scoped)."""
        row = await self._get_row(category.id, category.user_id)
        if row is None:
            return None
        row.name = category.name
        row.icon = category.icon
        row.updated_at = category.updated_at
        await self.db.commit()
        return Category.model_validate(row)

    async def delete(self, category_id: uuid.UUID, user_id: str) -> bool:
        """Delete the category.

        Item names still pointing at it are not cleared; with foreign keys
        enforced the store rejects the delete until they are.
        """
        row = await self._get_row(category_id, user_id)
        if row is None:
            return False
        await self.db.delete(row)
        await self.db.commit()
        return True


class CategoryAssignmentService:
    """Set the category of canonical item names."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.item_names = ItemNameRepository(db)
        self.categories = CategoryRepository(db)

    async def set_category(self, item_name_id: int, category_id: Optional[uuid.UUID]) -> Optional[ItemName]:
        """Load the item name, set its category and persist it.

        Returns the updated item name, or ``None`` when it does not exist.
        """
        item_name = await self.item_names.get_by_id(item_name_id)
        if item_name is None:
            return None
        updated = await self.item_names.update(item_name.with_category(category_id))
        logger.info("[categories] item_name id=%s category=%s", item_name_id, category_id)
        sentry_breadcrumb(
            category="categories",
            message="item_name.category_set",
            data={"item_name_id": item_name_id, "category_id": str(category_id)},
        )
        return updated

    async def set_category_for_receipt_item(
        self,
        receipt_item_id: uuid.UUID,
        category_id: uuid.UUID,
        user_id: str,
    ) -> Optional[ItemName]:
        """Categorize the canonical name behind one of the tenant's receipt items.

        Affects every receipt item sharing that name.  Returns ``None`` when
        the item is not the tenant's, has no canonical name, or the category
        is not the tenant's.
        """
        result = await self.db.execute(
            select(ReceiptItemRow.item_id).where(
                ReceiptItemRow.id == receipt_item_id,
                ReceiptItemRow.user_id == user_id,
            )
        )
        item_name_id = result.scalar_one_or_none()
        if item_name_id is None:
            return None
        if not await self.categories.exists(category_id, user_id):
            return None
        return await self.set_category(item_name_id, category_id)
