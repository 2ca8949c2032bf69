"""Canonical item-name lookup and resolution.

``ItemNameRepository`` owns the ``item_names`` table, which is shared by
every tenant and unique on ``name``.  ``ItemNameResolver`` turns the
free-text name of a receipt line into the id of its canonical row,
creating the row on first sight and optionally tagging its category.

Creation goes through an atomic upsert (``INSERT ... ON CONFLICT DO
NOTHING`` followed by a lookup) so two requests resolving the same new
name at once end up sharing one row instead of racing to insert two.
Only dialects with ``ON CONFLICT`` support (PostgreSQL and SQLite) are
accepted; any other raises ``RuntimeError``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from receiptscanner.core.observability import sentry_breadcrumb
from receiptscanner.models.schemas import ItemName
from receiptscanner.models.tables import ItemNameRow
from receiptscanner.utils.helpers import utcnow

logger = logging.getLogger(__name__)

_ON_CONFLICT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass(frozen=True)
class ItemResolution:
    """One entry of a batch resolution."""

    name: str
    item_id: Optional[int] = None
    category_id: Optional[uuid.UUID] = None


class ItemNameRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _select(self):
        return (
            select(ItemNameRow)
            .options(selectinload(ItemNameRow.category))
            .execution_options(populate_existing=True)
        )

    async def get_by_id(self, item_name_id: int) -> Optional[ItemName]:
        result = await self.db.execute(self._select().where(ItemNameRow.id == item_name_id))
        row = result.scalar_one_or_none()
        return ItemName.model_validate(row) if row else None

    async def get_by_name(self, name: str) -> Optional[ItemName]:
        result = await self.db.execute(self._select().where(ItemNameRow.name == name))
        row = result.scalar_one_or_none()
        return ItemName.model_validate(row) if row else None

    async def list_all(self) -> List[ItemName]:
        result = await self.db.execute(self._select().order_by(ItemNameRow.name))
        return [ItemName.model_validate(row) for row in result.scalars().all()]

    async def list_uncategorized(self) -> List[ItemName]:
        result = await self.db.execute(
            self._select().where(ItemNameRow.category_id.is_(None)).order_by(ItemNameRow.name)
        )
        return [ItemName.model_validate(row) for row in result.scalars().all()]

    async def exists(self, name: str) -> bool:
        result = await self.db.execute(select(ItemNameRow.id).where(ItemNameRow.name == name))
        return result.scalar_one_or_none() is not None

    async def update(self, item_name: ItemName) -> Optional[ItemName]:
        """Persist the name and category of an existing row."""
        result = await self.db.execute(
            update(ItemNameRow)
            .where(ItemNameRow.id == item_name.id)
            .values(
                name=item_name.name,
                category_id=item_name.category_id,
                updated_at=item_name.updated_at or utcnow(),
            )
        )
        await self.db.commit()
        if result.rowcount == 0:
            return None
        return await self.get_by_id(item_name.id)

    async def delete(self, item_name_id: int) -> bool:
        row = await self.db.get(ItemNameRow, item_name_id)
        if row is None:
            return False
        await self.db.delete(row)
        await self.db.commit()
        return True

    async def upsert(self, name: str, category_id: Optional[uuid.UUID] = None) -> Tuple[int, bool]:
        """Insert ``name`` unless it exists; return ``(id, created)``.

        When ``category_id`` is given it is written to the row whether it
        was just created or already there.  Commits before returning.
        Storage errors other than the name conflict (e.g. an unknown
        ``category_id``) roll the session back and propagate.
        """
        ItemName(name=name)  # reject blank names before touching storage
        now = utcnow()
        dialect = self.db.get_bind().dialect.name
        insert_fn = _ON_CONFLICT_INSERTS.get(dialect)
        if insert_fn is None:
            raise RuntimeError(f"item name upsert is not supported on dialect {dialect!r}")
        stmt = (
            insert_fn(ItemNameRow)
            .values(name=name, category_id=category_id, created_at=now)
            .on_conflict_do_nothing(index_elements=[ItemNameRow.name])
        )
        try:
            result = await self.db.execute(stmt)
            created = result.rowcount == 1
            found = await self.db.execute(
                select(ItemNameRow.id, ItemNameRow.category_id).where(ItemNameRow.name == name)
            )
            item_name_id, current_category = found.one()
            if category_id is not None and current_category != category_id:
                await self.db.execute(
                    update(ItemNameRow)
                    .where(ItemNameRow.id == item_name_id)
                    .values(category_id=category_id, updated_at=now)
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        if created:
            logger.info("[item_names] created id=%s name=%r", item_name_id, name)
            sentry_breadcrumb(category="item_names", message="item_name.created", data={"id": item_name_id})
        return item_name_id, created


class ItemNameResolver:
    """Resolve receipt line names to canonical ``ItemName`` ids."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.item_names = ItemNameRepository(db)

    async def resolve_item(
        self,
        name: str,
        item_id: Optional[int] = None,
        category_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Return the canonical id for ``name``.

        - ``item_id`` given: it is used as is; with ``category_id`` the
          referenced row's category is overwritten.
        - otherwise the row for ``name`` is found or created, and its
          category overwritten when ``category_id`` is given.
        """
        if item_id is not None:
            if category_id is not None:
                existing = await self.item_names.get_by_id(item_id)
                if existing is None:
                    logger.warning("[item_names] explicit id=%s not found; category not applied", item_id)
                elif existing.category_id != category_id:
                    await self.item_names.update(existing.with_category(category_id))
            return item_id

        resolved_id, _created = await self.item_names.upsert(name, category_id)
        return resolved_id

    async def resolve_items(self, entries: Iterable[Union[str, ItemResolution]]) -> List[int]:
        """Resolve a batch sequentially, in order.

        Each entry commits before the next, so a name repeated later in the
        batch resolves to the id created by its first occurrence.
        """
        resolved: List[int] = []
        for entry in entries:
            if isinstance(entry, str):
                entry = ItemResolution(name=entry)
            resolved.append(await self.resolve_item(entry.name, entry.item_id, entry.category_id))
        return resolved
