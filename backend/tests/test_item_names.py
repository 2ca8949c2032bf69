from __future__ import annotations

import asyncio
import uuid

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from receiptscanner.models.schemas import Category
from receiptscanner.models.tables import ItemNameRow
from receiptscanner.services import item_names
from receiptscanner.services.categories import CategoryRepository
from receiptscanner.services.item_names import ItemNameRepository, ItemNameResolver, ItemResolution


async def _count_item_names(session, name):
    result = await session.execute(select(func.count(ItemNameRow.id)).where(ItemNameRow.name == name))
    return result.scalar()


@pytest.mark.asyncio
async def test_resolving_same_name_twice_returns_same_id(session):
    resolver = ItemNameResolver(session)
    first = await resolver.resolve_item("Milk")
    second = await resolver.resolve_item("Milk")
    assert first == second
    assert await _count_item_names(session, "Milk") == 1


@pytest.mark.asyncio
async def test_resolve_with_category_creates_and_overwrites(session, tenant):
    categories = CategoryRepository(session)
    groceries = await categories.add(Category(name="Groceries", user_id=tenant))
    dairy = await categories.add(Category(name="Dairy", user_id=tenant))
    resolver = ItemNameResolver(session)

    item_id = await resolver.resolve_item("Milk", category_id=groceries.id)
    stored = await ItemNameRepository(session).get_by_id(item_id)
    assert stored.category_id == groceries.id
    assert stored.category.name == "Groceries"

    assert await resolver.resolve_item("Milk", category_id=dairy.id) == item_id
    stored = await ItemNameRepository(session).get_by_id(item_id)
    assert stored.category_id == dairy.id

    # resolving without a category leaves the existing one alone
    await resolver.resolve_item("Milk")
    assert (await ItemNameRepository(session).get_by_id(item_id)).category_id == dairy.id


@pytest.mark.asyncio
async def test_explicit_item_id_is_used_as_is(session, tenant):
    groceries = await CategoryRepository(session).add(Category(name="Groceries", user_id=tenant))
    resolver = ItemNameResolver(session)
    bread_id = await resolver.resolve_item("Bread")

    assert await resolver.resolve_item("Ignored name", item_id=bread_id, category_id=groceries.id) == bread_id
    assert (await ItemNameRepository(session).get_by_id(bread_id)).category_id == groceries.id
    assert not await ItemNameRepository(session).exists("Ignored name")

    # unknown explicit id: returned unchanged, nothing created
    assert await resolver.resolve_item("Bread", item_id=9999, category_id=groceries.id) == 9999
    assert len(await ItemNameRepository(session).list_all()) == 1


@pytest.mark.asyncio
async def test_blank_name_is_rejected_before_storage(session):
    with pytest.raises(ValidationError):
        await ItemNameResolver(session).resolve_item("")
    assert await ItemNameRepository(session).list_all() == []


@pytest.mark.asyncio
async def test_batch_resolution_reuses_ids_within_the_batch(session):
    ids = await ItemNameResolver(session).resolve_items(["Milk", ItemResolution(name="Bread"), "Milk"])
    assert ids[0] == ids[2]
    assert ids[0] != ids[1]
    assert [n.name for n in await ItemNameRepository(session).list_all()] == ["Bread", "Milk"]


@pytest.mark.asyncio
async def test_concurrent_resolution_creates_one_row(session_factory):
    async with session_factory() as first, session_factory() as second:
        ids = await asyncio.gather(
            ItemNameResolver(first).resolve_item("Oat Milk"),
            ItemNameResolver(second).resolve_item("Oat Milk"),
        )
    assert ids[0] == ids[1]
    async with session_factory() as check:
        assert await _count_item_names(check, "Oat Milk") == 1


@pytest.mark.asyncio
async def test_upsert_reports_creation(session):
    repo = ItemNameRepository(session)
    item_id, created = await repo.upsert("Eggs")
    assert created is True
    again, created_again = await repo.upsert("Eggs")
    assert (again, created_again) == (item_id, False)


@pytest.mark.asyncio
async def test_uncategorized_listing_and_delete(session, tenant):
    groceries = await CategoryRepository(session).add(Category(name="Groceries", user_id=tenant))
    resolver = ItemNameResolver(session)
    await resolver.resolve_item("Milk", category_id=groceries.id)
    eggs_id = await resolver.resolve_item("Eggs")

    repo = ItemNameRepository(session)
    assert [n.name for n in await repo.list_uncategorized()] == ["Eggs"]
    assert await repo.delete(eggs_id) is True
    assert await repo.delete(eggs_id) is False
    assert await repo.get_by_name("Eggs") is None


@pytest.mark.asyncio
async def test_unknown_category_propagates_and_leaves_no_row(session):
    with pytest.raises(IntegrityError):
        await ItemNameRepository(session).upsert("Cheese", category_id=uuid.uuid4())
    assert not await ItemNameRepository(session).exists("Cheese")


@pytest.mark.asyncio
async def test_upsert_rejects_dialects_without_on_conflict(session, monkeypatch):
    monkeypatch.setattr(item_names, "_ON_CONFLICT_INSERTS", {})
    with pytest.raises(RuntimeError):
        await ItemNameRepository(session).upsert("Cheese")
    assert not await ItemNameRepository(session).exists("Cheese")
