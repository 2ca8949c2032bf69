from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from receiptscanner.models.enums import ReceiptStatus
from receiptscanner.models.schemas import InvalidStatusTransition
from receiptscanner.models.tables import ReceiptItemRow
from receiptscanner.services.receipt_repository import ReceiptRepository


async def _stored_item_count(session, receipt_id):
    result = await session.execute(
        select(func.count(ReceiptItemRow.id)).where(ReceiptItemRow.receipt_id == receipt_id)
    )
    return result.scalar()


@pytest.mark.asyncio
async def test_add_persists_receipt_items_and_merchant(session, make_receipt):
    receipt = make_receipt(("Milk", "2", "1.20"), ("Eggs", "12", "0.25"), ("Bread", "1", "1.10"))
    stored = await ReceiptRepository(session).add(receipt)

    assert stored.id == receipt.id
    assert stored.merchant.name == "Tesco"
    assert [i.name for i in stored.items] == ["Milk", "Eggs", "Bread"]
    assert stored.items[0].total_price == Decimal("2.40")
    assert stored.status is ReceiptStatus.PROCESSING


@pytest.mark.asyncio
async def test_reads_are_tenant_scoped(session, make_receipt, other_tenant):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt(("Milk", "1", "1.00")))

    assert await repo.get_by_id(stored.id, other_tenant) is None
    assert await repo.get_all_by_user(other_tenant) == []
    assert await repo.get_receipt_by_item_id(stored.items[0].id, other_tenant) is None
    assert (await repo.get_all_by_user_paged(other_tenant, 0, 10)).total_count == 0
    assert await repo.delete(stored.id, other_tenant) is False
    assert await repo.get_by_id(stored.id, stored.user_id) is not None


@pytest.mark.asyncio
async def test_get_receipt_by_item_id(session, make_receipt):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt(("Milk", "1", "1.00"), ("Eggs", "6", "0.30")))
    found = await repo.get_receipt_by_item_id(stored.items[1].id, stored.user_id)
    assert found.id == stored.id
    assert await repo.get_receipt_by_item_id(uuid.uuid4(), stored.user_id) is None


@pytest.mark.asyncio
async def test_update_applies_item_diff_in_one_go(session, make_receipt):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt(("Milk", "1", "1.00"), ("Eggs", "6", "0.30"), ("Bread", "1", "1.10")))
    milk, eggs, bread = stored.items

    edited = (
        stored.replace_item(milk.update_details("Milk", Decimal("3"), Decimal("1.00")))
        .remove_item(eggs.id)
        .update_amounts(Decimal("5.00"), Decimal("0"), Decimal("5.00"))
    )
    butter = edited.new_item("Butter", Decimal("1"), Decimal("0.90"))
    updated = await repo.update(edited.add_item(butter))

    assert [i.name for i in updated.items] == ["Milk", "Bread", "Butter"]
    assert updated.items[0].total_price == Decimal("3.00")
    assert updated.total_amount == Decimal("5.00")
    assert await _stored_item_count(session, stored.id) == 3

    reloaded = await repo.get_with_items(stored.id, stored.user_id)
    assert [i.id for i in reloaded.items] == [milk.id, bread.id, butter.id]


@pytest.mark.asyncio
async def test_update_overwrites_merchant_details(session, make_receipt):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt(("Milk", "1", "1.00")))

    renamed = stored.merchant.update_details("Tesco Extra", address="1 High St")
    updated = await repo.update(stored.with_merchant(renamed))

    assert updated.merchant.name == "Tesco Extra"
    assert updated.merchant.address == "1 High St"


@pytest.mark.asyncio
async def test_update_of_unknown_receipt_returns_none(session, make_receipt):
    assert await ReceiptRepository(session).update(make_receipt(("Milk", "1", "1.00"))) is None


@pytest.mark.asyncio
async def test_update_status_follows_transition_rules(session, make_receipt):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt())

    processed = await repo.update_status(stored.id, stored.user_id, ReceiptStatus.PROCESSED)
    assert processed.status is ReceiptStatus.PROCESSED
    with pytest.raises(InvalidStatusTransition):
        await repo.update_status(stored.id, stored.user_id, ReceiptStatus.FAILED)
    assert (await repo.get_by_id(stored.id, stored.user_id)).status is ReceiptStatus.PROCESSED
    assert await repo.update_status(uuid.uuid4(), stored.user_id, ReceiptStatus.FAILED) is None


@pytest.mark.asyncio
async def test_delete_receipt_items_keeps_receipt(session, make_receipt):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt(("Milk", "1", "1.00"), ("Eggs", "6", "0.30")))

    assert await repo.delete_receipt_items(stored.id, stored.user_id) == 2

    reloaded = await repo.get_with_items(stored.id, stored.user_id)
    assert reloaded is not None
    assert reloaded.items == ()
    # values loaded before the delete are unaffected
    assert len(stored.items) == 2


@pytest.mark.asyncio
async def test_delete_cascades_to_items(session, make_receipt):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt(("Milk", "1", "1.00"), ("Eggs", "6", "0.30")))

    assert await repo.delete(stored.id, stored.user_id) is True
    assert await repo.get_by_id(stored.id, stored.user_id) is None
    assert await _stored_item_count(session, stored.id) == 0
    assert await repo.delete(stored.id, stored.user_id) is False


@pytest.mark.asyncio
async def test_add_rejects_items_of_another_receipt(session, make_receipt):
    first = make_receipt(("Milk", "1", "1.00"))
    second = make_receipt(number="R-2")
    foreign = second.model_validate({**dict(second), "items": first.items})
    with pytest.raises(ValueError):
        await ReceiptRepository(session).add(foreign)


@pytest.mark.asyncio
async def test_update_cannot_bypass_the_status_machine(session, make_receipt):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt(("Milk", "1", "1.00")))
    failed = await repo.update_status(stored.id, stored.user_id, ReceiptStatus.FAILED)

    with pytest.raises(InvalidStatusTransition):
        await repo.update(failed.model_copy(update={"status": ReceiptStatus.PROCESSED}))
    assert (await repo.get_by_id(stored.id, stored.user_id)).status is ReceiptStatus.FAILED


@pytest.mark.asyncio
async def test_update_accepts_allowed_status_change_and_basic_details(session, make_receipt):
    repo = ReceiptRepository(session)
    stored = await repo.add(make_receipt(("Milk", "1", "1.00")))

    edited = stored.with_status(ReceiptStatus.PROCESSED).update_basic_details(
        "INV-42", stored.receipt_date.replace(day=2), "EUR"
    )
    updated = await repo.update(edited)

    assert updated.status is ReceiptStatus.PROCESSED
    assert (updated.receipt_number, updated.receipt_date.day, updated.currency) == ("INV-42", 2, "EUR")
