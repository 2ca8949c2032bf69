from __future__ import annotations

from decimal import Decimal

import pytest

from receiptscanner.core.config import settings
from receiptscanner.models.enums import ThresholdType
from receiptscanner.models.schemas import Merchant, UserSettings
from receiptscanner.services.merchants import UNKNOWN_MERCHANT, MerchantRepository
from receiptscanner.services.tenants import TenantRepository
from receiptscanner.services.user_settings import UserSettingsRepository


@pytest.mark.asyncio
async def test_get_or_create_matches_names_case_insensitively(session, tenant):
    repo = MerchantRepository(session)
    created = await repo.get_or_create("Tesco", tenant, address="1 High St")
    again = await repo.get_or_create("TESCO", tenant)
    assert again.id == created.id
    assert again.address == "1 High St"


@pytest.mark.asyncio
async def test_get_or_create_falls_back_to_unknown_merchant(session, tenant):
    repo = MerchantRepository(session)
    unknown = await repo.get_or_create(None, tenant)
    assert unknown.name == UNKNOWN_MERCHANT
    assert (await repo.get_or_create("   ", tenant)).id == unknown.id


@pytest.mark.asyncio
async def test_merchants_are_tenant_scoped(session, tenant, other_tenant):
    repo = MerchantRepository(session)
    mine = await repo.get_or_create("Tesco", tenant)
    theirs = await repo.get_or_create("Tesco", other_tenant)

    assert mine.id != theirs.id
    assert await repo.get_by_id(mine.id, other_tenant) is None
    assert [m.id for m in await repo.search_by_name("tes", tenant)] == [mine.id]


@pytest.mark.asyncio
async def test_merchant_update(session, tenant):
    repo = MerchantRepository(session)
    merchant = await repo.add(Merchant(name="Aldi", user_id=tenant))
    updated = await repo.update(merchant.update_details("Aldi Stores", website="https://aldi.example"))
    assert updated.name == "Aldi Stores"
    assert (await repo.get_by_id(merchant.id, tenant)).website == "https://aldi.example"
    assert await repo.update(Merchant(name="Ghost", user_id=tenant)) is None


@pytest.mark.asyncio
async def test_settings_fall_back_to_configured_defaults(session, tenant):
    repo = UserSettingsRepository(session)
    assert await repo.get_for_user(tenant) is None
    assert await repo.get_default_currency_name(tenant) == settings.DEFAULT_CURRENCY
    assert await repo.get_default_currency_symbol(tenant) == settings.DEFAULT_CURRENCY_SYMBOL


@pytest.mark.asyncio
async def test_settings_save_inserts_then_overwrites(session, tenant):
    repo = UserSettingsRepository(session)
    first = await repo.save(
        UserSettings(user_id=tenant, default_currency_name="EUR", default_currency_symbol="€")
    )
    second = await repo.save(
        UserSettings(
            user_id=tenant,
            default_currency_name="USD",
            default_currency_symbol="$",
            threshold_type=ThresholdType.MONTHLY,
            threshold_rate=Decimal("250.00"),
        )
    )
    assert second.id == first.id
    assert second.threshold_type is ThresholdType.MONTHLY
    assert await repo.get_default_currency_name(tenant) == "USD"
    assert await repo.get_default_currency_symbol(tenant) == "$"


@pytest.mark.asyncio
async def test_tenant_registration_is_idempotent(session):
    repo = TenantRepository(session)
    assert await repo.ensure("u9") == "u9"
    assert await repo.ensure("u9") == "u9"
    assert await repo.exists("u9")
    with pytest.raises(ValueError):
        await repo.ensure("")
