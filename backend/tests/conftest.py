from __future__ import annotations

import datetime as dt
import sys
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

# Add backend folder to sys.path so `import receiptscanner...` works in tests when running from backend root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from receiptscanner.core.database import build_engine, build_session_factory, init_db  # noqa: E402
from receiptscanner.models.schemas import Merchant, Receipt  # noqa: E402
from receiptscanner.services.merchants import MerchantRepository  # noqa: E402
from receiptscanner.services.tenants import TenantRepository  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'receipts.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def tenant(session):
    return await TenantRepository(session).ensure("u1", "u1@example.com")


@pytest_asyncio.fixture
async def other_tenant(session):
    return await TenantRepository(session).ensure("u2", "u2@example.com")


@pytest_asyncio.fixture
async def merchant(session, tenant):
    return await MerchantRepository(session).add(Merchant(name="Tesco", user_id=tenant))


@pytest.fixture
def make_receipt(merchant):
    """Build an unsaved receipt for the merchant's tenant with ``(name, qty, price)`` lines."""

    def _make(*lines, receipt_date=dt.datetime(2024, 3, 1, 12, 0), total="10.00", number="R-1", **kwargs):
        receipt = Receipt.create(
            receipt_number=number,
            receipt_date=receipt_date,
            sub_total=Decimal(total),
            tax_amount=Decimal("0"),
            total_amount=Decimal(total),
            merchant_id=merchant.id,
            user_id=merchant.user_id,
            **kwargs,
        )
        for name, quantity, unit_price in lines:
            receipt = receipt.add_item(receipt.new_item(name, Decimal(quantity), Decimal(unit_price)))
        return receipt

    return _make
