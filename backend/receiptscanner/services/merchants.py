"""Tenant-scoped merchant repository."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from receiptscanner.models.schemas import Merchant
from receiptscanner.models.tables import MerchantRow

logger = logging.getLogger(__name__)

UNKNOWN_MERCHANT = "Unknown Merchant"


class MerchantRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get_row(self, merchant_id: uuid.UUID, user_id: str) -> Optional[MerchantRow]:
        result = await self.db.execute(
            select(MerchantRow).where(MerchantRow.id == merchant_id, MerchantRow.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, merchant_id: uuid.UUID, user_id: str) -> Optional[Merchant]:
        row = await self._get_row(merchant_id, user_id)
        return Merchant.model_validate(row) if row else None

    async def get_by_name(self, name: str, user_id: str) -> Optional[Merchant]:
        """Case-insensitive exact match on the merchant name."""
        result = await self.db.execute(
            select(MerchantRow)
            .where(func.lower(MerchantRow.name) == name.lower(), MerchantRow.user_id == user_id)
            .order_by(MerchantRow.created_at)
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return Merchant.model_validate(row) if row else None

    async def search_by_name(self, term: str, user_id: str) -> List[Merchant]:
        pattern = f"%{term.lower()}%"
        result = await self.db.execute(
            select(MerchantRow)
            .where(func.lower(MerchantRow.name).like(pattern), MerchantRow.user_id == user_id)
            .order_by(MerchantRow.name)
        )
        return [Merchant.model_validate(row) for row in result.scalars().all()]

    async def add(self, merchant: Merchant) -> Merchant:
        row = MerchantRow(
            id=merchant.id,
            name=merchant.name,
            address=merchant.address,
            phone_number=merchant.phone_number,
            email=merchant.email,
            website=merchant.website,
            user_id=merchant.user_id,
            created_at=merchant.created_at,
        )
        self.db.add(row)
        await self.db.commit()
        logger.info("[merchants] added id=%s user_id=%s", merchant.id, merchant.user_id)
        return Merchant.model_validate(row)

    async def update(self, merchant: Merchant) -> Optional[Merchant]:
        row = await self._get_row(merchant.id, merchant.user_id)
        if row is None:
            return None
        _apply_merchant(row, merchant)
        await self.db.commit()
        return Merchant.model_validate(row)

    async def get_or_create(
        self,
        name: Optional[str],
        user_id: str,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> Merchant:
        name = (name or "").strip() or UNKNOWN_MERCHANT
        existing = await self.get_by_name(name, user_id)
        if existing is not None:
            return existing
        return await self.add(
            Merchant(name=name, address=address, phone_number=phone_number, user_id=user_id)
        )


def _apply_merchant(row: MerchantRow, merchant: Merchant) -> None:
    row.name = merchant.name
    row.address = merchant.address
    row.phone_number = merchant.phone_number
    row.email = merchant.email
    row.website = merchant.website
    row.updated_at = merchant.updated_at
