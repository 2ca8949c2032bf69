"""Tenant registry.

Tenants are issued by the authentication collaborator; the core only
needs a ``users`` row to exist so the restrict-on-delete foreign keys of
tenant-owned tables hold.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from receiptscanner.models.tables import UserRow

logger = logging.getLogger(__name__)


class TenantRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def exists(self, user_id: str) -> bool:
        result = await self.db.execute(select(UserRow.id).where(UserRow.id == user_id))
        return result.scalar_one_or_none() is not None

    async def ensure(self, user_id: str, email: Optional[str] = None) -> str:
        """Create the tenant row if it is missing.  Returns the tenant id."""
        if not user_id:
            raise ValueError("user_id is required")
        if await self.exists(user_id):
            return user_id
        self.db.add(UserRow(id=user_id, email=email))
        await self.db.commit()
        logger.info("[tenants] registered user_id=%s", user_id)
        return user_id
