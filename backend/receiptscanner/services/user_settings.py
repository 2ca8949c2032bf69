"""Per-tenant settings repository.

Each tenant has at most one settings row (unique on ``user_id``).  The
currency getters fall back to the configured defaults when a tenant has
not saved any settings yet.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from receiptscanner.core.config import settings
from receiptscanner.models.schemas import UserSettings
from receiptscanner.models.tables import UserSettingsRow
from receiptscanner.utils.helpers import utcnow


class UserSettingsRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get_row(self, user_id: str) -> Optional[UserSettingsRow]:
        result = await self.db.execute(select(UserSettingsRow).where(UserSettingsRow.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_for_user(self, user_id: str) -> Optional[UserSettings]:
        row = await self._get_row(user_id)
        return UserSettings.model_validate(row) if row else None

    async def save(self, user_settings: UserSettings) -> UserSettings:
        """Insert the tenant's settings or overwrite the existing row."""
        row = await self._get_row(user_settings.user_id)
        if row is None:
            row = UserSettingsRow(
                id=user_settings.id,
                user_id=user_settings.user_id,
                created_at=user_settings.created_at,
            )
            self.db.add(row)
        else:
            row.updated_at = utcnow()
        row.default_currency_name = user_settings.default_currency_name
        row.default_currency_symbol = user_settings.default_currency_symbol
        row.threshold_type = user_settings.threshold_type
        row.threshold_rate = user_settings.threshold_rate
        await self.db.commit()
        return UserSettings.model_validate(row)

    async def get_default_currency_name(self, user_id: str) -> str:
        current = await self.get_for_user(user_id)
        return current.default_currency_name if current else settings.DEFAULT_CURRENCY

    async def get_default_currency_symbol(self, user_id: str) -> str:
        current = await self.get_for_user(user_id)
        return current.default_currency_symbol if current else settings.DEFAULT_CURRENCY_SYMBOL
