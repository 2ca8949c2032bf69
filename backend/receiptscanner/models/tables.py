"""SQLAlchemy ORM models for the receipt core.

These rows define the relational schema and nothing else: they are the
store-adapter boundary.  Business rules live on the frozen values in
``receiptscanner.models.schemas``, which are reconstructed from these
rows with ``model_validate`` and written back by the repositories.

Every tenant-scoped table carries ``user_id`` referencing ``users.id``
with restrict-on-delete.  ``item_names`` is deliberately tenant
independent and unique on ``name``.

If you extend or modify these models remember to call the ``init_db``
helper during development to recreate the tables.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from receiptscanner.core.database import Base
from receiptscanner.utils.helpers import utcnow
from .enums import ReceiptStatus, ThresholdType

MONEY = Numeric(18, 2)
QUANTITY = Numeric(10, 3)


class UserRow(Base):
    """Tenant owning rows.  Created by the authentication collaborator."""

    __tablename__ = "users"

    id = Column(String(450), primary_key=True)
    email = Column(String(256), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class MerchantRow(Base):
    __tablename__ = "merchants"

    id = Column(Uuid, primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    address = Column(String(500), nullable=True)
    phone_number = Column(String(20), nullable=True)
    email = Column(String(100), nullable=True)
    website = Column(String(200), nullable=True)
    user_id = Column(String(450), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True)
    name = Column(String(100), nullable=False)
    icon = Column(String(50), nullable=True)
    user_id = Column(String(450), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)


class ItemNameRow(Base):
    """Canonical item name shared by every tenant."""

    __tablename__ = "item_names"
    __table_args__ = (UniqueConstraint("name", name="uq_item_names_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    # No ondelete action: clearing references when a category goes away is
    # the caller's job.
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    category = relationship("CategoryRow")


class ReceiptItemRow(Base):
    __tablename__ = "receipt_items"

    id = Column(Uuid, primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(String(500), nullable=True)
    quantity = Column(QUANTITY, nullable=False)
    quantity_unit = Column(String(20), nullable=True)
    unit_price = Column(MONEY, nullable=False)
    total_price = Column(MONEY, nullable=False)
    # Legacy free-text label, kept alongside the normalized ItemName category.
    category = Column(String(100), nullable=True)
    sku = Column(String(50), nullable=True)
    receipt_id = Column(Uuid, ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(450), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("item_names.id"), nullable=True, index=True)
    # Insertion position inside the receipt; breaks created_at ties.
    line_number = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    receipt = relationship("ReceiptRow", back_populates="items")
    item_name = relationship("ItemNameRow")


class ReceiptRow(Base):
    """Receipt aggregate root."""

    __tablename__ = "receipts"
    __table_args__ = (
        Index("ix_receipts_user_created_at", "user_id", "created_at"),
        Index("ix_receipts_user_receipt_date", "user_id", "receipt_date"),
    )

    id = Column(Uuid, primary_key=True)
    receipt_number = Column(String(100), nullable=False)
    receipt_date = Column(DateTime, nullable=False)
    sub_total = Column(MONEY, nullable=False, default=0)
    tax_amount = Column(MONEY, nullable=False, default=0)
    total_amount = Column(MONEY, nullable=False, default=0)
    reward = Column(MONEY, nullable=True)
    currency = Column(String(10), nullable=False, default="USD")
    image_path = Column(String(500), nullable=True)
    raw_text = Column(Text, nullable=True)
    status = Column(Enum(ReceiptStatus), nullable=False, default=ReceiptStatus.PROCESSING)
    merchant_id = Column(Uuid, ForeignKey("merchants.id", ondelete="RESTRICT"), nullable=False, index=True)
    user_id = Column(String(450), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    merchant = relationship("MerchantRow")
    items = relationship(
        "ReceiptItemRow",
        back_populates="receipt",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=[ReceiptItemRow.created_at, ReceiptItemRow.line_number],
    )


class UserSettingsRow(Base):
    """Per-tenant preferences (one row per tenant)."""

    __tablename__ = "settings"

    id = Column(Uuid, primary_key=True)
    user_id = Column(String(450), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, unique=True)
    default_currency_name = Column(String(10), nullable=False)
    default_currency_symbol = Column(String(5), nullable=False)
    threshold_type = Column(Enum(ThresholdType), nullable=True)
    threshold_rate = Column(MONEY, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)
