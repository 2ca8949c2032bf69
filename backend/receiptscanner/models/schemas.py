"""Pydantic models for the receipt aggregate and its collaborators.

The domain values in this module are frozen: every "mutation" returns a
new instance, validated the same way a freshly constructed one is.
They are reconstructed from ORM rows with ``model_validate`` (all of
them set ``from_attributes``) and written back by the repositories in
``receiptscanner.services``.  Nothing here talks to the database.

Required strings (names, receipt numbers, tenant ids) are rejected at
construction time with a ``pydantic.ValidationError`` before any
storage call happens.

The second half of the module holds the boundary shapes: the
``DocumentAnalysisResult`` handed to the core by the document-analysis
collaborator, and the paged/summary/grouped results returned by the
read paths.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from receiptscanner.utils.helpers import parse_iso_datetime, utcnow
from .enums import GroupingBucket, ReceiptStatus, ThresholdType

RequiredStr = Annotated[str, Field(min_length=1)]


class InvalidStatusTransition(ValueError):
    """Raised when a receipt is moved to a status its current one cannot reach."""

    def __init__(self, current: ReceiptStatus, target: ReceiptStatus) -> None:
        super().__init__(f"cannot move receipt from {current.value} to {target.value}")
        self.current = current
        self.target = target


# Processing -> {Processed, Failed}; re-applying the current status is allowed.
ALLOWED_STATUS_TRANSITIONS: Dict[ReceiptStatus, frozenset[ReceiptStatus]] = {
    ReceiptStatus.PROCESSING: frozenset(
        {ReceiptStatus.PROCESSING, ReceiptStatus.PROCESSED, ReceiptStatus.FAILED}
    ),
    ReceiptStatus.PROCESSED: frozenset({ReceiptStatus.PROCESSED}),
    ReceiptStatus.FAILED: frozenset({ReceiptStatus.FAILED}),
}


class DomainModel(BaseModel):
    """Base for the frozen domain values."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    def _replace(self, **changes: Any):
        data = dict(self)
        data.update(changes)
        return type(self).model_validate(data)


# ---------------------------------------------------------------------------
# Domain values


class Category(DomainModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: RequiredStr
    icon: Optional[str] = None
    user_id: RequiredStr
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def rename(self, name: str, icon: Optional[str] = None) -> "Category":
        return self._replace(name=name, icon=icon if icon is not None else self.icon, updated_at=utcnow())


class ItemName(DomainModel):
    """Canonical, tenant-independent item name."""

    id: Optional[int] = None
    name: RequiredStr
    category_id: Optional[uuid.UUID] = None
    category: Optional[Category] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def with_category(self, category_id: Optional[uuid.UUID]) -> "ItemName":
        category = self.category if self.category and self.category.id == category_id else None
        return self._replace(category_id=category_id, category=category, updated_at=utcnow())


class Merchant(DomainModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: RequiredStr
    address: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    user_id: RequiredStr
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def update_details(
        self,
        name: str,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
        email: Optional[str] = None,
        website: Optional[str] = None,
    ) -> "Merchant":
        return self._replace(
            name=name,
            address=address,
            phone_number=phone_number,
            email=email,
            website=website,
            updated_at=utcnow(),
        )


class ReceiptItem(DomainModel):
    """A line on a receipt.

    ``total_price`` defaults to ``quantity * unit_price`` when it is not
    given explicitly.  ``unit_price`` may be negative (refund lines).
    ``category`` is the legacy free-text label; the normalized category is
    reached through ``item_name``.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: RequiredStr
    description: Optional[str] = None
    quantity: Decimal
    quantity_unit: Optional[str] = None
    unit_price: Decimal
    total_price: Decimal
    category: Optional[str] = None
    sku: Optional[str] = None
    receipt_id: uuid.UUID
    user_id: RequiredStr
    item_id: Optional[int] = None
    item_name: Optional[ItemName] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _default_total_price(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("total_price") is None:
            quantity, unit_price = data.get("quantity"), data.get("unit_price")
            if quantity is not None and unit_price is not None:
                data = {**data, "total_price": Decimal(str(quantity)) * Decimal(str(unit_price))}
        return data

    @classmethod
    def create(
        cls,
        name: str,
        quantity: Decimal,
        unit_price: Decimal,
        receipt_id: uuid.UUID,
        user_id: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        sku: Optional[str] = None,
        quantity_unit: Optional[str] = None,
        total_price: Optional[Decimal] = None,
        item_id: Optional[int] = None,
    ) -> "ReceiptItem":
        return cls.model_validate(
            {
                "name": name,
                "quantity": quantity,
                "unit_price": unit_price,
                "receipt_id": receipt_id,
                "user_id": user_id,
                "description": description,
                "category": category,
                "sku": sku,
                "quantity_unit": quantity_unit,
                "total_price": total_price,
                "item_id": item_id,
            }
        )

    def update_details(
        self,
        name: str,
        quantity: Decimal,
        unit_price: Decimal,
        description: Optional[str] = None,
        category: Optional[str] = None,
        sku: Optional[str] = None,
        quantity_unit: Optional[str] = None,
        total_price: Optional[Decimal] = None,
    ) -> "ReceiptItem":
        """Return the item with new details.

        ``total_price`` is recomputed from the new quantity and unit price,
        discarding any earlier override, unless an explicit total is passed.
        """
        return self._replace(
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
            description=description,
            category=category,
            sku=sku,
            quantity_unit=quantity_unit,
            updated_at=utcnow(),
        )

    def link_item_name(self, item_id: Optional[int]) -> "ReceiptItem":
        item_name = self.item_name if self.item_name and self.item_name.id == item_id else None
        return self._replace(item_id=item_id, item_name=item_name)

    @property
    def resolved_category(self) -> Optional[Category]:
        """Category reached through the canonical item name, if any."""
        return self.item_name.category if self.item_name else None


class Receipt(DomainModel):
    """Receipt aggregate root.

    Created with status ``PROCESSING``.  ``total_amount`` is expected to
    equal ``sub_total + tax_amount`` once processed, but that is the
    caller's responsibility (see ``totals_balanced``).
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    receipt_number: RequiredStr
    receipt_date: datetime
    sub_total: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    reward: Optional[Decimal] = None
    currency: str = "USD"
    image_path: Optional[str] = None
    raw_text: Optional[str] = None
    status: ReceiptStatus = ReceiptStatus.PROCESSING
    merchant_id: uuid.UUID
    merchant: Optional[Merchant] = None
    user_id: RequiredStr
    items: Tuple[ReceiptItem, ...] = ()
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        receipt_number: str,
        receipt_date: datetime,
        sub_total: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        merchant_id: uuid.UUID,
        user_id: str,
        currency: str = "USD",
        image_path: Optional[str] = None,
        raw_text: Optional[str] = None,
        reward: Optional[Decimal] = None,
    ) -> "Receipt":
        return cls.model_validate(
            {
                "receipt_number": receipt_number,
                "receipt_date": receipt_date,
                "sub_total": sub_total,
                "tax_amount": tax_amount,
                "total_amount": total_amount,
                "merchant_id": merchant_id,
                "user_id": user_id,
                "currency": currency,
                "image_path": image_path,
                "raw_text": raw_text,
                "reward": reward,
                "status": ReceiptStatus.PROCESSING,
            }
        )

    @property
    def totals_balanced(self) -> bool:
        return self.total_amount == self.sub_total + self.tax_amount

    def new_item(self, name: str, quantity: Decimal, unit_price: Decimal, **kwargs: Any) -> ReceiptItem:
        """Build an item owned by this receipt and tenant (not yet added)."""
        return ReceiptItem.create(name, quantity, unit_price, self.id, self.user_id, **kwargs)

    # --- status ------------------------------------------------------------
    def with_status(self, status: ReceiptStatus) -> "Receipt":
        status = ReceiptStatus(status)
        if status not in ALLOWED_STATUS_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.status, status)
        return self._replace(status=status, updated_at=utcnow())

    def update_processing_results(
        self,
        raw_text: Optional[str],
        sub_total: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
    ) -> "Receipt":
        processed = self.with_status(ReceiptStatus.PROCESSED)
        return processed._replace(
            raw_text=raw_text,
            sub_total=sub_total,
            tax_amount=tax_amount,
            total_amount=total_amount,
        )

    # --- details -----------------------------------------------------------
    def update_basic_details(self, receipt_number: str, receipt_date: datetime, currency: str) -> "Receipt":
        return self._replace(
            receipt_number=receipt_number,
            receipt_date=receipt_date,
            currency=currency,
            updated_at=utcnow(),
        )

    def update_amounts(
        self,
        sub_total: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        reward: Optional[Decimal] = None,
    ) -> "Receipt":
        return self._replace(
            sub_total=sub_total,
            tax_amount=tax_amount,
            total_amount=total_amount,
            reward=reward if reward is not None else self.reward,
            updated_at=utcnow(),
        )

    def with_merchant(self, merchant: Merchant) -> "Receipt":
        if merchant.user_id != self.user_id:
            raise ValueError("merchant belongs to another tenant")
        return self._replace(merchant_id=merchant.id, merchant=merchant, updated_at=utcnow())

    # --- items -------------------------------------------------------------
    def add_item(self, item: ReceiptItem) -> "Receipt":
        if item.receipt_id != self.id or item.user_id != self.user_id:
            raise ValueError("item belongs to another receipt or tenant")
        return self._replace(items=self.items + (item,), updated_at=utcnow())

    def replace_item(self, item: ReceiptItem) -> "Receipt":
        if not any(existing.id == item.id for existing in self.items):
            raise KeyError(item.id)
        items = tuple(item if existing.id == item.id else existing for existing in self.items)
        return self._replace(items=items, updated_at=utcnow())

    def remove_item(self, item_id: uuid.UUID) -> "Receipt":
        return self._replace(
            items=tuple(existing for existing in self.items if existing.id != item_id),
            updated_at=utcnow(),
        )

    def clear_items(self) -> "Receipt":
        return self._replace(items=(), updated_at=utcnow())

    def get_item(self, item_id: uuid.UUID) -> Optional[ReceiptItem]:
        return next((item for item in self.items if item.id == item_id), None)


class UserSettings(DomainModel):
    """Per-tenant preferences."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: RequiredStr
    default_currency_name: RequiredStr
    default_currency_symbol: RequiredStr
    threshold_type: Optional[ThresholdType] = None
    threshold_rate: Optional[Decimal] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Input from the document-analysis collaborator


class AnalyzedItem(BaseModel):
    """Line item as extracted from a receipt image."""

    name: Optional[str] = None
    quantity: Optional[Decimal] = None
    quantity_unit: Optional[str] = None
    unit_price: Optional[Decimal] = None
    total_price: Optional[Decimal] = None


class DocumentAnalysisResult(BaseModel):
    """Structured fields extracted from a receipt image."""

    merchant_name: Optional[str] = None
    merchant_address: Optional[str] = None
    merchant_phone: Optional[str] = None
    transaction_date: Optional[datetime] = None
    receipt_number: Optional[str] = None
    sub_total: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    total: Optional[Decimal] = None
    reward: Optional[Decimal] = None
    currency: Optional[str] = None
    items: List[AnalyzedItem] = Field(default_factory=list)
    raw_text: Optional[str] = None
    is_success: bool = True
    error_message: Optional[str] = None

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _parse_transaction_date(cls, v):
        if isinstance(v, str):
            return parse_iso_datetime(v)
        return v


# ---------------------------------------------------------------------------
# Read-path results

T = TypeVar("T")


class PagedResult(BaseModel, Generic[T]):
    """One page of a filtered, ordered result plus the unpaged count.

    ``total_count`` comes from a separate count query and may not match the
    page's snapshot under concurrent writes.
    """

    items: List[T]
    total_count: int
    skip: int = 0
    take: int = 0

    @property
    def page_number(self) -> int:
        return (self.skip // self.take) + 1 if self.take else 1

    @property
    def total_pages(self) -> int:
        if not self.take:
            return 1
        return max(1, -(-self.total_count // self.take))

    @property
    def has_previous_page(self) -> bool:
        return self.skip > 0

    @property
    def has_next_page(self) -> bool:
        return self.skip + len(self.items) < self.total_count


class ReceiptSummary(BaseModel):
    """Spending totals for a tenant over four windows."""

    total: Decimal
    this_year: Decimal
    this_month: Decimal
    this_week: Decimal


class ReceiptGroup(BaseModel):
    """Receipts whose ``receipt_date`` falls in one calendar bucket."""

    bucket: GroupingBucket
    period_start: datetime
    receipts: List[Receipt]
    subtotal: Decimal

    @property
    def count(self) -> int:
        return len(self.receipts)


class ProcessingOutcome(BaseModel):
    """Result of turning an analysis result into a stored receipt."""

    is_success: bool
    receipt: Optional[Receipt] = None
    error_message: Optional[str] = None
