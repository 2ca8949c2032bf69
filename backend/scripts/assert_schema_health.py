"""Schema health assertions.

Run against the configured database:
  DATABASE_URL=... python scripts/assert_schema_health.py

Checks:
  1. Unique constraint uq_item_names_name on item_names.name
  2. Tenant indexes ix_receipts_user_created_at / ix_receipts_user_receipt_date
  3. receipt_items.receipt_id cascades on receipt delete
"""
from __future__ import annotations

import os
import sys

from sqlalchemy import create_engine, inspect

REQUIRED_RECEIPT_INDEXES = ("ix_receipts_user_created_at", "ix_receipts_user_receipt_date")


def sync_url(url: str) -> str:
    return url.replace("+aiosqlite", "").replace("+asyncpg", "+psycopg")


def assert_item_names_unique(inspector) -> None:
    constraints = {uc["name"]: uc["column_names"] for uc in inspector.get_unique_constraints("item_names")}
    if constraints.get("uq_item_names_name") != ["name"]:
        raise SystemExit(f"Missing unique constraint uq_item_names_name, found {constraints}")
    print("[ok] item_names.name is unique")


def assert_receipts_indexes(inspector) -> None:
    names = {ix["name"] for ix in inspector.get_indexes("receipts")}
    missing = [name for name in REQUIRED_RECEIPT_INDEXES if name not in names]
    if missing:
        raise SystemExit(f"Missing index(es) on receipts: {missing}")
    print("[ok] tenant indexes present on receipts")


def assert_items_cascade(inspector) -> None:
    for fk in inspector.get_foreign_keys("receipt_items"):
        if fk["referred_table"] == "receipts" and fk["constrained_columns"] == ["receipt_id"]:
            ondelete = (fk.get("options") or {}).get("ondelete", "")
            if ondelete.upper() != "CASCADE":
                raise SystemExit(f"receipt_items.receipt_id does not cascade (ondelete={ondelete!r})")
            print("[ok] receipt_items cascade with their receipt")
            return
    raise SystemExit("Missing foreign key receipt_items.receipt_id -> receipts.id")


def check_schema(url: str) -> None:
    engine = create_engine(sync_url(url), pool_pre_ping=True)
    try:
        with engine.connect() as conn:
            inspector = inspect(conn)
            assert_item_names_unique(inspector)
            assert_receipts_indexes(inspector)
            assert_items_cascade(inspector)
    finally:
        engine.dispose()


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    url = argv[0] if argv else os.environ.get("DATABASE_URL")
    if not url:
        raise SystemExit("DATABASE_URL not set")
    check_schema(url)
    print("Schema health OK.")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
