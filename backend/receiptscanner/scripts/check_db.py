"""Print a quick overview of the stored receipts.

Usage::

    python -m receiptscanner.scripts.check_db [user_id]
"""

import asyncio
import sys

from sqlalchemy import func, select

from receiptscanner.core.database import dispose_engine, get_db
from receiptscanner.models.tables import ItemNameRow, ReceiptItemRow, ReceiptRow


async def check_db(user_id=None):
    async for session in get_db():
        receipts = select(func.count(ReceiptRow.id))
        items = select(func.count(ReceiptItemRow.id))
        if user_id:
            receipts = receipts.where(ReceiptRow.user_id == user_id)
            items = items.where(ReceiptItemRow.user_id == user_id)
        print(f"Receipts: {(await session.execute(receipts)).scalar()}")
        print(f"Receipt items: {(await session.execute(items)).scalar()}")
        print(f"Canonical item names: {(await session.execute(select(func.count(ItemNameRow.id)))).scalar()}")

        latest = select(ReceiptRow).order_by(ReceiptRow.created_at.desc()).limit(5)
        if user_id:
            latest = latest.where(ReceiptRow.user_id == user_id)
        rows = (await session.execute(latest)).scalars().all()
        if rows:
            print("\nLatest receipts:")
            for r in rows:
                print(f"ID: {r.id}, Number: {r.receipt_number}, Status: {r.status.value}, Total: {r.total_amount} {r.currency}")
        else:
            print("No receipts found in database")
        break
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(check_db(sys.argv[1] if len(sys.argv) > 1 else None))
