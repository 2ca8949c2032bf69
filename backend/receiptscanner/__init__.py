"""Top-level package for the receipt scanner persistence core.

This package holds the receipt aggregate model, the canonical item-name
lookup and the tenant-scoped repositories built on an async SQLAlchemy
session.  HTTP transport, authentication and document analysis live
outside this package; they hand the core a ``DocumentAnalysisResult``
and a tenant id.

To create the tables for a local database you can execute:

```bash
python -m receiptscanner.scripts.init_db
```

The default configuration uses a local SQLite database stored in
``receiptscanner.db``.  Override ``DATABASE_URL`` through the environment
or a ``.env`` file at the project root.
"""

__all__: list[str] = []
