"""Backend pytest configuration (kept intentionally minimal).

The core package lives in the nested `receiptscanner/` directory and is
installed from the repository root (`pip install -e .[test]`).  Avoid an
`__init__` at the backend root, which would shadow the real package.
"""

# Intentionally no path mangling here.
