"""Repositories and services operating on an ``AsyncSession``.

Each class takes the session in its constructor and scopes every
tenant-owned query by ``user_id``.
"""
