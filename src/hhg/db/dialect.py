"""Backend-specific INSERT constructs for ON CONFLICT clauses."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db: AsyncSession, model: Any):  # noqa: ANN201
    """Return an INSERT for ``model`` that supports ``on_conflict_do_*`` on the session's backend."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    msg = f"Unsupported database backend: {dialect}"
    raise RuntimeError(msg)
