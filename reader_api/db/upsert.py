"""
Dialect-aware INSERT ... ON CONFLICT helpers.

Every unique-key write in this service goes through here: "insert, and if the
unique key already exists, treat it as success with a flag saying no new row
was created". PostgreSQL in production, SQLite for local runs and tests.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from reader_api.core.errors import InfrastructureError


def insert_stmt(db: Session, table: Table):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(table)
    if dialect == "sqlite":
        return sqlite_insert(table)
    raise InfrastructureError(f"Unsupported database dialect: {dialect}")


def insert_or_ignore(
    db: Session,
    table: Table,
    values: dict[str, Any],
    index_elements: list[str] | None = None,
) -> int | None:
    """
    Returns the new row id, or None when a unique key already existed.

    With index_elements=None any unique violation is ignored (needed for
    expression indexes such as the case-insensitive book title key).
    """
    stmt = insert_stmt(db, table).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    stmt = stmt.returning(table.c.id)
    return db.execute(stmt).scalar_one_or_none()


def upsert(
    db: Session,
    table: Table,
    values: dict[str, Any],
    index_elements: list[str],
    update: dict[str, Any] | None = None,
) -> int:
    """
    Insert `values`, or apply `update` to the existing row on conflict.

    `update` maps column name -> value or a callable(excluded) that builds a
    SQL expression from the proposed row (e.g. keep the larger of two values).
    Returns the row id either way.
    """
    stmt = insert_stmt(db, table).values(**values)
    set_: dict[str, Any] = {}
    for col, val in (update or {}).items():
        set_[col] = val(stmt.excluded) if callable(val) else val
    if not set_:
        # DO UPDATE needs at least one column so RETURNING yields the row
        set_ = {index_elements[0]: stmt.excluded[index_elements[0]]}
    stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)
    stmt = stmt.returning(table.c.id)
    return db.execute(stmt).scalar_one()
