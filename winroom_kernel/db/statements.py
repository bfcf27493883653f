"""
Dialect-aware INSERT helpers.

``insert ... on conflict do nothing`` is the idempotence anchor for ledger
rows and achievements, and ``on conflict do update`` backs every upsert
(metrics, progress cache, checkpoints).  PostgreSQL and SQLite both support
the same clause through their dialect-specific ``insert`` constructs.
"""

from typing import Any, Iterable

from sqlalchemy import Row
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(session: Session, model: Any):
    """Return the dialect's ``insert()`` construct for *model*."""
    name = session.get_bind().dialect.name
    try:
        factory = _DIALECT_INSERTS[name]
    except KeyError:
        raise NotImplementedError(
            f"ON CONFLICT inserts are not supported on dialect {name}"
        ) from None
    return factory(model)


def insert_if_absent(
    session: Session,
    model: Any,
    values: dict[str, Any],
    conflict_columns: Iterable[str],
    returning: Iterable[Any] = (),
) -> Row | None:
    """
    INSERT ... ON CONFLICT (conflict_columns) DO NOTHING.

    Returns the RETURNING row when a row was inserted and None when the
    conflict target already existed.  Without *returning* the model's
    primary key is returned.
    """
    columns = tuple(returning) or (model.id,)
    stmt = (
        dialect_insert(session, model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=list(conflict_columns))
        .returning(*columns)
    )
    return session.execute(stmt).first()


def upsert(
    session: Session,
    model: Any,
    values: dict[str, Any],
    conflict_columns: Iterable[str],
    update_columns: Iterable[str],
) -> None:
    """INSERT ... ON CONFLICT (conflict_columns) DO UPDATE SET update_columns."""
    stmt = dialect_insert(session, model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={name: stmt.excluded[name] for name in update_columns},
    )
    session.execute(stmt)
