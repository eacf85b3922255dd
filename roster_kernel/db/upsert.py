"""
Dialect-specific ``INSERT ... ON CONFLICT`` constructors.

Counters that many requests bump at once (rate-limit windows, the audit
sequence) are updated with a single upsert so the database serializes the
writers on the row.  PostgreSQL and SQLite share the same
``on_conflict_do_update`` API; other dialects are not supported.
"""

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def upsert_insert(session: Session, model):
    """An ``Insert`` for ``model`` that supports ``on_conflict_do_update``."""
    dialect = session.get_bind().dialect.name
    try:
        return _INSERTS[dialect](model)
    except KeyError:
        raise NotImplementedError(f"No atomic upsert for dialect '{dialect}'") from None
