from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session


def dialect_insert(session: Session, model):
    """
    INSERT construct for the session's dialect, so callers can use
    ON CONFLICT clauses on both PostgreSQL and SQLite.
    """
    dialect = session.get_bind().dialect.name

    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)

    raise RuntimeError(f"Upserts are not supported on '{dialect}'")


def insert_if_absent(session: Session, model, rows: list, index_elements: list):
    if not rows:
        return None

    stmt = (
        dialect_insert(session, model)
        .values(rows)
        .on_conflict_do_nothing(index_elements=index_elements)
    )
    return session.exec(stmt)


def upsert(session: Session, model, values: dict, index_elements: list, set_: dict, where=None):
    """
    Insert `values`, or apply `set_` to the existing row. `set_` may hold
    column expressions so counters move by relative deltas inside the store.
    """
    stmt = dialect_insert(session, model).values(**values)
    stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=set_, where=where)
    return session.exec(stmt)
