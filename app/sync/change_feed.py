"""
Server-side change feed.

ORM writes to synced tables are picked up from the session's flushes, Core
statements (bulk updates, upserts) are registered with `track_change`. Right
before commit the feed moves the durable per-topic cursors inside the same
transaction; once the commit lands the coalesced signals go out on the bus.
A rollback discards them.
"""
from typing import Iterable, Optional
from sqlalchemy import event
from sqlalchemy.orm import Session

from app.db.statements import upsert
from app.models.sync_cursor import SyncCursor
from app.sync.bus import ChangeType, SyncSignal, now_ms, sync_bus

PENDING_KEY = "sync_pending"

# table -> (topic, attribute used as the signal id)
SYNCED_TABLES = {
    "items": ("listings", "id"),
    "claims": ("claims", "id"),
    "notifications": ("notifications", "id"),
    "conversations": ("messages", "id"),
    "conversation_states": ("messages", "conversation_id"),
    "messages": ("messages", "conversation_id"),
}

# rows reported through their conversation, which is only ever updated by them
CHILD_TABLES = ("conversation_states", "messages")


def _audience(obj) -> Optional[list]:
    table = obj.__tablename__
    if table == "notifications" or table == "conversation_states":
        return [obj.user_id]
    if table == "conversations":
        return [obj.participant_a, obj.participant_b]
    return None


def track_change(
    session: Session,
    topic: str,
    id=None,
    type: ChangeType = "updated",
    audience: Optional[Iterable[int]] = None,
):
    signal = SyncSignal(
        topic=topic,
        id=str(id) if id is not None else None,
        type=type,
        at=now_ms(),
        audience=list(audience) if audience is not None else None,
    )

    pending = session.info.setdefault(PENDING_KEY, {})
    key = (signal.topic, signal.id)

    if key in pending:
        pending[key].merge(signal)
    else:
        pending[key] = signal


def _track_instance(session: Session, obj, type: ChangeType):
    mapping = SYNCED_TABLES.get(getattr(obj, "__tablename__", None))
    if mapping is None:
        return

    topic, id_attr = mapping
    if obj.__tablename__ in CHILD_TABLES:
        type = "updated"

    track_change(session, topic, getattr(obj, id_attr, None), type, _audience(obj))


@event.listens_for(Session, "after_flush")
def _collect_flushed(session, flush_context):
    for obj in session.new:
        _track_instance(session, obj, "created")
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            _track_instance(session, obj, "updated")
    for obj in session.deleted:
        _track_instance(session, obj, "deleted")


@event.listens_for(Session, "before_commit")
def _write_cursors(session):
    session.flush()

    pending = session.info.get(PENDING_KEY)
    if not pending:
        return

    at = now_ms()
    latest = {}
    for signal in pending.values():
        signal.at = at
        latest[signal.topic] = signal

    cursor_table = SyncCursor.__table__
    for topic, signal in latest.items():
        upsert(
            session,
            SyncCursor,
            values={"topic": topic, "last_id": signal.id, "last_type": signal.type, "at": at},
            index_elements=["topic"],
            set_={"last_id": signal.id, "last_type": signal.type, "at": at},
            # last write wins, cursors never move backwards
            where=cursor_table.c.at <= at,
        )


@event.listens_for(Session, "after_commit")
def _publish_committed(session):
    pending = session.info.pop(PENDING_KEY, None)
    if not pending:
        return

    for signal in pending.values():
        sync_bus.publish(signal)


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back(session):
    session.info.pop(PENDING_KEY, None)
