import asyncio
import os
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlmodel import Session, select

from app.db.db import get_session
from app.errors import Unauthorized
from app.models.sync_cursor import SyncCursor
from app.sync.bus import now_ms
from app.sync.websocket_manager import Connection, ws_manager
from app.utils.auth_helper import Actor, get_current_actor, resolve_actor

POLL_INTERVAL_SECONDS = int(os.getenv("SYNC_POLL_INTERVAL_SECONDS", "20"))

router = APIRouter()


@router.get("/sync")
def get_sync_cursors(
    since: int = Query(default=0, ge=0),
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    """
    Latest change per topic newer than `since` (epoch ms). Clients poll this
    and refetch the topics that moved.
    """
    cursors = session.exec(
        select(SyncCursor).where(SyncCursor.at > since).order_by(SyncCursor.topic)
    ).all()

    return {
        "at": now_ms(),
        "poll_interval_seconds": POLL_INTERVAL_SECONDS,
        "changes": [
            {"topic": cursor.topic, "id": cursor.last_id, "type": cursor.last_type, "at": cursor.at}
            for cursor in cursors
        ],
    }


async def _pump(websocket: WebSocket, connection: Connection):
    while True:
        message = await connection.queue.get()
        await websocket.send_json(message)


@router.websocket("/ws/sync")
async def sync_socket(
    websocket: WebSocket,
    token: str = Query(...),
    session: Session = Depends(get_session),
):
    """
    Real-time sync signals. The frontend connects with:
      ws://<host>/ws/sync?token=<JWT>
    """
    try:
        actor = resolve_actor(session, token)
    except Unauthorized:
        await websocket.close(code=1008)
        return
    finally:
        session.close()

    # registered before accepting so nothing published after the handshake is missed
    connection = ws_manager.connect(actor.id)
    await websocket.accept()

    sender = asyncio.create_task(_pump(websocket, connection))

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        ws_manager.disconnect(actor.id, connection)
