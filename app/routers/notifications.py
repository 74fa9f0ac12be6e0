import uuid
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.db.db import get_session
from app.services import notifications as notification_service
from app.utils.auth_helper import Actor, get_current_actor


router = APIRouter()

@router.get("")
def get_my_notifications(
    limit: int = Query(default=20, ge=1, le=100),
    unread_only: bool = False,
    user_id: Optional[int] = None,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    notifications = notification_service.list_notifications(
        session, actor, user_id=user_id, limit=limit, unread_only=unread_only
    )

    return {"notifications": notifications}

@router.get("/count")
def get_unread_notifications_count(
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    return { "count": notification_service.count_unread(session, actor) }

@router.post("/mark-all-read")
def mark_all_notifications_read(
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    updated = notification_service.mark_all_read(session, actor)

    return {"ok": True, "updated": updated}

@router.post("/{id}/mark-read")
def mark_notification_read(
    id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    notification_service.mark_read(session, actor, id)

    return {"ok": True}
