import uuid
from typing import Optional
from sqlalchemy import update
from sqlmodel import Session, func, select

from app.errors import Forbidden, NotFound
from app.models.notification import Notification
from app.sync.change_feed import track_change
from app.utils.auth_helper import Actor


def emit_notification(
    session: Session,
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    related_listing_id: Optional[uuid.UUID] = None,
    related_claim_id: Optional[uuid.UUID] = None,
) -> Notification:
    """
    Add one unread notification to the caller's unit of work. The caller
    commits it together with the transition that caused it.
    """
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        related_listing_id=related_listing_id,
        related_claim_id=related_claim_id,
        is_read=False,
    )
    session.add(notification)
    return notification


def list_notifications(
    session: Session,
    actor: Actor,
    user_id: Optional[int] = None,
    limit: int = 20,
    unread_only: bool = False,
):
    target_id = user_id if user_id is not None else actor.id

    if target_id != actor.id and actor.role != "admin":
        raise Forbidden("Cannot read another user's notifications")

    query = (
        select(Notification)
        .where(Notification.user_id == target_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )

    if unread_only:
        query = query.where(Notification.is_read == False)

    return session.exec(query).all()


def count_unread(session: Session, actor: Actor) -> int:
    return session.exec(
        select(func.count(Notification.id))
        .where(Notification.user_id == actor.id)
        .where(Notification.is_read == False)
    ).one()


def mark_read(session: Session, actor: Actor, notification_id: uuid.UUID) -> Notification:
    notif = session.exec(
        select(Notification)
        .where(Notification.id == notification_id)
        .where(Notification.user_id == actor.id)
    ).first()

    if not notif:
        raise NotFound("Notification not found")

    # already read: nothing to write
    if notif.is_read:
        return notif

    notif.is_read = True
    session.add(notif)
    session.commit()
    session.refresh(notif)

    return notif


def mark_all_read(session: Session, actor: Actor) -> int:
    result = session.exec(
        update(Notification)
        .where(Notification.user_id == actor.id)
        .where(Notification.is_read == False)
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    updated = result.rowcount or 0

    if updated:
        track_change(session, "notifications", type="updated", audience=[actor.id])

    session.commit()

    return updated
