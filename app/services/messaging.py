"""
Messages inside claim conversations and the per-participant unread counters.

Counter changes are single upsert statements with relative deltas, so two
participants sending at the same time never lose an increment.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional, Tuple
from pydantic import BaseModel, ValidationError
from sqlalchemy import case, delete, or_
from sqlmodel import Session, select

from app.db.statements import upsert
from app.errors import Forbidden, InvalidInput, NotFound
from app.models.conversation import Conversation, ConversationState
from app.models.item import Item
from app.models.message import Message
from app.services.conversations import derive_conversations
from app.services.identity import resolve_profiles
from app.sync.change_feed import track_change
from app.utils.auth_helper import Actor
from app.utils.s3_service import resolve_attachment_url

logger = logging.getLogger(__name__)

EMPTY_PREVIEW = "No messages yet"


class Attachment(BaseModel):
    id: str
    kind: Literal["image", "video"]
    url: str
    fileName: str
    mimeType: str
    size: int


class ConversationView(BaseModel):
    id: uuid.UUID
    claim_id: uuid.UUID
    participant_id: int
    participant_name: str
    participant_role: str
    item_id: Optional[uuid.UUID] = None
    item_type: str
    item_title: str
    item_status: str
    last_message: str
    last_message_at: datetime
    unread_count: int


class MessageView(BaseModel):
    id: int
    conversation_id: uuid.UUID
    sender: Literal["me", "participant"]
    body: str
    attachments: List[Attachment] = []
    edited_at: Optional[datetime] = None
    created_at: datetime


def sanitize_attachments(value) -> List[dict]:
    """Keep well-formed image/video attachments, drop the rest."""
    if not isinstance(value, list):
        return []

    attachments = []
    for entry in value:
        if not isinstance(entry, dict):
            continue

        data = dict(entry)
        if not isinstance(data.get("id"), str) or not data["id"].strip():
            data["id"] = str(uuid.uuid4())

        # bool is an int subclass, never a valid size
        if isinstance(data.get("size"), bool):
            continue

        try:
            attachments.append(Attachment(**data).model_dump())
        except ValidationError:
            continue

    return attachments


def build_preview(body: str, attachments: list) -> str:
    if body.strip():
        return body.strip()
    if not attachments:
        return EMPTY_PREVIEW
    return "Sent an attachment" if len(attachments) == 1 else f"Sent {len(attachments)} attachments"


def to_message_view(message: Message, viewer_id: int) -> MessageView:
    return MessageView(
        id=message.id,
        conversation_id=message.conversation_id,
        sender="me" if message.sender_id == viewer_id else "participant",
        body=message.body,
        attachments=[
            Attachment(**{**attachment, "url": resolve_attachment_url(attachment["url"])})
            for attachment in sanitize_attachments(message.attachments)
        ],
        edited_at=message.edited_at,
        created_at=message.created_at,
    )


def list_conversations(session: Session, actor: Actor) -> Tuple[List[ConversationView], List[MessageView]]:
    derive_conversations(session, actor.id)

    conversations = session.exec(
        select(Conversation)
        .where(or_(Conversation.participant_a == actor.id, Conversation.participant_b == actor.id))
        .order_by(Conversation.last_message_at.desc())
    ).all()

    if not conversations:
        return [], []

    conversation_ids = [conversation.id for conversation in conversations]

    profiles = resolve_profiles(
        session, [conversation.other_participant(actor.id) for conversation in conversations]
    )

    # Only the caller's own counters
    states = session.exec(
        select(ConversationState)
        .where(ConversationState.conversation_id.in_(conversation_ids))
        .where(ConversationState.user_id == actor.id)
    ).all()
    unread = {state.conversation_id: state.unread_count for state in states}

    listing_ids = [conversation.listing_id for conversation in conversations if conversation.listing_id]
    item_types = {}
    if listing_ids:
        item_types = dict(session.exec(select(Item.id, Item.type).where(Item.id.in_(listing_ids))).all())

    messages = session.exec(
        select(Message)
        .where(Message.conversation_id.in_(conversation_ids))
        .order_by(Message.created_at.asc(), Message.id.asc())
    ).all()

    views = []
    for conversation in conversations:
        other_id = conversation.other_participant(actor.id)
        profile = profiles.get(other_id)

        views.append(ConversationView(
            id=conversation.id,
            claim_id=conversation.claim_id,
            participant_id=other_id,
            participant_name=profile.display_name if profile else "Unknown User",
            participant_role=profile.role if profile else "student",
            item_id=conversation.listing_id,
            item_type=item_types.get(conversation.listing_id, "found"),
            item_title=conversation.item_title,
            item_status=conversation.item_status,
            last_message=conversation.last_message,
            last_message_at=conversation.last_message_at,
            unread_count=unread.get(conversation.id, 0),
        ))

    return views, [to_message_view(message, actor.id) for message in messages]


def get_conversation_for_actor(session: Session, actor: Actor, conversation_id: uuid.UUID) -> Conversation:
    conversation = session.get(Conversation, conversation_id)

    if not conversation:
        raise NotFound("Conversation not found")

    if not conversation.has_participant(actor.id):
        raise Forbidden("Not a participant of this conversation")

    return conversation


def _get_own_message(session: Session, actor: Actor, message_id: int) -> Tuple[Message, Conversation]:
    message = session.get(Message, message_id)
    if not message:
        raise NotFound("Message not found")

    if message.sender_id != actor.id:
        raise Forbidden("Only the sender can change this message")

    return message, get_conversation_for_actor(session, actor, message.conversation_id)


def _set_unread(session: Session, conversation_id: uuid.UUID, user_id: int, now: datetime):
    upsert(
        session,
        ConversationState,
        values={"conversation_id": conversation_id, "user_id": user_id, "unread_count": 0, "updated_at": now},
        index_elements=["conversation_id", "user_id"],
        set_={"unread_count": 0, "updated_at": now},
    )


def _increment_unread(session: Session, conversation_id: uuid.UUID, user_id: int, now: datetime):
    upsert(
        session,
        ConversationState,
        values={"conversation_id": conversation_id, "user_id": user_id, "unread_count": 1, "updated_at": now},
        index_elements=["conversation_id", "user_id"],
        set_={"unread_count": ConversationState.__table__.c.unread_count + 1, "updated_at": now},
    )


def refresh_preview(session: Session, conversation: Conversation):
    """Point the conversation preview at whatever message is now the latest."""
    latest = session.exec(
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(1)
    ).first()

    now = datetime.now(timezone.utc)

    if latest is None:
        conversation.last_message = EMPTY_PREVIEW
        conversation.last_message_at = now
    else:
        conversation.last_message = build_preview(latest.body, sanitize_attachments(latest.attachments))
        conversation.last_message_at = latest.created_at

    conversation.updated_at = now
    session.add(conversation)


def send_message(
    session: Session,
    actor: Actor,
    conversation_id: uuid.UUID,
    body: Optional[str] = None,
    attachments: Optional[list] = None,
) -> MessageView:
    conversation = get_conversation_for_actor(session, actor, conversation_id)

    text = (body or "").strip()
    clean_attachments = sanitize_attachments(attachments)

    if not text and not clean_attachments:
        raise InvalidInput("Message cannot be empty")

    now = datetime.now(timezone.utc)

    message = Message(
        conversation_id=conversation.id,
        sender_id=actor.id,
        body=text,
        attachments=clean_attachments,
        created_at=now,
    )
    session.add(message)

    conversation.last_message = build_preview(text, clean_attachments)
    conversation.last_message_at = now
    conversation.updated_at = now
    session.add(conversation)

    # Sending means the sender is caught up; the other side gets one more unread
    recipient_id = conversation.other_participant(actor.id)
    _set_unread(session, conversation.id, actor.id, now)
    _increment_unread(session, conversation.id, recipient_id, now)

    track_change(session, "messages", conversation.id, "updated", [actor.id, recipient_id])

    session.commit()
    session.refresh(message)

    return to_message_view(message, actor.id)


def edit_message(session: Session, actor: Actor, message_id: int, body: str) -> MessageView:
    text = (body or "").strip()
    if not text:
        raise InvalidInput("Message cannot be empty")

    message, conversation = _get_own_message(session, actor, message_id)

    message.body = text
    message.edited_at = datetime.now(timezone.utc)
    session.add(message)
    session.flush()

    refresh_preview(session, conversation)
    session.commit()
    session.refresh(message)

    return to_message_view(message, actor.id)


def delete_message(session: Session, actor: Actor, message_id: int):
    message, conversation = _get_own_message(session, actor, message_id)

    session.delete(message)
    session.flush()

    refresh_preview(session, conversation)
    session.commit()


def mark_read(session: Session, actor: Actor, conversation_id: uuid.UUID):
    conversation = get_conversation_for_actor(session, actor, conversation_id)

    _set_unread(session, conversation.id, actor.id, datetime.now(timezone.utc))
    track_change(session, "messages", conversation.id, "updated", [actor.id])

    session.commit()


def mark_unread(session: Session, actor: Actor, conversation_id: uuid.UUID):
    conversation = get_conversation_for_actor(session, actor, conversation_id)
    now = datetime.now(timezone.utc)

    unread_count = ConversationState.__table__.c.unread_count
    upsert(
        session,
        ConversationState,
        values={"conversation_id": conversation.id, "user_id": actor.id, "unread_count": 1, "updated_at": now},
        index_elements=["conversation_id", "user_id"],
        # never lowers an existing count
        set_={"unread_count": case((unread_count < 1, 1), else_=unread_count), "updated_at": now},
    )
    track_change(session, "messages", conversation.id, "updated", [actor.id])

    session.commit()


def clear_conversation(session: Session, actor: Actor, conversation_id: uuid.UUID):
    conversation = get_conversation_for_actor(session, actor, conversation_id)

    session.exec(
        delete(Message)
        .where(Message.conversation_id == conversation.id)
        .execution_options(synchronize_session=False)
    )
    session.expire_all()

    refresh_preview(session, conversation)
    _set_unread(session, conversation.id, actor.id, datetime.now(timezone.utc))
    track_change(session, "messages", conversation.id, "updated", [conversation.participant_a, conversation.participant_b])

    session.commit()


def delete_conversation(session: Session, actor: Actor, conversation_id: uuid.UUID):
    conversation = get_conversation_for_actor(session, actor, conversation_id)
    participants = [conversation.participant_a, conversation.participant_b]

    # messages and counters go with the conversation
    session.exec(
        delete(Message)
        .where(Message.conversation_id == conversation.id)
        .execution_options(synchronize_session=False)
    )
    session.exec(
        delete(ConversationState)
        .where(ConversationState.conversation_id == conversation.id)
        .execution_options(synchronize_session=False)
    )
    session.delete(conversation)
    track_change(session, "messages", conversation.id, "deleted", participants)

    session.commit()
    logger.info("Conversation %s deleted by user %s", conversation_id, actor.id)
