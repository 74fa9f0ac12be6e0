from fastapi import APIRouter, Body, Depends
from sqlmodel import Session

from app.db.db import get_session
from app.services import messaging
from app.utils.auth_helper import Actor, get_current_actor
from app.utils.form_validator import (
    ConversationAction,
    DeleteMessageAction,
    EditMessageAction,
    SendMessageAction,
    validate_message_action,
)


router = APIRouter()

CONVERSATION_ACTIONS = {
    "mark_read": messaging.mark_read,
    "mark_unread": messaging.mark_unread,
    "clear_conversation": messaging.clear_conversation,
    "delete_conversation": messaging.delete_conversation,
}


@router.get("")
def get_conversations(
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    """
    Conversations of the caller (derived from claims on the fly) and their messages.
    """
    conversations, messages = messaging.list_conversations(session, actor)

    return {
        "conversations": conversations,
        "messages": messages,
    }


@router.post("")
def message_action(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    action = validate_message_action(payload)

    if isinstance(action, SendMessageAction):
        message = messaging.send_message(
            session, actor, action.conversation_id, action.body, action.attachments
        )
        return {"ok": True, "message": message}

    if isinstance(action, EditMessageAction):
        message = messaging.edit_message(session, actor, action.message_id, action.body)
        return {"ok": True, "message": message}

    if isinstance(action, DeleteMessageAction):
        messaging.delete_message(session, actor, action.message_id)
        return {"ok": True}

    if isinstance(action, ConversationAction):
        CONVERSATION_ACTIONS[action.action](session, actor, action.conversation_id)

    return {"ok": True}
