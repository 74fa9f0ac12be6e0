import uuid
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from app.errors import InvalidInput


class SendMessageAction(BaseModel):
    action: Literal["send"]
    conversation_id: uuid.UUID
    body: Optional[str] = ""
    attachments: Optional[List[dict]] = None


class EditMessageAction(BaseModel):
    action: Literal["edit_message"]
    message_id: int
    body: str


class DeleteMessageAction(BaseModel):
    action: Literal["delete_message"]
    message_id: int


class ConversationAction(BaseModel):
    action: Literal["mark_read", "mark_unread", "clear_conversation", "delete_conversation"]
    conversation_id: uuid.UUID


MessageAction = Annotated[
    Union[SendMessageAction, EditMessageAction, DeleteMessageAction, ConversationAction],
    Field(discriminator="action"),
]

_message_action_adapter = TypeAdapter(MessageAction)


def first_error(error: ValidationError) -> str:
    err = error.errors()[0]
    location = ".".join(str(part) for part in err["loc"])
    return f"{location}: {err['msg']}" if location else err["msg"]


def validate_message_action(payload: dict) -> MessageAction:
    if not isinstance(payload.get("action"), str):
        raise InvalidInput("Unsupported action")

    try:
        return _message_action_adapter.validate_python(payload)
    except ValidationError as e:
        raise InvalidInput(first_error(e))
