from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # One conversation per claim
    claim_id: uuid.UUID = Field(foreign_key="claims.id", unique=True)
    listing_id: Optional[uuid.UUID] = Field(default=None, foreign_key="items.id")

    item_title: str = Field(default="Conversation")
    item_status: str = Field(default="active")

    # Claimant and listing owner, order does not matter for lookups
    participant_a: int = Field(foreign_key="users.id", index=True)
    participant_b: int = Field(foreign_key="users.id", index=True)

    last_message: str = Field(default="No messages yet")
    last_message_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    def other_participant(self, user_id: int) -> int:
        return self.participant_b if self.participant_a == user_id else self.participant_a

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.participant_a, self.participant_b)


class ConversationState(SQLModel, table=True):
    __tablename__ = "conversation_states"

    conversation_id: uuid.UUID = Field(foreign_key="conversations.id", primary_key=True)
    user_id: int = Field(foreign_key="users.id", primary_key=True)

    unread_count: int = Field(default=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
