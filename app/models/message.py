from typing import Optional
import uuid
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    # Autoincrement id doubles as the insertion-order tie breaker
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    conversation_id: uuid.UUID = Field(foreign_key="conversations.id", index=True)
    sender_id: int = Field(foreign_key="users.id")

    body: str = Field(default="")
    attachments: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    edited_at: Optional[datetime] = None
