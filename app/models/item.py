import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Item(SQLModel, table=True):
    __tablename__ = "items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Reporter info, never changes after creation
    user_id: int = Field(foreign_key="users.id", index=True)

    # Item fields
    title: str
    category: str = Field(default="others")
    description: str = Field(default="")
    location: str = Field(default="")
    type: str  # "lost" or "found"
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    image: str = Field(default="")

    status: str = Field(default="active", index=True)  # active/matched/claimed/closed/archived
