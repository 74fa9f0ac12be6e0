from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone

class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Ownership
    user_id: int = Field(foreign_key="users.id", index=True)

    # Notification fields
    type: str = Field(index=True) # values: "claim_submitted", "claim_approved", "claim_rejected"

    title: str
    message: str

    related_listing_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="items.id",
        index=True
    )
    related_claim_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="claims.id",
    )

    is_read: bool = Field(default=False)
