from typing import Optional
import uuid
from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


CLAIM_STATUSES = ("pending", "approved", "rejected")


class Claim(SQLModel, table=True):
    __tablename__ = "claims"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    listing_id: uuid.UUID = Field(foreign_key="items.id", index=True)
    claimant_id: int = Field(foreign_key="users.id", index=True)  # for sending notifications
    reviewer_id: Optional[int] = Field(default=None, foreign_key="users.id")

    status: str = Field(default="pending", index=True)  # values: "pending", "approved", "rejected"

    # Content
    proof_description: str
    rejection_reason: Optional[str] = None

    # Handover, only set on approved claims
    handover_at: Optional[datetime] = None
    handover_notes: Optional[str] = None

    __table_args__ = (
        # At most one claim under review per listing. Losing the race to
        # insert raises IntegrityError, which is reported as a conflict.
        Index(
            "uq_claims_listing_pending",
            "listing_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        # At most one approved claim per listing
        Index(
            "uq_claims_listing_approved",
            "listing_id",
            unique=True,
            sqlite_where=text("status = 'approved'"),
            postgresql_where=text("status = 'approved'"),
        ),
    )
