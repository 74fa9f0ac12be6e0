"""
Lazily materializes one conversation per claim, between the claimant and
the listing owner, whenever either of them opens their conversation list.

Safe to run on every read: both inserts are insert-if-absent against unique
keys, so concurrent page loads never duplicate rows and existing unread
counters are left alone.
"""
import logging
import uuid
from datetime import datetime, timezone
from sqlalchemy import or_
from sqlmodel import Session, select

from app.db.statements import insert_if_absent
from app.models.claim import Claim
from app.models.conversation import Conversation, ConversationState
from app.models.item import Item
from app.services.identity import resolve_profiles

logger = logging.getLogger(__name__)

STARTED_PREVIEW = "Claim conversation started"


def derive_conversations(session: Session, user_id: int) -> int:
    """Returns the number of claims with a conversation available to `user_id`."""
    rows = session.exec(
        select(Claim.id, Claim.listing_id, Claim.claimant_id, Item.user_id, Item.title, Item.status)
        .join(Item, Claim.listing_id == Item.id)
        .where(or_(Claim.claimant_id == user_id, Item.user_id == user_id))
    ).all()

    if not rows:
        return 0

    profiles = resolve_profiles(session, [row[2] for row in rows] + [row[3] for row in rows])

    now = datetime.now(timezone.utc)
    conversation_rows = []

    for claim_id, listing_id, claimant_id, owner_id, title, status in rows:
        if claimant_id == owner_id:
            continue

        if claimant_id not in profiles or owner_id not in profiles:
            # TODO: surface orphaned claims to admins once there is a place to report them
            logger.warning("Skipping conversation for claim %s: participant profile missing", claim_id)
            continue

        conversation_rows.append({
            "id": uuid.uuid4(),
            "claim_id": claim_id,
            "listing_id": listing_id,
            "item_title": title,
            "item_status": status,
            "participant_a": claimant_id,
            "participant_b": owner_id,
            "last_message": STARTED_PREVIEW,
            "last_message_at": now,
            "created_at": now,
            "updated_at": now,
        })

    if not conversation_rows:
        return 0

    insert_if_absent(session, Conversation, conversation_rows, ["claim_id"])

    conversations = session.exec(
        select(Conversation).where(
            Conversation.claim_id.in_([row["claim_id"] for row in conversation_rows])
        )
    ).all()

    state_rows = [
        {"conversation_id": conversation.id, "user_id": participant, "unread_count": 0, "updated_at": now}
        for conversation in conversations
        for participant in (conversation.participant_a, conversation.participant_b)
    ]
    insert_if_absent(session, ConversationState, state_rows, ["conversation_id", "user_id"])

    session.commit()

    return len(conversations)
