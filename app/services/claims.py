"""
Claim adjudication.

A claim is created `pending` and reviewed exactly once, into `approved` or
`rejected`. Uniqueness per listing (one pending, one approved) is owned by
the partial unique indexes on `claims`; the pre-checks here only exist to
report the precise reason. Each transition and the notification it emits
are committed in the same transaction.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional, Sequence, Union
from pydantic import BaseModel, field_validator
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.errors import Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from app.models.claim import Claim
from app.services.identity import Profile, resolve_profile, resolve_profiles
from app.services.listings import CLOSED_STATUSES, ListingView, get_listing, get_listings
from app.services.notifications import emit_notification
from app.sync.change_feed import track_change
from app.utils.auth_helper import Actor

logger = logging.getLogger(__name__)

CLAIMANT_ROLES = ("student",)

MIN_PROOF_LENGTH = 20
MAX_PROOF_LENGTH = 2000

DEFAULT_REJECTION_REASON = "Rejected"

ALREADY_CLAIMED = "This item has already been claimed"
ALREADY_PENDING_OWN = "You already have a pending claim for this item"
ALREADY_PENDING_OTHER = "Another claim for this item is already under review"
ALREADY_REVIEWED = "This claim was already reviewed"


class ApproveDecision(BaseModel):
    status: Literal["approved"] = "approved"
    handover_at: Optional[datetime] = None
    handover_notes: Optional[str] = None

    @field_validator("handover_notes")
    @classmethod
    def blank_notes_to_none(cls, value):
        if value is None:
            return None
        return value.strip() or None


class RejectDecision(BaseModel):
    status: Literal["rejected"] = "rejected"
    reason: str = DEFAULT_REJECTION_REASON

    @field_validator("reason", mode="before")
    @classmethod
    def default_blank_reason(cls, value):
        # TODO: confirm with the help desk whether a blank reason should be refused instead
        if value is None or not str(value).strip():
            return DEFAULT_REJECTION_REASON
        return str(value).strip()


ReviewDecision = Union[ApproveDecision, RejectDecision]


class ClaimView(BaseModel):
    id: uuid.UUID
    listing_id: uuid.UUID
    listing: Optional[ListingView] = None
    claimant_id: int
    claimant: Optional[Profile] = None
    reviewer_id: Optional[int] = None
    reviewer: Optional[Profile] = None
    status: str
    proof_description: str
    rejection_reason: Optional[str] = None
    handover_at: Optional[datetime] = None
    handover_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


def expand_claims(session: Session, claims: Sequence[Claim]) -> List[ClaimView]:
    listings = get_listings(session, (claim.listing_id for claim in claims))
    profiles = resolve_profiles(
        session,
        [claim.claimant_id for claim in claims] + [claim.reviewer_id for claim in claims],
    )

    return [
        ClaimView(
            **claim.model_dump(),
            listing=listings.get(claim.listing_id),
            claimant=profiles.get(claim.claimant_id),
            reviewer=profiles.get(claim.reviewer_id) if claim.reviewer_id else None,
        )
        for claim in claims
    ]


def _expanded(session: Session, claim_id: uuid.UUID) -> ClaimView:
    claim = session.get(Claim, claim_id)
    if not claim:
        raise NotFound("Claim not found")
    return expand_claims(session, [claim])[0]


def _check_claimable(session: Session, listing_id: uuid.UUID, claimant_id: int):
    active = session.exec(
        select(Claim)
        .where(Claim.listing_id == listing_id)
        .where(Claim.status.in_(("pending", "approved")))
    ).all()

    if any(claim.status == "approved" for claim in active):
        raise Conflict(ALREADY_CLAIMED)

    if any(claim.claimant_id == claimant_id for claim in active):
        raise Conflict(ALREADY_PENDING_OWN)

    if active:
        raise Conflict(ALREADY_PENDING_OTHER)


def insert_pending_claim(session: Session, claim: Claim) -> Claim:
    """
    Flush a new pending claim. If a concurrent writer got there first the
    unique index rejects the row; the session is rolled back and the
    conflict is reported with the reason that now holds.
    """
    session.add(claim)

    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.info(
            "Claim race lost on listing %s by user %s", claim.listing_id, claim.claimant_id
        )
        _check_claimable(session, claim.listing_id, claim.claimant_id)
        raise Conflict(ALREADY_PENDING_OTHER)

    return claim


def submit_claim(
    session: Session,
    actor: Actor,
    listing_id: uuid.UUID,
    proof_description: str,
) -> ClaimView:
    if actor.role not in CLAIMANT_ROLES:
        raise Forbidden("Only students can submit claims")

    proof = (proof_description or "").strip()
    if len(proof) < MIN_PROOF_LENGTH:
        raise InvalidInput(f"Proof description must be at least {MIN_PROOF_LENGTH} characters")
    if len(proof) > MAX_PROOF_LENGTH:
        raise InvalidInput(f"Proof description must not exceed {MAX_PROOF_LENGTH} characters")

    listing = get_listing(session, listing_id)
    if not listing:
        raise NotFound("Listing not found")

    if listing.type != "found":
        raise InvalidState("Only found items can be claimed")

    if listing.status in CLOSED_STATUSES:
        raise InvalidState("This listing is not accepting claims")

    # Prevent self-claim
    if listing.owner_id == actor.id:
        raise Forbidden("You cannot claim your own listing")

    _check_claimable(session, listing.id, actor.id)

    now = datetime.now(timezone.utc)
    claim = insert_pending_claim(
        session,
        Claim(
            listing_id=listing.id,
            claimant_id=actor.id,
            status="pending",
            proof_description=proof,
            created_at=now,
            updated_at=now,
        ),
    )
    claim_id = claim.id

    claimant = resolve_profile(session, actor.id)
    claimant_name = claimant.display_name.strip() if claimant and claimant.display_name.strip() else "A user"

    # Notify finder
    emit_notification(
        session,
        user_id=listing.owner_id,
        type="claim_submitted",
        title=f'New claim for "{listing.title}"',
        message=f'{claimant_name} submitted a claim for "{listing.title}".',
        related_listing_id=listing.id,
        related_claim_id=claim_id,
    )

    session.commit()
    logger.info("Claim %s submitted on listing %s by user %s", claim_id, listing.id, actor.id)

    return _expanded(session, claim_id)


def _decision_message(listing: ListingView, decision: ReviewDecision):
    if isinstance(decision, RejectDecision):
        return (
            "claim_rejected",
            f'Claim rejected for "{listing.title}"',
            f'Your claim for "{listing.title}" was rejected. Reason: {decision.reason}',
        )

    message = f'Your claim for "{listing.title}" was approved. Please coordinate pickup with staff.'
    if decision.handover_notes:
        message += f" Handover notes: {decision.handover_notes}"

    return "claim_approved", f'Claim approved for "{listing.title}"', message


def review_claim(
    session: Session,
    actor: Actor,
    claim_id: uuid.UUID,
    decision: ReviewDecision,
) -> ClaimView:
    if not actor.is_elevated:
        raise Forbidden("Only staff/admin can review claims")

    claim = session.get(Claim, claim_id)
    if not claim:
        raise NotFound("Claim not found")

    if claim.status != "pending":
        raise Conflict(ALREADY_REVIEWED)

    listing = get_listing(session, claim.listing_id)
    if not listing:
        raise NotFound("Listing not found")

    claimant_id = claim.claimant_id
    now = datetime.now(timezone.utc)

    values = {"status": decision.status, "reviewer_id": actor.id, "updated_at": now}
    if isinstance(decision, RejectDecision):
        values.update(rejection_reason=decision.reason, handover_at=None, handover_notes=None)
    else:
        values.update(
            rejection_reason=None,
            handover_at=decision.handover_at or now,
            handover_notes=decision.handover_notes,
        )

    # Only a claim that is still pending may move; a concurrent review makes this a no-op
    try:
        result = session.exec(
            update(Claim)
            .where(Claim.id == claim_id)
            .where(Claim.status == "pending")
            .values(**values)
        )
    except IntegrityError:
        session.rollback()
        raise Conflict(ALREADY_CLAIMED)

    if result.rowcount != 1:
        session.rollback()
        raise Conflict(ALREADY_REVIEWED)

    track_change(session, "claims", claim_id, "updated")

    notification_type, title, message = _decision_message(listing, decision)

    # Notify claimant
    emit_notification(
        session,
        user_id=claimant_id,
        type=notification_type,
        title=title,
        message=message,
        related_listing_id=listing.id,
        related_claim_id=claim_id,
    )

    session.commit()
    logger.info("Claim %s %s by user %s", claim_id, decision.status, actor.id)

    session.expire_all()
    return _expanded(session, claim_id)


def list_claims(
    session: Session,
    actor: Actor,
    listing_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
) -> List[ClaimView]:
    query = select(Claim).order_by(Claim.created_at.desc())

    if listing_id:
        query = query.where(Claim.listing_id == listing_id)

    if status:
        query = query.where(Claim.status == status)

    # Students only ever see their own claims
    if not actor.is_elevated:
        query = query.where(Claim.claimant_id == actor.id)

    return expand_claims(session, session.exec(query).all())


def get_claim(session: Session, actor: Actor, claim_id: uuid.UUID) -> ClaimView:
    claim = session.get(Claim, claim_id)
    if not claim:
        raise NotFound("Claim not found")

    if not actor.is_elevated and claim.claimant_id != actor.id:
        raise Forbidden("Not authorized to view this claim")

    return expand_claims(session, [claim])[0]
