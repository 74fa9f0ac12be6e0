import uuid
from datetime import datetime

import pytest
from sqlmodel import select

from app.errors import Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from app.models.claim import Claim
from app.models.notification import Notification
from app.services import claims as claim_service
from app.services.claims import ApproveDecision, RejectDecision


def notifications_for(session, user):
    return session.exec(
        select(Notification).where(Notification.user_id == user.id)
    ).all()


def active_claims(session, listing):
    claims = session.exec(select(Claim).where(Claim.listing_id == listing.id)).all()
    return (
        [claim for claim in claims if claim.status == "pending"],
        [claim for claim in claims if claim.status == "approved"],
    )


def test_submit_creates_pending_claim_and_notifies_owner(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    assert claim.status == "pending"
    assert claim.claimant_id == users["bob"].id
    assert claim.listing.title == "Blue Backpack"
    assert claim.claimant.display_name == "Bob"
    assert claim.reviewer is None

    notifications = notifications_for(session, users["staff"])
    assert len(notifications) == 1
    assert notifications[0].type == "claim_submitted"
    assert notifications[0].title == 'New claim for "Blue Backpack"'
    assert notifications[0].message == 'Bob submitted a claim for "Blue Backpack".'
    assert notifications[0].related_claim_id == claim.id
    assert notifications[0].is_read is False


def test_submit_trims_proof(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, f"   {proof}  ")

    assert claim.proof_description == proof


def test_submit_rejects_short_proof(session, users, backpack, actor):
    with pytest.raises(InvalidInput):
        claim_service.submit_claim(session, actor(users["bob"]), backpack.id, "   it is mine    ")


def test_submit_unknown_listing(session, users, actor, proof):
    with pytest.raises(NotFound):
        claim_service.submit_claim(session, actor(users["bob"]), uuid.uuid4(), proof)


def test_only_found_listings_are_claimable(session, users, make_listing, actor, proof):
    lost = make_listing(users["alice"], title="Lost umbrella", type="lost")

    with pytest.raises(InvalidState):
        claim_service.submit_claim(session, actor(users["bob"]), lost.id, proof)


def test_closed_listing_is_not_claimable(session, users, make_listing, actor, proof):
    closed = make_listing(users["staff"], title="Old scarf", status="closed")

    with pytest.raises(InvalidState):
        claim_service.submit_claim(session, actor(users["bob"]), closed.id, proof)


def test_cannot_claim_own_listing(session, users, make_listing, actor, proof):
    own = make_listing(users["alice"], title="Calculator")

    with pytest.raises(Forbidden):
        claim_service.submit_claim(session, actor(users["alice"]), own.id, proof)


def test_staff_cannot_submit_claims(session, users, make_listing, actor, proof):
    listing = make_listing(users["alice"], title="Calculator")

    with pytest.raises(Forbidden):
        claim_service.submit_claim(session, actor(users["staff"]), listing.id, proof)


def test_double_submit_by_same_claimant(session, users, backpack, actor, proof):
    claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    with pytest.raises(Conflict) as exc:
        claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    assert exc.value.detail == claim_service.ALREADY_PENDING_OWN


def test_second_claimant_blocked_while_pending(session, users, backpack, actor, proof):
    claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    with pytest.raises(Conflict) as exc:
        claim_service.submit_claim(session, actor(users["carol"]), backpack.id, proof)

    assert exc.value.detail == claim_service.ALREADY_PENDING_OTHER
    pending, approved = active_claims(session, backpack)
    assert len(pending) == 1
    assert approved == []


def test_approved_listing_blocks_new_claims(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)
    claim_service.review_claim(session, actor(users["staff"]), claim.id, ApproveDecision())

    with pytest.raises(Conflict) as exc:
        claim_service.submit_claim(session, actor(users["carol"]), backpack.id, proof)

    assert exc.value.detail == claim_service.ALREADY_CLAIMED


def test_rejected_claim_frees_the_listing(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)
    claim_service.review_claim(session, actor(users["staff"]), claim.id, RejectDecision(reason="Wrong colour"))

    second = claim_service.submit_claim(session, actor(users["carol"]), backpack.id, proof)

    assert second.status == "pending"


def test_racing_insert_loses_with_conflict(session, users, backpack, proof):
    # Both writers passed the pre-checks; the store decides who wins
    claim_service.insert_pending_claim(
        session, Claim(listing_id=backpack.id, claimant_id=users["bob"].id, proof_description=proof)
    )
    session.commit()

    with pytest.raises(Conflict) as exc:
        claim_service.insert_pending_claim(
            session, Claim(listing_id=backpack.id, claimant_id=users["carol"].id, proof_description=proof)
        )

    assert exc.value.detail == claim_service.ALREADY_PENDING_OTHER
    pending, _ = active_claims(session, backpack)
    assert [claim.claimant_id for claim in pending] == [users["bob"].id]


def test_approve_sets_handover_and_notifies_claimant(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    reviewed = claim_service.review_claim(
        session, actor(users["staff"]), claim.id, ApproveDecision(handover_notes="  left at desk ")
    )

    assert reviewed.status == "approved"
    assert reviewed.handover_at is not None
    assert reviewed.handover_notes == "left at desk"
    assert reviewed.rejection_reason is None
    assert reviewed.reviewer_id == users["staff"].id
    assert reviewed.reviewer.display_name == "Front Desk"

    notifications = notifications_for(session, users["bob"])
    assert len(notifications) == 1
    assert notifications[0].type == "claim_approved"
    assert "Blue Backpack" in notifications[0].message
    assert "left at desk" in notifications[0].message


def test_approve_keeps_supplied_handover_time(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)
    handover = datetime(2026, 11, 2, 14, 30)

    reviewed = claim_service.review_claim(
        session, actor(users["staff"]), claim.id, ApproveDecision(handover_at=handover)
    )

    assert reviewed.handover_at.replace(tzinfo=None) == handover


def test_reject_embeds_reason_verbatim(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    reviewed = claim_service.review_claim(
        session, actor(users["admin"]), claim.id, RejectDecision(reason="Serial number does not match")
    )

    assert reviewed.status == "rejected"
    assert reviewed.rejection_reason == "Serial number does not match"
    assert reviewed.handover_at is None
    assert reviewed.handover_notes is None

    notifications = notifications_for(session, users["bob"])
    assert len(notifications) == 1
    assert notifications[0].type == "claim_rejected"
    assert "Serial number does not match" in notifications[0].message
    assert "Blue Backpack" in notifications[0].message


def test_blank_rejection_reason_defaults(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    reviewed = claim_service.review_claim(
        session, actor(users["staff"]), claim.id, RejectDecision(reason="   ")
    )

    assert reviewed.rejection_reason == "Rejected"


def test_reviewed_claim_is_terminal(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)
    claim_service.review_claim(session, actor(users["staff"]), claim.id, ApproveDecision())

    with pytest.raises(Conflict):
        claim_service.review_claim(session, actor(users["admin"]), claim.id, RejectDecision(reason="Changed mind"))

    stored = session.get(Claim, claim.id)
    session.refresh(stored)
    assert stored.status == "approved"
    assert stored.rejection_reason is None
    # only the approval notification exists
    assert [n.type for n in notifications_for(session, users["bob"])] == ["claim_approved"]


def test_students_cannot_review(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    with pytest.raises(Forbidden):
        claim_service.review_claim(session, actor(users["carol"]), claim.id, ApproveDecision())


def test_review_unknown_claim(session, users, actor):
    with pytest.raises(NotFound):
        claim_service.review_claim(session, actor(users["staff"]), uuid.uuid4(), ApproveDecision())


def test_students_only_list_their_own_claims(session, users, backpack, make_listing, actor, proof):
    laptop = make_listing(users["staff"], title="Grey laptop")
    claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)
    claim_service.submit_claim(session, actor(users["carol"]), laptop.id, proof)

    own = claim_service.list_claims(session, actor(users["bob"]))
    everything = claim_service.list_claims(session, actor(users["staff"]))
    filtered = claim_service.list_claims(session, actor(users["staff"]), listing_id=laptop.id, status="pending")

    assert [claim.claimant_id for claim in own] == [users["bob"].id]
    assert len(everything) == 2
    assert [claim.listing_id for claim in filtered] == [laptop.id]


def test_get_claim_is_scoped(session, users, backpack, actor, proof):
    claim = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    assert claim_service.get_claim(session, actor(users["bob"]), claim.id).id == claim.id
    assert claim_service.get_claim(session, actor(users["staff"]), claim.id).id == claim.id

    with pytest.raises(Forbidden):
        claim_service.get_claim(session, actor(users["carol"]), claim.id)


def test_listing_never_holds_two_active_claims(session, users, backpack, actor, proof):
    staff = actor(users["staff"])

    first = claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)
    claim_service.review_claim(session, staff, first.id, RejectDecision(reason="No"))
    second = claim_service.submit_claim(session, actor(users["carol"]), backpack.id, proof)
    with pytest.raises(Conflict):
        claim_service.submit_claim(session, actor(users["alice"]), backpack.id, proof)
    claim_service.review_claim(session, staff, second.id, ApproveDecision())
    with pytest.raises(Conflict):
        claim_service.submit_claim(session, actor(users["bob"]), backpack.id, proof)

    pending, approved = active_claims(session, backpack)
    assert len(pending) == 0
    assert len(approved) == 1
