import uuid
from datetime import datetime
from typing import Literal, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlmodel import Session

from app.db.db import get_session
from app.services import claims as claim_service
from app.utils.auth_helper import Actor, get_current_actor


router = APIRouter()


class ClaimCreateRequest(BaseModel):
    listing_id: uuid.UUID
    proof_description: str = Field(
        min_length=claim_service.MIN_PROOF_LENGTH,
        max_length=claim_service.MAX_PROOF_LENGTH,
    )

    @field_validator("proof_description", mode="before")
    @classmethod
    def strip_proof(cls, value):
        return value.strip() if isinstance(value, str) else value


class ClaimReviewRequest(BaseModel):
    status: Literal["approved", "rejected"]
    rejection_reason: Optional[str] = Field(default=None, max_length=2000)
    handover_notes: Optional[str] = Field(default=None, max_length=2000)
    handover_at: Optional[datetime] = None

    def to_decision(self) -> claim_service.ReviewDecision:
        if self.status == "rejected":
            return claim_service.RejectDecision(reason=self.rejection_reason)

        return claim_service.ApproveDecision(
            handover_at=self.handover_at,
            handover_notes=self.handover_notes,
        )


@router.post("")
def submit_claim(
    payload: ClaimCreateRequest,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    claim = claim_service.submit_claim(
        session, actor, payload.listing_id, payload.proof_description
    )
    return {"ok": True, "claim": claim}


@router.get("")
def list_claims(
    listing_id: Optional[uuid.UUID] = None,
    status: Optional[Literal["pending", "approved", "rejected"]] = None,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    """
    Staff and admins see every claim; everyone else only their own.
    """
    claims = claim_service.list_claims(session, actor, listing_id=listing_id, status=status)
    return {"claims": claims}


@router.get("/{claim_id}")
def get_claim(
    claim_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    return {"claim": claim_service.get_claim(session, actor, claim_id)}


@router.patch("/{claim_id}")
def review_claim(
    claim_id: uuid.UUID,
    payload: ClaimReviewRequest,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    claim = claim_service.review_claim(session, actor, claim_id, payload.to_decision())
    return {"ok": True, "claim": claim}
