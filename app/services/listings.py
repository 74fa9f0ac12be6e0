import uuid
from typing import Dict, Iterable, Optional
from pydantic import BaseModel
from sqlmodel import Session, select

from app.models.item import Item

# Listings in these states no longer accept claims
CLOSED_STATUSES = ("closed", "archived")


class ListingView(BaseModel):
    id: uuid.UUID
    type: str
    status: str
    owner_id: int
    title: str


def to_listing_view(item: Item) -> ListingView:
    return ListingView(
        id=item.id,
        type="found" if item.type == "found" else "lost",
        status=item.status,
        owner_id=item.user_id,
        title=item.title,
    )


def get_listing(session: Session, listing_id: uuid.UUID) -> Optional[ListingView]:
    item = session.get(Item, listing_id)
    return to_listing_view(item) if item else None


def get_listings(session: Session, listing_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, ListingView]:
    ids = set(listing_ids)
    if not ids:
        return {}

    items = session.exec(select(Item).where(Item.id.in_(ids))).all()
    return {item.id: to_listing_view(item) for item in items}
