# marketplace/crud.py
"""CRUD operations for `Listing` entities.

Every write here touches a single row. View counts are incremented in the
database, never read-modify-written, and the trending flag is only written
by ``set_trending``.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from .auction import open_auction_clause
from .models import Listing, SALE_TYPE_AUCTION
from .trending import TrendingPopulation
from .utils import now_utc


def _live():
    return and_(Listing.is_deleted.is_(False), Listing.is_disable.is_(False))


def get_listing(db: Session, listing_id: int, include_deleted: bool = True):
    q = db.query(Listing).filter(Listing.id == listing_id)
    if not include_deleted:
        q = q.filter(Listing.is_deleted.is_(False))
    return q.first()


def list_listings(db: Session, skip: int = 0, limit: int = 50, filters: Dict = None):
    q = db.query(Listing)
    filters = filters or {}
    conds = []
    if not filters.get("include_deleted"):
        conds.append(Listing.is_deleted.is_(False))
    if filters.get("min_price") is not None:
        conds.append(Listing.fixed_price >= filters["min_price"])
    if filters.get("max_price") is not None:
        conds.append(Listing.fixed_price <= filters["max_price"])
    if filters.get("sale_type"):
        conds.append(Listing.sale_type == filters["sale_type"])
    if filters.get("is_trending") is not None:
        conds.append(Listing.is_trending.is_(bool(filters["is_trending"])))
    if filters.get("is_auction_open") is not None:
        clause = open_auction_clause(filters.get("now"))
        conds.append(clause if filters["is_auction_open"] else and_(Listing.sale_type == SALE_TYPE_AUCTION, ~clause))
    if conds:
        q = q.filter(and_(*conds))
    total = q.count()
    items = q.order_by(Listing.created_at.desc(), Listing.id.desc()).offset(skip).limit(limit).all()
    return {"total": total, "items": items}


def list_trending(db: Session, skip: int = 0, limit: int = 50):
    q = db.query(Listing).filter(Listing.is_trending.is_(True), _live())
    total = q.count()
    items = q.order_by(Listing.view_count.desc(), Listing.id).offset(skip).limit(limit).all()
    return {"total": total, "items": items}


def create_listing(db: Session, data: Dict[str, Any]) -> Listing:
    obj = Listing(**data)
    obj.view_count = 0
    obj.is_trending = False
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def update_listing(db: Session, listing_id: int, updates: Dict[str, Any]):
    obj = db.query(Listing).filter(Listing.id == listing_id).first()
    if not obj:
        return None
    for k, v in updates.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj


def delete_listing(db: Session, listing_id: int) -> bool:
    """Soft delete; the row stays so the sweep can clear its trending flag."""
    updated = (
        db.query(Listing)
        .filter(Listing.id == listing_id, Listing.is_deleted.is_(False))
        .update({Listing.is_deleted: True}, synchronize_session=False)
    )
    db.commit()
    return updated > 0


def increment_view_count(db: Session, listing_id: int) -> bool:
    updated = (
        db.query(Listing)
        .filter(Listing.id == listing_id, Listing.is_deleted.is_(False))
        .update({Listing.view_count: Listing.view_count + 1}, synchronize_session=False)
    )
    db.commit()
    return updated > 0


def set_trending(db: Session, listing_id: int, value: bool) -> bool:
    updated = (
        db.query(Listing)
        .filter(Listing.id == listing_id)
        .update({Listing.is_trending: bool(value)}, synchronize_session=False)
    )
    db.commit()
    return updated > 0


def trending_population(db: Session, exclude_id: Optional[int] = None) -> TrendingPopulation:
    """Count and weakest view count of the other listings currently trending."""
    q = db.query(func.count(Listing.id), func.min(Listing.view_count)).filter(
        Listing.is_trending.is_(True), _live()
    )
    if exclude_id is not None:
        q = q.filter(Listing.id != exclude_id)
    count, min_views = q.one()
    return TrendingPopulation(count=int(count or 0), min_view_count=min_views)


def sweep_candidates(db: Session, min_views: int) -> List[int]:
    """Ids to re-evaluate, highest view count first.

    Listings already flagged trending are included even when they no longer
    pass the pre-filter, so stale flags get cleared.
    """
    rows = (
        db.query(Listing.id)
        .filter(or_(and_(Listing.view_count >= min_views, _live()), Listing.is_trending.is_(True)))
        .order_by(Listing.view_count.desc(), Listing.id)
        .all()
    )
    return [r[0] for r in rows]


def close_expired_auctions(db: Session, now: Optional[datetime] = None) -> int:
    now = now or now_utc()
    updated = (
        db.query(Listing)
        .filter(
            Listing.sale_type == SALE_TYPE_AUCTION,
            Listing.is_bidding_open.is_(True),
            Listing.bidding_ends_at <= now,
        )
        .update({Listing.is_bidding_open: False}, synchronize_session=False)
    )
    db.commit()
    return updated
