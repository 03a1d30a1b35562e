"""Auction bidding window: deadline computation and the single "is open" rule.

``is_currently_open`` and ``open_auction_clause`` are the same comparison,
``now < bidding_ends_at``, once for Python values and once for queries.
Anything that asks whether an auction is open goes through one of them.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import and_

from .errors import ValidationError
from .models import Listing, SALE_TYPE_AUCTION
from .timezones import resolve_deadline, to_local
from .utils import now_utc, to_aware_utc

# request fields that, when touched, force a full recomputation
DEADLINE_FIELDS = ("end_date", "end_time", "time_zone", "duration")


@dataclass(frozen=True)
class AuctionWindow:
    bidding_ends_at: datetime
    is_bidding_open: bool
    end_date: date
    end_time: str
    time_zone: str


def is_currently_open(bidding_ends_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if bidding_ends_at is None:
        return False
    now = to_aware_utc(now) if now is not None else now_utc()
    return now < to_aware_utc(bidding_ends_at)


def open_auction_clause(now: Optional[datetime] = None):
    now = to_aware_utc(now) if now is not None else now_utc()
    return and_(
        Listing.sale_type == SALE_TYPE_AUCTION,
        Listing.is_bidding_open.is_(True),
        Listing.bidding_ends_at > now,
    )


def compute_window(settings: Dict[str, Any], now: Optional[datetime] = None) -> AuctionWindow:
    """Compute bidding_ends_at/is_bidding_open from raw auction settings.

    Raises ValidationError, unchanged from the resolver, when the deadline
    cannot be determined.
    """
    now = to_aware_utc(now) if now is not None else now_utc()
    ends_at = resolve_deadline(
        end_date=settings.get("end_date"),
        end_time=settings.get("end_time"),
        time_zone=settings.get("time_zone"),
        duration=settings.get("duration"),
        now=now,
    )
    local = to_local(ends_at, settings["time_zone"])
    return AuctionWindow(
        bidding_ends_at=ends_at,
        is_bidding_open=is_currently_open(ends_at, now),
        end_date=local.date(),
        end_time=local.strftime("%H:%M"),
        time_zone=settings["time_zone"],
    )


def validate_auction_prices(settings: Dict[str, Any]):
    for key in ("starting_price", "reserve_price"):
        if settings.get(key) is None:
            raise ValidationError(
                "Auction settings must include starting_price, reserve_price, and either duration or end_date"
            )
    for key in ("starting_price", "reserve_price", "bidding_increment_price"):
        value = settings.get(key)
        if value is not None and value <= 0:
            raise ValidationError(f"{key} must be positive")


def auction_fields(settings: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Column values for a listing's auction settings, window included."""
    validate_auction_prices(settings)
    window = compute_window(settings, now)
    return {
        "auction_starting_price": settings.get("starting_price"),
        "auction_reserve_price": settings.get("reserve_price"),
        "auction_bidding_increment_price": settings.get("bidding_increment_price"),
        # duration mode is echoed back as the resolved local date/time
        "auction_duration": settings.get("duration"),
        "auction_end_date": window.end_date,
        "auction_end_time": window.end_time,
        "auction_time_zone": window.time_zone,
        "bidding_ends_at": window.bidding_ends_at,
        "is_bidding_open": window.is_bidding_open,
    }


def price_fields(listing: Listing, patch: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Column values for an update that leaves the deadline alone.

    The stored ``bidding_ends_at`` is reused as is; only the open flag is
    refreshed against ``now``.
    """
    settings = {
        "starting_price": patch.get("starting_price", listing.auction_starting_price),
        "reserve_price": patch.get("reserve_price", listing.auction_reserve_price),
        "bidding_increment_price": patch.get("bidding_increment_price", listing.auction_bidding_increment_price),
    }
    validate_auction_prices(settings)
    return {
        "auction_starting_price": settings["starting_price"],
        "auction_reserve_price": settings["reserve_price"],
        "auction_bidding_increment_price": settings["bidding_increment_price"],
        "is_bidding_open": is_currently_open(listing.bidding_ends_at, now),
    }


def cleared_auction_fields() -> Dict[str, Any]:
    return {
        "auction_starting_price": None,
        "auction_reserve_price": None,
        "auction_bidding_increment_price": None,
        "auction_duration": None,
        "auction_end_date": None,
        "auction_end_time": None,
        "auction_time_zone": None,
        "bidding_ends_at": None,
        "is_bidding_open": False,
    }


def current_settings(listing: Listing) -> Dict[str, Any]:
    """Auction settings of a stored listing, in request form.

    The deadline is given as the resolved local date and time, which is what
    a partial deadline update (new end_time or time_zone) is applied to.
    """
    if not listing.is_auction or listing.bidding_ends_at is None:
        return {}
    return {
        "starting_price": listing.auction_starting_price,
        "reserve_price": listing.auction_reserve_price,
        "bidding_increment_price": listing.auction_bidding_increment_price,
        "time_zone": listing.auction_time_zone,
        "end_date": listing.auction_end_date,
        "end_time": listing.auction_end_time,
    }


def merge_settings(existing: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay a partial update; switching deadline mode drops the other mode."""
    merged = dict(existing)
    merged.update(patch)
    if "duration" in patch and patch["duration"] is not None:
        merged.pop("end_date", None)
        if "end_time" not in patch:
            merged.pop("end_time", None)
    elif "end_date" in patch and patch["end_date"] is not None:
        merged.pop("duration", None)
    return merged
