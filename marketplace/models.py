# marketplace/models.py
"""SQLAlchemy ORM models for persisted entities.

``Listing`` is the sellable item. Auction settings are stored as flat
columns; ``bidding_ends_at`` is always UTC and ``is_bidding_open`` is the
flag computed when the auction parameters were last written.
"""
from sqlalchemy import Boolean, Column, Date, Integer, Numeric, String, Text, TIMESTAMP, func, Index
from .db import Base

SALE_TYPE_FIXED = "fixed"
SALE_TYPE_AUCTION = "auction"
SALE_TYPES = (SALE_TYPE_FIXED, SALE_TYPE_AUCTION)


class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, default="")
    sale_type = Column(String(16), nullable=False, default=SALE_TYPE_FIXED)
    fixed_price = Column(Numeric)

    view_count = Column(Integer, nullable=False, default=0, server_default="0")
    is_trending = Column(Boolean, nullable=False, default=False, server_default="0")
    is_deleted = Column(Boolean, nullable=False, default=False, server_default="0")
    is_disable = Column(Boolean, nullable=False, default=False, server_default="0")
    is_sold = Column(Boolean, nullable=False, default=False, server_default="0")

    auction_starting_price = Column(Numeric)
    auction_reserve_price = Column(Numeric)
    auction_bidding_increment_price = Column(Numeric)
    auction_duration = Column(Integer)
    auction_end_date = Column(Date)
    auction_end_time = Column(String(8))
    auction_time_zone = Column(String(64))
    bidding_ends_at = Column(TIMESTAMP(timezone=True))
    is_bidding_open = Column(Boolean, nullable=False, default=False, server_default="0")

    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_auction(self):
        return self.sale_type == SALE_TYPE_AUCTION

Index("idx_listings_view_count", Listing.view_count)
Index("idx_listings_trending", Listing.is_trending, Listing.view_count)
Index("idx_listings_bidding", Listing.sale_type, Listing.is_bidding_open, Listing.bidding_ends_at)
