# marketplace/schemas.py
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional
from datetime import date, datetime

from .utils import to_aware_utc

SaleType = Literal["fixed", "auction"]


class AuctionSettingsIn(BaseModel):
    starting_price: Optional[float] = Field(None, gt=0)
    reserve_price: Optional[float] = Field(None, gt=0)
    bidding_increment_price: Optional[float] = Field(None, gt=0)
    end_date: Optional[date] = None
    end_time: Optional[str] = Field(None, description="HH:mm, local to time_zone")
    duration: Optional[int] = Field(None, description="days from today in time_zone")
    time_zone: Optional[str] = Field(None, description="IANA zone, e.g. Asia/Kolkata")


class AuctionSettingsOut(BaseModel):
    starting_price: Optional[float] = None
    reserve_price: Optional[float] = None
    bidding_increment_price: Optional[float] = None
    duration: Optional[int] = None
    end_date: Optional[date] = None
    end_time: Optional[str] = None
    time_zone: Optional[str] = None
    bidding_ends_at: Optional[datetime] = None
    is_bidding_open: bool = False


class ListingBase(BaseModel):
    title: str = Field(..., max_length=255)
    description: Optional[str] = ""
    sale_type: SaleType = "fixed"
    fixed_price: Optional[float] = None


class ListingCreate(ListingBase):
    auction_settings: Optional[AuctionSettingsIn] = None


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    sale_type: Optional[SaleType] = None
    fixed_price: Optional[float] = None
    is_disable: Optional[bool] = None
    is_sold: Optional[bool] = None
    auction_settings: Optional[AuctionSettingsIn] = None

    @field_validator("title", "sale_type", "is_disable", "is_sold")
    @classmethod
    def not_null(cls, v, info):
        # omit a field to leave it unchanged; these columns cannot hold null
        if v is None:
            raise ValueError(f"{info.field_name} may not be null")
        return v

    def to_updates(self):
        data = self.model_dump(exclude_unset=True, exclude={"auction_settings"})
        if self.auction_settings is not None:
            data["auction_settings"] = self.auction_settings.model_dump(exclude_unset=True)
        return data


class ListingOut(ListingBase):
    id: int
    view_count: int = 0
    is_trending: bool = False
    is_deleted: bool = False
    is_disable: bool = False
    is_sold: bool = False
    auction_settings: Optional[AuctionSettingsOut] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_listing(cls, obj):
        auction = None
        if obj.is_auction:
            auction = AuctionSettingsOut(
                starting_price=obj.auction_starting_price,
                reserve_price=obj.auction_reserve_price,
                bidding_increment_price=obj.auction_bidding_increment_price,
                duration=obj.auction_duration,
                end_date=obj.auction_end_date,
                end_time=obj.auction_end_time,
                time_zone=obj.auction_time_zone,
                bidding_ends_at=to_aware_utc(obj.bidding_ends_at),
                is_bidding_open=bool(obj.is_bidding_open),
            )
        return cls(
            id=obj.id,
            title=obj.title,
            description=obj.description,
            sale_type=obj.sale_type,
            fixed_price=obj.fixed_price,
            view_count=obj.view_count or 0,
            is_trending=bool(obj.is_trending),
            is_deleted=bool(obj.is_deleted),
            is_disable=bool(obj.is_disable),
            is_sold=bool(obj.is_sold),
            auction_settings=auction,
            created_at=obj.created_at,
            updated_at=obj.updated_at,
        )


class ListingPage(BaseModel):
    total: int
    items: list[ListingOut]


class TrendingToggle(BaseModel):
    is_trending: bool


class SweepResult(BaseModel):
    updatedCount: int
    trendingCount: int
    failedCount: int = 0


class SweepHealth(BaseModel):
    status: str
    schedule: str
    stats: dict
    uptime: float
