"""Pydantic models for tire listings and yard-sale items."""

from __future__ import annotations

import dataclasses
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field, StringConstraints

from app.security.validation import contains_suspicious_patterns, sanitize_string

ADDRESS_PLACEHOLDER = "Address available to buyers"


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if contains_suspicious_patterns(value):
        raise ValueError("contains invalid content")
    return sanitize_string(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


Text = Annotated[str, AfterValidator(_clean_text)]
ImageUrl = Annotated[
    str,
    StringConstraints(max_length=500, pattern=r"^(https?://|/uploads/)[^\s<>\"']+$"),
]
Price = Annotated[float, Field(ge=0, le=999999)]


class ListingStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    PENDING = "PENDING"
    SOLD = "SOLD"


class Condition(str, Enum):
    NEW = "NEW"
    LIKE_NEW = "LIKE_NEW"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class ItemType(str, Enum):
    TIRE = "TIRE"
    YARD_SALE_ITEM = "YARD_SALE_ITEM"


# ----------------------------------------------------------------------
# Tire listings
# ----------------------------------------------------------------------
class TireListingFields(BaseModel):
    title: Annotated[Text, Field(min_length=1, max_length=100)]
    description: Annotated[Text, Field(max_length=1000)] = ""
    brand: Annotated[Text, Field(min_length=1, max_length=50)]
    model: Optional[Annotated[Text, Field(max_length=50)]] = None
    size: Annotated[Text, Field(min_length=1, max_length=20)]
    tread_depth: Optional[float] = Field(default=None, ge=0, le=32)
    condition: Condition = Condition.GOOD
    quantity: int = Field(default=1, ge=1, le=100)
    price: Price
    rim_service_available: bool = False
    rim_service_price: Optional[Price] = None
    location: Optional[Annotated[Text, Field(max_length=200)]] = None
    contact_info: Optional[Annotated[Text, Field(max_length=200)]] = None
    images: List[ImageUrl] = Field(default_factory=list, max_length=10)


class TireListingCreate(TireListingFields):
    status: ListingStatus = ListingStatus.PUBLISHED


class TireListingUpdate(BaseModel):
    title: Optional[Annotated[Text, Field(min_length=1, max_length=100)]] = None
    description: Optional[Annotated[Text, Field(max_length=1000)]] = None
    brand: Optional[Annotated[Text, Field(min_length=1, max_length=50)]] = None
    model: Optional[Annotated[Text, Field(max_length=50)]] = None
    size: Optional[Annotated[Text, Field(min_length=1, max_length=20)]] = None
    tread_depth: Optional[float] = Field(default=None, ge=0, le=32)
    condition: Optional[Condition] = None
    quantity: Optional[int] = Field(default=None, ge=1, le=100)
    price: Optional[Price] = None
    rim_service_available: Optional[bool] = None
    rim_service_price: Optional[Price] = None
    location: Optional[Annotated[Text, Field(max_length=200)]] = None
    contact_info: Optional[Annotated[Text, Field(max_length=200)]] = None
    images: Optional[List[ImageUrl]] = Field(default=None, max_length=10)
    status: Optional[ListingStatus] = None


class TireListing(TireListingFields):
    id: str
    business_id: str
    owner_id: str
    status: ListingStatus
    view_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    published_at: Optional[datetime] = None


class TireListingPage(BaseModel):
    items: List[TireListing]
    total: int
    page: int
    page_size: int
    has_more: bool


@dataclasses.dataclass(frozen=True)
class ListingFilters:
    business_id: Optional[str] = None
    status: Optional[ListingStatus] = None
    search: Optional[str] = None
    size: Optional[str] = None
    brand: Optional[str] = None
    condition: Optional[Condition] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    rim_service: Optional[bool] = None


# ----------------------------------------------------------------------
# Yard-sale items
# ----------------------------------------------------------------------
class YardSaleItemFields(BaseModel):
    title: Annotated[Text, Field(min_length=1, max_length=100)]
    description: Annotated[Text, Field(max_length=1000)] = ""
    category: Annotated[Text, Field(min_length=1, max_length=50)]
    condition: Condition = Condition.GOOD
    price: Price
    images: List[ImageUrl] = Field(default_factory=list, max_length=10)
    sale_address: Optional[Annotated[Text, Field(max_length=300)]] = None
    show_address: bool = False
    available_dates: List[date] = Field(default_factory=list, max_length=30)


class YardSaleItemCreate(YardSaleItemFields):
    pass


class YardSaleItemUpdate(BaseModel):
    title: Optional[Annotated[Text, Field(min_length=1, max_length=100)]] = None
    description: Optional[Annotated[Text, Field(max_length=1000)]] = None
    category: Optional[Annotated[Text, Field(min_length=1, max_length=50)]] = None
    condition: Optional[Condition] = None
    price: Optional[Price] = None
    images: Optional[List[ImageUrl]] = Field(default=None, max_length=10)
    sale_address: Optional[Annotated[Text, Field(max_length=300)]] = None
    show_address: Optional[bool] = None
    available_dates: Optional[List[date]] = Field(default=None, max_length=30)
    is_active: Optional[bool] = None


class YardSaleItem(YardSaleItemFields):
    id: str
    business_id: str
    owner_id: str
    is_active: bool = True
    view_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class YardSaleItemPage(BaseModel):
    items: List[YardSaleItem]
    total: int
    page: int
    page_size: int
    has_more: bool


@dataclasses.dataclass(frozen=True)
class YardSaleFilters:
    business_id: Optional[str] = None
    owner_id: Optional[str] = None
    active_only: bool = True
    search: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[Condition] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    available_on: Optional[date] = None
