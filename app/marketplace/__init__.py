"""Tire listings and yard-sale items."""

from .repository import (
    InMemoryListingRepository,
    InMemoryYardSaleRepository,
    ListingRepository,
    YardSaleRepository,
)
from .service import (
    ListingNotFoundError,
    ListingService,
    YardSaleItemNotFoundError,
    YardSaleService,
)

__all__ = [
    "InMemoryListingRepository",
    "InMemoryYardSaleRepository",
    "ListingNotFoundError",
    "ListingRepository",
    "ListingService",
    "YardSaleItemNotFoundError",
    "YardSaleRepository",
    "YardSaleService",
]
