"""Service layer for tire listings and yard-sale items."""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from app.core.errors import deny
from app.security.auth import Actor

from . import schemas
from .repository import (
    InMemoryListingRepository,
    InMemoryYardSaleRepository,
    ListingRepository,
    YardSaleRepository,
    new_record_id,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PAGE_SIZE = 100


class ListingNotFoundError(RuntimeError):
    """Raised when a tire listing could not be located."""


class YardSaleItemNotFoundError(RuntimeError):
    """Raised when a yard-sale item could not be located."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _paginate(records: Sequence[T], page: int, page_size: int) -> tuple[List[T], int, bool]:
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    start = (page - 1) * page_size
    chunk = list(records[start : start + page_size])
    return chunk, len(records), start + len(chunk) < len(records)


def _can_modify(actor: Actor, owner_id: str) -> bool:
    return actor.is_admin or actor.user_id == owner_id


class ListingService:
    """CRUD and search over tire listings."""

    def __init__(self, repository: Optional[ListingRepository] = None) -> None:
        self._repository = repository or InMemoryListingRepository()

    # ------------------------------------------------------------------
    # Business operations

    def create(self, actor: Actor, payload: schemas.TireListingCreate) -> schemas.TireListing:
        now = _utcnow()
        listing = schemas.TireListing(
            **payload.model_dump(),
            id=new_record_id("tire"),
            business_id=actor.business_id,
            owner_id=actor.user_id,
            created_at=now,
            updated_at=now,
            published_at=now if payload.status is schemas.ListingStatus.PUBLISHED else None,
        )
        stored = self._repository.add(listing)
        logger.info("Listing %s created by %s", stored.id, actor.user_id)
        return stored

    def get(self, listing_id: str, *, business_id: str) -> schemas.TireListing:
        listing = self._repository.get(listing_id)
        if listing is None or listing.business_id != business_id:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return listing

    def update(
        self, actor: Actor, listing_id: str, payload: schemas.TireListingUpdate
    ) -> schemas.TireListing:
        listing = self.get(listing_id, business_id=actor.business_id)
        if not _can_modify(actor, listing.owner_id):
            raise deny("update", user_id=actor.user_id, resource="listing", resource_id=listing_id)

        changes: Dict[str, Any] = payload.model_dump(exclude_unset=True, exclude_none=True)
        now = _utcnow()
        changes["updated_at"] = now
        if (
            changes.get("status") is schemas.ListingStatus.PUBLISHED
            and listing.published_at is None
        ):
            changes["published_at"] = now
        return self._repository.update(listing_id, changes)

    def delete(self, actor: Actor, listing_id: str) -> None:
        listing = self.get(listing_id, business_id=actor.business_id)
        if not _can_modify(actor, listing.owner_id):
            raise deny("delete", user_id=actor.user_id, resource="listing", resource_id=listing_id)
        self._repository.delete(listing_id)
        logger.info("Listing %s deleted by %s", listing_id, actor.user_id)

    def list_for_business(
        self,
        business_id: str,
        *,
        status: Optional[schemas.ListingStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> schemas.TireListingPage:
        records = self._repository.search(
            schemas.ListingFilters(business_id=business_id, status=status)
        )
        items, total, has_more = _paginate(records, page, page_size)
        return schemas.TireListingPage(
            items=items, total=total, page=page, page_size=page_size, has_more=has_more
        )

    def count_by_status(self, business_id: str) -> Dict[str, int]:
        counts = {status.value: 0 for status in schemas.ListingStatus}
        for listing in self._repository.search(schemas.ListingFilters(business_id=business_id)):
            counts[listing.status.value] += 1
        return counts

    # ------------------------------------------------------------------
    # Public marketplace

    def search_public(
        self,
        filters: schemas.ListingFilters,
        *,
        page: int = 1,
        page_size: int = 20,
    ) -> schemas.TireListingPage:
        filters = dataclasses.replace(filters, status=schemas.ListingStatus.PUBLISHED)
        records = self._repository.search(filters)
        items, total, has_more = _paginate(records, page, page_size)
        return schemas.TireListingPage(
            items=items, total=total, page=page, page_size=page_size, has_more=has_more
        )

    def public_detail(self, listing_id: str) -> schemas.TireListing:
        listing = self._repository.get(listing_id)
        if listing is None or listing.status is not schemas.ListingStatus.PUBLISHED:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return self._repository.update(listing_id, {"view_count": listing.view_count + 1})

    def find(self, listing_id: str) -> Optional[schemas.TireListing]:
        return self._repository.get(listing_id)


class YardSaleService:
    """CRUD and search over yard-sale items."""

    def __init__(self, repository: Optional[YardSaleRepository] = None) -> None:
        self._repository = repository or InMemoryYardSaleRepository()

    def create(self, actor: Actor, payload: schemas.YardSaleItemCreate) -> schemas.YardSaleItem:
        now = _utcnow()
        item = schemas.YardSaleItem(
            **payload.model_dump(),
            id=new_record_id("yard"),
            business_id=actor.business_id,
            owner_id=actor.user_id,
            created_at=now,
            updated_at=now,
        )
        stored = self._repository.add(item)
        logger.info("Yard-sale item %s created by %s", stored.id, actor.user_id)
        return stored

    def get(
        self, item_id: str, *, business_id: str, viewer: Optional[Actor] = None
    ) -> schemas.YardSaleItem:
        """Return an item of ``business_id``.

        The sale address is masked for ``viewer`` unless they own the item or
        are a business admin.
        """

        item = self._repository.get(item_id)
        if item is None or item.business_id != business_id:
            raise YardSaleItemNotFoundError(f"Yard-sale item {item_id} not found")
        if viewer is None or viewer.is_admin:
            return item
        return self._masked(item, viewer.user_id)

    def update(
        self, actor: Actor, item_id: str, payload: schemas.YardSaleItemUpdate
    ) -> schemas.YardSaleItem:
        item = self.get(item_id, business_id=actor.business_id)
        if not _can_modify(actor, item.owner_id):
            raise deny("update", user_id=actor.user_id, resource="yard_sale_item", resource_id=item_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        changes["updated_at"] = _utcnow()
        return self._repository.update(item_id, changes)

    def delete(self, actor: Actor, item_id: str) -> None:
        item = self.get(item_id, business_id=actor.business_id)
        if not _can_modify(actor, item.owner_id):
            raise deny("delete", user_id=actor.user_id, resource="yard_sale_item", resource_id=item_id)
        self._repository.delete(item_id)
        logger.info("Yard-sale item %s deleted by %s", item_id, actor.user_id)

    def list_for_business(
        self,
        business_id: str,
        *,
        active_only: bool = False,
        viewer: Optional[Actor] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> schemas.YardSaleItemPage:
        records = self._repository.search(
            schemas.YardSaleFilters(business_id=business_id, active_only=active_only)
        )
        if viewer is not None and not viewer.is_admin:
            records = [self._masked(item, viewer.user_id) for item in records]
        items, total, has_more = _paginate(records, page, page_size)
        return schemas.YardSaleItemPage(
            items=items, total=total, page=page, page_size=page_size, has_more=has_more
        )

    def count_active(self, business_id: str) -> int:
        return len(
            self._repository.search(
                schemas.YardSaleFilters(business_id=business_id, active_only=True)
            )
        )

    def search_public(
        self,
        filters: schemas.YardSaleFilters,
        *,
        viewer_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> schemas.YardSaleItemPage:
        filters = dataclasses.replace(filters, active_only=True)
        records = [self._masked(item, viewer_id) for item in self._repository.search(filters)]
        items, total, has_more = _paginate(records, page, page_size)
        return schemas.YardSaleItemPage(
            items=items, total=total, page=page, page_size=page_size, has_more=has_more
        )

    def public_detail(
        self, item_id: str, *, viewer_id: Optional[str] = None
    ) -> schemas.YardSaleItem:
        item = self._repository.get(item_id)
        if item is None or not item.is_active:
            raise YardSaleItemNotFoundError(f"Yard-sale item {item_id} not found")
        item = self._repository.update(item_id, {"view_count": item.view_count + 1})
        return self._masked(item, viewer_id)

    def find(self, item_id: str) -> Optional[schemas.YardSaleItem]:
        return self._repository.get(item_id)

    @staticmethod
    def _masked(item: schemas.YardSaleItem, viewer_id: Optional[str]) -> schemas.YardSaleItem:
        if item.show_address or (viewer_id is not None and viewer_id == item.owner_id):
            return item
        if item.sale_address is None:
            return item
        return item.model_copy(update={"sale_address": schemas.ADDRESS_PLACEHOLDER})


__all__ = [
    "ListingNotFoundError",
    "ListingService",
    "YardSaleItemNotFoundError",
    "YardSaleService",
]
