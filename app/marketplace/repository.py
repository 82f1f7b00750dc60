"""Storage for tire listings and yard-sale items."""

from __future__ import annotations

import threading
from typing import Any, Dict, Generic, List, Optional, Protocol, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from . import schemas

RecordT = TypeVar("RecordT", bound=BaseModel)


class ListingRepository(Protocol):
    def add(self, listing: schemas.TireListing) -> schemas.TireListing: ...

    def get(self, listing_id: str) -> Optional[schemas.TireListing]: ...

    def update(self, listing_id: str, changes: Dict[str, Any]) -> schemas.TireListing: ...

    def delete(self, listing_id: str) -> bool: ...

    def search(self, filters: schemas.ListingFilters) -> List[schemas.TireListing]: ...


class YardSaleRepository(Protocol):
    def add(self, item: schemas.YardSaleItem) -> schemas.YardSaleItem: ...

    def get(self, item_id: str) -> Optional[schemas.YardSaleItem]: ...

    def update(self, item_id: str, changes: Dict[str, Any]) -> schemas.YardSaleItem: ...

    def delete(self, item_id: str) -> bool: ...

    def search(self, filters: schemas.YardSaleFilters) -> List[schemas.YardSaleItem]: ...


def new_record_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:20]}"


class _InMemoryStore(Generic[RecordT]):
    def __init__(self) -> None:
        self._records: Dict[str, RecordT] = {}
        self._lock = threading.Lock()

    def add(self, record: RecordT) -> RecordT:
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)  # type: ignore[attr-defined]
        return record.model_copy(deep=True)

    def get(self, record_id: str) -> Optional[RecordT]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def update(self, record_id: str, changes: Dict[str, Any]) -> RecordT:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise KeyError(record_id)
            updated = record.model_copy(update=changes, deep=True)
            self._records[record_id] = updated
            return updated.model_copy(deep=True)

    def delete(self, record_id: str) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None

    def _snapshot(self) -> List[RecordT]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]


def _matches_text(search: Optional[str], *fields: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.lower()
    return any(needle in (field or "").lower() for field in fields)


def _in_price_range(price: float, low: Optional[float], high: Optional[float]) -> bool:
    if low is not None and price < low:
        return False
    if high is not None and price > high:
        return False
    return True


class InMemoryListingRepository(_InMemoryStore[schemas.TireListing]):
    def search(self, filters: schemas.ListingFilters) -> List[schemas.TireListing]:
        results = [
            listing
            for listing in self._snapshot()
            if (filters.business_id is None or listing.business_id == filters.business_id)
            and (filters.status is None or listing.status is filters.status)
            and _matches_text(
                filters.search,
                listing.title,
                listing.description,
                listing.brand,
                listing.model,
            )
            and (not filters.size or filters.size.lower() in listing.size.lower())
            and (not filters.brand or filters.brand.lower() in listing.brand.lower())
            and (filters.condition is None or listing.condition is filters.condition)
            and _in_price_range(listing.price, filters.min_price, filters.max_price)
            and (
                filters.rim_service is None
                or listing.rim_service_available is filters.rim_service
            )
        ]
        results.sort(key=lambda listing: listing.created_at, reverse=True)
        return results


class InMemoryYardSaleRepository(_InMemoryStore[schemas.YardSaleItem]):
    def search(self, filters: schemas.YardSaleFilters) -> List[schemas.YardSaleItem]:
        results = [
            item
            for item in self._snapshot()
            if (filters.business_id is None or item.business_id == filters.business_id)
            and (filters.owner_id is None or item.owner_id == filters.owner_id)
            and (not filters.active_only or item.is_active)
            and _matches_text(filters.search, item.title, item.description, item.category)
            and (not filters.category or item.category.lower() == filters.category.lower())
            and (filters.condition is None or item.condition is filters.condition)
            and _in_price_range(item.price, filters.min_price, filters.max_price)
            and (filters.available_on is None or filters.available_on in item.available_dates)
        ]
        results.sort(key=lambda item: item.created_at, reverse=True)
        return results
