"""Tire listing API: business management and the public marketplace."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..core.container import ServiceContainer, get_services
from ..core.errors import PermissionDeniedError
from ..marketplace import ListingNotFoundError, ListingService
from ..marketplace import schemas
from ..security.auth import Actor, require_role

router = APIRouter(tags=["listings"])

ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
ViewerDep = Annotated[Actor, Depends(require_role("viewer"))]
OperatorDep = Annotated[Actor, Depends(require_role("operator"))]


@contextmanager
def _service_context(services: ServiceContainer) -> Iterator[ListingService]:
    try:
        yield services.listings
    except ListingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc


@router.get("/api/listings", response_model=schemas.TireListingPage)
def list_listings(
    services: ServicesDep,
    actor: ViewerDep,
    status_filter: Optional[schemas.ListingStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> schemas.TireListingPage:
    with _service_context(services) as svc:
        return svc.list_for_business(
            actor.business_id, status=status_filter, page=page, page_size=page_size
        )


@router.post(
    "/api/listings",
    response_model=schemas.TireListing,
    status_code=status.HTTP_201_CREATED,
)
def create_listing(
    payload: schemas.TireListingCreate,
    services: ServicesDep,
    actor: OperatorDep,
) -> schemas.TireListing:
    with _service_context(services) as svc:
        return svc.create(actor, payload)


@router.get("/api/listings/{listing_id}", response_model=schemas.TireListing)
def get_listing(listing_id: str, services: ServicesDep, actor: ViewerDep) -> schemas.TireListing:
    with _service_context(services) as svc:
        return svc.get(listing_id, business_id=actor.business_id)


@router.put("/api/listings/{listing_id}", response_model=schemas.TireListing)
def update_listing(
    listing_id: str,
    payload: schemas.TireListingUpdate,
    services: ServicesDep,
    actor: OperatorDep,
) -> schemas.TireListing:
    with _service_context(services) as svc:
        return svc.update(actor, listing_id, payload)


@router.delete("/api/listings/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_listing(listing_id: str, services: ServicesDep, actor: OperatorDep) -> Response:
    with _service_context(services) as svc:
        svc.delete(actor, listing_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----------------------------------------------------------------------
# Public marketplace
# ----------------------------------------------------------------------
@router.get("/api/marketplace/listings", response_model=schemas.TireListingPage)
def search_listings(
    services: ServicesDep,
    search: Optional[str] = Query(default=None, max_length=100),
    size: Optional[str] = Query(default=None, max_length=20),
    brand: Optional[str] = Query(default=None, max_length=50),
    condition: Optional[schemas.Condition] = None,
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    rim_service: Optional[bool] = None,
    business_id: Optional[str] = Query(default=None, max_length=64),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> schemas.TireListingPage:
    filters = schemas.ListingFilters(
        business_id=business_id,
        search=search,
        size=size,
        brand=brand,
        condition=condition,
        min_price=min_price,
        max_price=max_price,
        rim_service=rim_service,
    )
    with _service_context(services) as svc:
        return svc.search_public(filters, page=page, page_size=page_size)


@router.get("/api/marketplace/listings/{listing_id}", response_model=schemas.TireListing)
def public_listing(listing_id: str, services: ServicesDep) -> schemas.TireListing:
    with _service_context(services) as svc:
        return svc.public_detail(listing_id)
