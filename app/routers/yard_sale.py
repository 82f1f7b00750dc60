"""Yard-sale item API: business management and the public marketplace."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..core.auth import AccessTokenPayload, get_optional_business_context
from ..core.container import ServiceContainer, get_services
from ..core.errors import PermissionDeniedError
from ..marketplace import YardSaleItemNotFoundError, YardSaleService
from ..marketplace import schemas
from ..security.auth import Actor, require_role

router = APIRouter(tags=["yard-sale"])

ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
ViewerDep = Annotated[Actor, Depends(require_role("viewer"))]
OperatorDep = Annotated[Actor, Depends(require_role("operator"))]
OptionalTokenDep = Annotated[
    Optional[AccessTokenPayload], Depends(get_optional_business_context)
]


@contextmanager
def _service_context(services: ServiceContainer) -> Iterator[YardSaleService]:
    try:
        yield services.yard_sales
    except YardSaleItemNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc


@router.get("/api/yard-sale/items", response_model=schemas.YardSaleItemPage)
def list_items(
    services: ServicesDep,
    actor: ViewerDep,
    active_only: bool = False,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> schemas.YardSaleItemPage:
    with _service_context(services) as svc:
        return svc.list_for_business(
            actor.business_id,
            active_only=active_only,
            viewer=actor,
            page=page,
            page_size=page_size,
        )


@router.post(
    "/api/yard-sale/items",
    response_model=schemas.YardSaleItem,
    status_code=status.HTTP_201_CREATED,
)
def create_item(
    payload: schemas.YardSaleItemCreate,
    services: ServicesDep,
    actor: OperatorDep,
) -> schemas.YardSaleItem:
    with _service_context(services) as svc:
        return svc.create(actor, payload)


@router.get("/api/yard-sale/items/{item_id}", response_model=schemas.YardSaleItem)
def get_item(item_id: str, services: ServicesDep, actor: ViewerDep) -> schemas.YardSaleItem:
    with _service_context(services) as svc:
        return svc.get(item_id, business_id=actor.business_id, viewer=actor)


@router.put("/api/yard-sale/items/{item_id}", response_model=schemas.YardSaleItem)
def update_item(
    item_id: str,
    payload: schemas.YardSaleItemUpdate,
    services: ServicesDep,
    actor: OperatorDep,
) -> schemas.YardSaleItem:
    with _service_context(services) as svc:
        return svc.update(actor, item_id, payload)


@router.delete("/api/yard-sale/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(item_id: str, services: ServicesDep, actor: OperatorDep) -> Response:
    with _service_context(services) as svc:
        svc.delete(actor, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----------------------------------------------------------------------
# Public marketplace
# ----------------------------------------------------------------------
@router.get("/api/marketplace/yard-sale", response_model=schemas.YardSaleItemPage)
def search_items(
    services: ServicesDep,
    token: OptionalTokenDep,
    search: Optional[str] = Query(default=None, max_length=100),
    category: Optional[str] = Query(default=None, max_length=50),
    condition: Optional[schemas.Condition] = None,
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    available_on: Optional[date] = None,
    business_id: Optional[str] = Query(default=None, max_length=64),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> schemas.YardSaleItemPage:
    filters = schemas.YardSaleFilters(
        business_id=business_id,
        search=search,
        category=category,
        condition=condition,
        min_price=min_price,
        max_price=max_price,
        available_on=available_on,
    )
    with _service_context(services) as svc:
        return svc.search_public(
            filters,
            viewer_id=token["user_id"] if token else None,
            page=page,
            page_size=page_size,
        )


@router.get("/api/marketplace/yard-sale/{item_id}", response_model=schemas.YardSaleItem)
def public_item(item_id: str, services: ServicesDep, token: OptionalTokenDep) -> schemas.YardSaleItem:
    with _service_context(services) as svc:
        return svc.public_detail(item_id, viewer_id=token["user_id"] if token else None)
