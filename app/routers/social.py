"""Social-media account and cross-posting routes."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from ..core.container import ServiceContainer, get_services
from ..core.errors import PermissionDeniedError
from ..marketplace import ListingNotFoundError, YardSaleItemNotFoundError
from ..security.auth import Actor, require_role
from ..security.throttling import limiter
from ..social import InvalidSocialAccountError, Platform, SocialMediaManager
from ..social import schemas

router = APIRouter(prefix="/api/social", tags=["social"])

ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
OperatorDep = Annotated[Actor, Depends(require_role("operator"))]


@contextmanager
def _service_context(services: ServiceContainer) -> Iterator[SocialMediaManager]:
    try:
        yield services.social
    except InvalidSocialAccountError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except (ListingNotFoundError, YardSaleItemNotFoundError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/accounts", response_model=List[schemas.SocialAccountView])
def list_accounts(services: ServicesDep, actor: OperatorDep) -> List[schemas.SocialAccountView]:
    with _service_context(services) as svc:
        return svc.list_accounts(actor)


@router.post(
    "/accounts",
    response_model=schemas.SocialAccountView,
    status_code=status.HTTP_201_CREATED,
)
def connect_account(
    payload: schemas.SocialAccountConnect,
    services: ServicesDep,
    actor: OperatorDep,
) -> schemas.SocialAccountView:
    with _service_context(services) as svc:
        return svc.connect_account(actor, payload)


@router.delete("/accounts/{platform}", status_code=status.HTTP_204_NO_CONTENT)
def disconnect_account(platform: Platform, services: ServicesDep, actor: OperatorDep) -> Response:
    with _service_context(services) as svc:
        removed = svc.disconnect_account(actor, platform)
    if not removed:
        raise HTTPException(status_code=404, detail=f"No {platform.value} account connected")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/posts", response_model=List[schemas.SocialPost])
def list_posts(
    services: ServicesDep,
    actor: OperatorDep,
    days: Optional[int] = Query(default=None, ge=1, le=365),
) -> List[schemas.SocialPost]:
    with _service_context(services) as svc:
        return svc.list_posts(actor, days=days)


@router.post(
    "/posts",
    response_model=schemas.CreatePostResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("10/hour")
def create_post(
    request: Request,
    payload: schemas.CreatePostRequest,
    services: ServicesDep,
    actor: OperatorDep,
) -> schemas.CreatePostResponse:
    """Publish a listing or yard-sale item now, or schedule it."""

    with _service_context(services) as svc:
        return svc.create_post(actor, payload)


@router.get("/analytics", response_model=schemas.SocialAnalytics)
def analytics(
    services: ServicesDep,
    actor: OperatorDep,
    days: int = Query(default=30, ge=1, le=365),
) -> schemas.SocialAnalytics:
    with _service_context(services) as svc:
        return svc.analytics(actor, days=days)
