from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.core.config import settings
from app.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.core.rate_limit import limiter
from app.core.security import SessionUser
from app.repositories.buyer_repository import BuyerRepository
from app.schemas.buyer import (
    BuyerCreate,
    BuyerDeleteResponse,
    BuyerFilters,
    BuyerListResponse,
    BuyerOut,
    BuyerUpdate,
    HistoryEntryOut,
)
from app.schemas.common import (
    BHK,
    BuyerStatus,
    City,
    PropertyType,
    Purpose,
    SortField,
    SortOrder,
    Timeline,
)
from app.services.buyer_service import BuyerService
from app.api.deps import get_buyer_repo, get_buyer_service, get_current_user

router = APIRouter(prefix="/buyers", tags=["Buyers"])


@router.get("", response_model=BuyerListResponse)
async def list_buyers(
    search: Optional[str] = Query(None, description="Matches name, phone or email"),
    city: Optional[City] = Query(None),
    property_type: Optional[PropertyType] = Query(None),
    status: Optional[BuyerStatus] = Query(None),
    timeline: Optional[Timeline] = Query(None),
    purpose: Optional[Purpose] = Query(None),
    bhk: Optional[BHK] = Query(None),
    budget_min: Optional[float] = Query(None, ge=0),
    budget_max: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: SortField = Query(SortField.updated_at),
    sort_order: SortOrder = Query(SortOrder.desc),
    user: SessionUser = Depends(get_current_user),
    service: BuyerService = Depends(get_buyer_service),
    buyer_repo: BuyerRepository = Depends(get_buyer_repo),
) -> BuyerListResponse:
    """Search, filter, sort and paginate buyers."""
    filters = BuyerFilters(
        search=search,
        city=city,
        property_type=property_type,
        status=status,
        timeline=timeline,
        purpose=purpose,
        bhk=bhk,
        budget_min=budget_min,
        budget_max=budget_max,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = await service.list_buyers(filters, buyer_repo)
    return BuyerListResponse(
        buyers=[BuyerOut.model_validate(b) for b in result["buyers"]],
        total_count=result["total_count"],
        current_page=result["current_page"],
        total_pages=result["total_pages"],
    )


@router.post("", response_model=BuyerOut, status_code=201)
@limiter.limit(settings.CREATE_RATE_LIMIT)
async def create_buyer(
    request: Request,
    payload: BuyerCreate,
    user: SessionUser = Depends(get_current_user),
    service: BuyerService = Depends(get_buyer_service),
    buyer_repo: BuyerRepository = Depends(get_buyer_repo),
) -> BuyerOut:
    """Create a buyer owned by the current user.

    Rate-limited per client IP.  Input is normalized before validation,
    so budgets like ``"₹15,00,000"`` and phones like ``"+91 98765-43210"``
    are accepted.
    """
    buyer = await service.create_buyer(payload.raw_fields(), user, buyer_repo)
    return BuyerOut.model_validate(buyer)


@router.get("/{buyer_id}", response_model=BuyerOut)
async def get_buyer(
    buyer_id: UUID,
    user: SessionUser = Depends(get_current_user),
    service: BuyerService = Depends(get_buyer_service),
    buyer_repo: BuyerRepository = Depends(get_buyer_repo),
) -> BuyerOut:
    """Return a single buyer."""
    data = await service.get_buyer(buyer_id, buyer_repo)
    return BuyerOut(**data)


@router.put("/{buyer_id}", response_model=BuyerOut)
async def update_buyer(
    buyer_id: UUID,
    payload: BuyerUpdate,
    user: SessionUser = Depends(get_current_user),
    service: BuyerService = Depends(get_buyer_service),
    buyer_repo: BuyerRepository = Depends(get_buyer_repo),
) -> BuyerOut:
    """Update a buyer.

    Send back the ``updated_at`` value you last read; if someone else
    saved the buyer since, the request fails with 409.
    """
    buyer = await service.update_buyer(
        buyer_id=buyer_id,
        raw=payload.raw_fields(),
        observed_updated_at=payload.updated_at,
        actor=user,
        buyer_repo=buyer_repo,
        owner_id=payload.owner_id,
    )
    return BuyerOut.model_validate(buyer)


@router.delete("/{buyer_id}", response_model=BuyerDeleteResponse)
async def delete_buyer(
    buyer_id: UUID,
    user: SessionUser = Depends(get_current_user),
    service: BuyerService = Depends(get_buyer_service),
    buyer_repo: BuyerRepository = Depends(get_buyer_repo),
) -> BuyerDeleteResponse:
    """Delete a buyer together with its history."""
    await service.delete_buyer(buyer_id, user, buyer_repo)
    return BuyerDeleteResponse(buyer_id=buyer_id)


@router.get("/{buyer_id}/history", response_model=List[HistoryEntryOut])
async def get_buyer_history(
    buyer_id: UUID,
    limit: int = Query(settings.HISTORY_PAGE_SIZE, ge=1, le=100),
    user: SessionUser = Depends(get_current_user),
    service: BuyerService = Depends(get_buyer_service),
    buyer_repo: BuyerRepository = Depends(get_buyer_repo),
) -> List[HistoryEntryOut]:
    """Return the most recent audit entries for a buyer."""
    entries = await service.get_history(buyer_id, buyer_repo, limit=limit)
    return [HistoryEntryOut.model_validate(e) for e in entries]
