"""Buyer-specific Pydantic schemas (requests, responses, filters)."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import (
    BHK,
    BuyerStatus,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    City,
    PropertyType,
    Purpose,
    SortField,
    SortOrder,
    SuccessResponse,
    Timeline,
)


class FieldError(BaseModel):
    """A single violated rule, keyed by the offending field."""

    field: str
    message: str


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BuyerCreate(BaseModel):
    """Raw buyer data as submitted by a form or API client.

    Fields are deliberately loose: budgets may arrive as
    currency-formatted strings, tags as a comma-separated string, and
    enum values in any case.  The normalizer turns this into canonical
    values and the validator decides whether it is acceptable.
    """

    model_config = ConfigDict(extra="ignore")

    full_name: Optional[Any] = None
    email: Optional[Any] = None
    phone: Optional[Any] = None
    city: Optional[Any] = None
    property_type: Optional[Any] = None
    bhk: Optional[Any] = None
    purpose: Optional[Any] = None
    budget_min: Optional[Any] = None
    budget_max: Optional[Any] = None
    timeline: Optional[Any] = None
    source: Optional[Any] = None
    status: Optional[Any] = None
    notes: Optional[Any] = None
    tags: Optional[Any] = None

    def raw_fields(self) -> Dict[str, Any]:
        """Return only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


class BuyerUpdate(BuyerCreate):
    """Partial update body for ``PUT /api/v1/buyers/{buyer_id}``.

    ``updated_at`` is the timestamp the client last observed (ISO 8601
    or epoch seconds; a value without fractional seconds is compared
    to the second); omitting it skips the stale-write check unless the
    server requires it.  ``owner_id`` may only be changed by an
    administrator.
    """

    updated_at: Optional[datetime] = None
    owner_id: Optional[str] = None

    def raw_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"updated_at", "owner_id"})


class BuyerFilters(BaseModel):
    """Search, filter, sort and pagination options for the buyer list."""

    search: Optional[str] = None
    city: Optional[City] = None
    property_type: Optional[PropertyType] = None
    status: Optional[BuyerStatus] = None
    timeline: Optional[Timeline] = None
    purpose: Optional[Purpose] = None
    bhk: Optional[BHK] = None
    budget_min: Optional[float] = Field(None, ge=0)
    budget_max: Optional[float] = Field(None, ge=0)
    page: int = Field(1, ge=1)
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    sort_by: SortField = SortField.updated_at
    sort_order: SortOrder = SortOrder.desc

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BuyerOut(BaseModel):
    """A persisted buyer record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    email: Optional[str] = None
    phone: str
    city: str
    property_type: str
    bhk: Optional[str] = None
    purpose: str
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    timeline: str
    source: str
    status: str
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    owner_id: str
    created_at: datetime
    updated_at: datetime


class BuyerListResponse(BaseModel):
    """One page of buyers plus pagination metadata."""

    buyers: List[BuyerOut] = Field(default_factory=list)
    total_count: int = Field(0, ge=0)
    current_page: int = Field(1, ge=1)
    total_pages: int = Field(0, ge=0)


class HistoryEntryOut(BaseModel):
    """A single audit-trail entry for a buyer."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    buyer_id: UUID
    changed_by: str
    changed_at: datetime
    diff: Dict[str, Dict[str, Any]]


class BuyerDeleteResponse(SuccessResponse):
    """Response body returned after a successful delete."""

    buyer_id: UUID
    message: str = "Buyer deleted successfully"
