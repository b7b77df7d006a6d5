"""Pydantic schemas package – re-exports for convenience."""

# Common enums
from app.schemas.common import (
    City as City,
    PropertyType as PropertyType,
    BHK as BHK,
    Purpose as Purpose,
    Timeline as Timeline,
    Source as Source,
    BuyerStatus as BuyerStatus,
    SortField as SortField,
    SortOrder as SortOrder,
    SuccessResponse as SuccessResponse,
)

# Buyer schemas
from app.schemas.buyer import (
    FieldError as FieldError,
    BuyerCreate as BuyerCreate,
    BuyerUpdate as BuyerUpdate,
    BuyerFilters as BuyerFilters,
    BuyerOut as BuyerOut,
    BuyerListResponse as BuyerListResponse,
    HistoryEntryOut as HistoryEntryOut,
    BuyerDeleteResponse as BuyerDeleteResponse,
)
