from enum import Enum
from pydantic import BaseModel


class City(str, Enum):
    chandigarh = "Chandigarh"
    mohali = "Mohali"
    zirakpur = "Zirakpur"
    panchkula = "Panchkula"
    other = "Other"


class PropertyType(str, Enum):
    apartment = "Apartment"
    villa = "Villa"
    plot = "Plot"
    office = "Office"
    retail = "Retail"


class BHK(str, Enum):
    one = "1"
    two = "2"
    three = "3"
    four = "4"
    studio = "Studio"


class Purpose(str, Enum):
    buy = "Buy"
    rent = "Rent"


class Timeline(str, Enum):
    zero_to_three_months = "0-3m"
    three_to_six_months = "3-6m"
    over_six_months = ">6m"
    exploring = "Exploring"


class Source(str, Enum):
    website = "Website"
    referral = "Referral"
    walk_in = "Walk-in"
    call = "Call"
    other = "Other"


class BuyerStatus(str, Enum):
    new = "New"
    qualified = "Qualified"
    contacted = "Contacted"
    visited = "Visited"
    negotiation = "Negotiation"
    converted = "Converted"
    dropped = "Dropped"


class SortField(str, Enum):
    updated_at = "updated_at"
    created_at = "created_at"
    full_name = "full_name"


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


# Buyer list pagination bounds
DEFAULT_PAGE_SIZE: int = 10
MAX_PAGE_SIZE: int = 50


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
