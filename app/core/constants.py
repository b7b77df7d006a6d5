from typing import Dict, FrozenSet, Tuple, Type

from app.schemas.common import (
    BHK,
    DEFAULT_PAGE_SIZE as DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE as MAX_PAGE_SIZE,
    BuyerStatus,
    City,
    Purpose,
    PropertyType,
    Source,
    Timeline,
)

CITIES: FrozenSet[str] = frozenset(c.value for c in City)
PROPERTY_TYPES: FrozenSet[str] = frozenset(p.value for p in PropertyType)
BHK_VALUES: FrozenSet[str] = frozenset(b.value for b in BHK)
PURPOSES: FrozenSet[str] = frozenset(p.value for p in Purpose)
TIMELINES: FrozenSet[str] = frozenset(t.value for t in Timeline)
SOURCES: FrozenSet[str] = frozenset(s.value for s in Source)
BUYER_STATUSES: FrozenSet[str] = frozenset(s.value for s in BuyerStatus)

# Residential types carry a bedroom configuration; every other type must not
BHK_REQUIRED_PROPERTY_TYPES: FrozenSet[str] = frozenset(
    {PropertyType.apartment.value, PropertyType.villa.value}
)

DEFAULT_STATUS: str = BuyerStatus.new.value

# Enum-backed buyer fields and the value lenient normalization falls back to
ENUM_FIELDS: Dict[str, Tuple[Type, str]] = {
    "city": (City, City.other.value),
    "property_type": (PropertyType, PropertyType.apartment.value),
    "bhk": (BHK, BHK.two.value),
    "purpose": (Purpose, Purpose.buy.value),
    "timeline": (Timeline, Timeline.three_to_six_months.value),
    "source": (Source, Source.website.value),
    "status": (BuyerStatus, DEFAULT_STATUS),
}

ENUM_ERROR_MESSAGES: Dict[str, str] = {
    "city": "Please select a valid city",
    "property_type": "Please select a valid property type",
    "bhk": "Please select a valid BHK configuration",
    "purpose": "Please select Buy or Rent",
    "timeline": "Please select a valid timeline",
    "source": "Please select a valid source",
    "status": "Please select a valid status",
}

# Lenient normalization replaces a missing name with this placeholder
DEFAULT_FULL_NAME: str = "Unknown User"

FULL_NAME_MIN_LENGTH: int = 2
FULL_NAME_MAX_LENGTH: int = 80
PHONE_MIN_DIGITS: int = 10
PHONE_MAX_DIGITS: int = 15
NOTES_MAX_LENGTH: int = 1000
MAX_TAGS: int = 10
MAX_BUDGET: int = 1_000_000_000

# Every field a caller may write and the change-set calculator compares
BUYER_FIELDS: Tuple[str, ...] = (
    "full_name",
    "email",
    "phone",
    "city",
    "property_type",
    "bhk",
    "purpose",
    "budget_min",
    "budget_max",
    "timeline",
    "source",
    "status",
    "notes",
    "tags",
)

REQUIRED_FIELDS: Tuple[str, ...] = (
    "full_name",
    "phone",
    "city",
    "property_type",
    "purpose",
    "timeline",
    "source",
    "status",
)


def enum_check_clause(column: str, values: FrozenSet[str], nullable: bool = False) -> str:
    """Build a SQL CHECK clause restricting *column* to *values*."""
    clause = f"{column} IN ({', '.join(repr(v) for v in sorted(values))})"
    if nullable:
        return f"{column} IS NULL OR {clause}"
    return clause

