"""Best-effort cleanup of raw buyer input into canonical field values.

Normalization never rejects input.  Values that cannot be cleaned up
become absent (``None``), and enum values outside their allowed set are
reported back as :class:`UnrecognizedValueError` results so the caller
decides between strict rejection and lenient defaults.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union

from app.core.constants import BUYER_FIELDS, DEFAULT_FULL_NAME, DEFAULT_STATUS, ENUM_FIELDS
from app.core.exceptions import UnrecognizedValueError

logger = logging.getLogger(__name__)

Number = Union[int, float]

_NON_DIGITS = re.compile(r"\D")
# Currency symbols/codes, thousands separators and any whitespace
_BUDGET_NOISE = re.compile(r"[₹$€£,_\s]|\brs\.?|\binr\b", re.IGNORECASE)

_ENUM_LOOKUP: Dict[str, Dict[str, str]] = {
    name: {member.value.lower(): member.value for member in enum_cls}
    for name, (enum_cls, _default) in ENUM_FIELDS.items()
}


class EnumResult(NamedTuple):
    """Outcome of coercing one enum field: a canonical value or an error."""

    value: Optional[str]
    error: Optional[UnrecognizedValueError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class NormalizedBuyer:
    """Normalized buyer fields plus any enum values that were not recognized."""

    values: Dict[str, Any] = field(default_factory=dict)
    unrecognized: Dict[str, UnrecognizedValueError] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Field-level helpers
# ---------------------------------------------------------------------------


def clean_text(raw: Any) -> Optional[str]:
    """Trim a value to a string; empty strings become ``None``."""
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def clean_phone(raw: Any) -> Optional[str]:
    """Keep only the digits of a phone number."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    digits = _NON_DIGITS.sub("", str(raw))
    return digits or None


def parse_budget(raw: Any) -> Optional[Number]:
    """Parse a budget such as ``"₹ 15,00,000"`` into a number.

    Whole numbers come back as ``int``.  Anything that does not parse
    to a finite number becomes ``None``.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, Decimal)):
        number = float(raw)
    else:
        text = _BUDGET_NOISE.sub("", str(raw))
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    if isinstance(raw, int):
        return raw
    return int(number) if number.is_integer() else number


def clean_tags(raw: Any) -> List[str]:
    """Turn a list or a comma-separated string into a list of trimmed tags.

    Empty pieces of a comma-separated string are dropped.  Entries of a
    list are kept in place (even when blank) so the validator can flag
    them.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        return [tag.strip() for tag in raw.split(",") if tag.strip()]
    if isinstance(raw, (list, tuple)):
        return ["" if tag is None else str(tag).strip() for tag in raw]
    return [str(raw).strip()]


def coerce_enum(field_name: str, raw: Any) -> EnumResult:
    """Match *raw* against the enum backing *field_name*, ignoring case."""
    if isinstance(raw, Enum):
        raw = raw.value
    text = clean_text(raw)
    if text is None:
        return EnumResult(None)
    canonical = _ENUM_LOOKUP[field_name].get(text.lower())
    if canonical is not None:
        return EnumResult(canonical)
    return EnumResult(text, UnrecognizedValueError(field_name, raw))


# ---------------------------------------------------------------------------
# Record-level normalizer
# ---------------------------------------------------------------------------


class BuyerNormalizer:
    """Converts raw buyer input into the canonical shape the validator expects.

    In strict mode (the default) unrecognized enum values are kept
    verbatim so validation rejects them.  In lenient mode they are
    replaced with the per-field default from ``ENUM_FIELDS``, and a
    missing name becomes ``DEFAULT_FULL_NAME``.

    ``partial=True`` is used for updates: only keys present in the raw
    input are emitted and no defaults are filled in for absent keys.
    """

    def __init__(self, lenient: bool = False) -> None:
        self.lenient = lenient

    def normalize(self, raw: Mapping[str, Any], partial: bool = False) -> NormalizedBuyer:
        result = NormalizedBuyer()
        for name in BUYER_FIELDS:
            if partial and name not in raw:
                continue
            value = raw.get(name)
            if name in ENUM_FIELDS:
                result.values[name] = self._normalize_enum(name, value, result)
            elif name == "full_name":
                name_value = clean_text(value)
                if name_value is None and self.lenient:
                    name_value = DEFAULT_FULL_NAME
                result.values[name] = name_value
            elif name == "phone":
                result.values[name] = clean_phone(value)
            elif name in ("budget_min", "budget_max"):
                result.values[name] = parse_budget(value)
            elif name == "tags":
                result.values[name] = clean_tags(value)
            else:
                result.values[name] = clean_text(value)

        if not partial and result.values.get("status") is None:
            result.values["status"] = DEFAULT_STATUS
        return result

    def _normalize_enum(self, name: str, raw: Any, result: NormalizedBuyer) -> Optional[str]:
        coerced = coerce_enum(name, raw)
        if not coerced.ok:
            result.unrecognized[name] = coerced.error
            if self.lenient:
                _enum_cls, default = ENUM_FIELDS[name]
                logger.info(
                    "Replacing unrecognized %s %r with default %r",
                    name,
                    coerced.value,
                    default,
                )
                return default
            return coerced.value
        # bhk stays absent when not given; it is only meaningful for some types
        if coerced.value is None and self.lenient and name != "bhk":
            return ENUM_FIELDS[name][1]
        return coerced.value
