import logging
import re
from typing import Any, List, Mapping

from pydantic import EmailStr, TypeAdapter, ValidationError

from app.core.constants import (
    BHK_REQUIRED_PROPERTY_TYPES,
    BHK_VALUES,
    ENUM_ERROR_MESSAGES,
    ENUM_FIELDS,
    FULL_NAME_MAX_LENGTH,
    FULL_NAME_MIN_LENGTH,
    MAX_BUDGET,
    MAX_TAGS,
    NOTES_MAX_LENGTH,
    PHONE_MAX_DIGITS,
    PHONE_MIN_DIGITS,
    PROPERTY_TYPES,
)
from app.core.exceptions import BuyerValidationError
from app.schemas.buyer import FieldError

logger = logging.getLogger(__name__)

_DIGITS_ONLY = re.compile(r"[0-9]+")
_EMAIL_ADAPTER = TypeAdapter(EmailStr)

_ENUM_VALUES = {
    name: frozenset(member.value for member in enum_cls)
    for name, (enum_cls, _default) in ENUM_FIELDS.items()
}


class BuyerValidator:
    """Field and cross-field rules for a normalized buyer record.

    Every rule runs independently and all violations are collected, so
    a form can show every problem at once.  ``validate`` raises
    :class:`BuyerValidationError`; ``collect_errors`` just returns the
    list.
    """

    @classmethod
    def validate(cls, candidate: Mapping[str, Any]) -> None:
        errors = cls.collect_errors(candidate)
        if errors:
            logger.info(
                "Buyer validation failed on %s",
                ", ".join(sorted({e.field for e in errors})),
            )
            raise BuyerValidationError(errors)

    @classmethod
    def collect_errors(cls, candidate: Mapping[str, Any]) -> List[FieldError]:
        errors: List[FieldError] = []
        errors.extend(cls._check_full_name(candidate.get("full_name")))
        errors.extend(cls._check_email(candidate.get("email")))
        errors.extend(cls._check_phone(candidate.get("phone")))
        for name in ("city", "property_type", "purpose", "timeline", "source", "status"):
            value = candidate.get(name)
            if value not in _ENUM_VALUES[name]:
                errors.append(FieldError(field=name, message=ENUM_ERROR_MESSAGES[name]))
        errors.extend(
            cls._check_bhk(candidate.get("property_type"), candidate.get("bhk"))
        )
        errors.extend(
            cls._check_budget(candidate.get("budget_min"), candidate.get("budget_max"))
        )
        errors.extend(cls._check_notes(candidate.get("notes")))
        errors.extend(cls._check_tags(candidate.get("tags")))
        return errors

    # ------------------------------------------------------------------
    # Individual rules
    # ------------------------------------------------------------------

    @staticmethod
    def _check_full_name(value: Any) -> List[FieldError]:
        if value is None:
            return [FieldError(field="full_name", message="Full name is required")]
        if not isinstance(value, str):
            return [FieldError(field="full_name", message="Full name must be text")]
        length = len(value.strip())
        if length < FULL_NAME_MIN_LENGTH:
            return [
                FieldError(
                    field="full_name",
                    message=f"Full name must be at least {FULL_NAME_MIN_LENGTH} characters",
                )
            ]
        if length > FULL_NAME_MAX_LENGTH:
            return [
                FieldError(
                    field="full_name",
                    message=f"Full name must not exceed {FULL_NAME_MAX_LENGTH} characters",
                )
            ]
        return []

    @staticmethod
    def _check_phone(value: Any) -> List[FieldError]:
        if not value:
            return [FieldError(field="phone", message="Phone number is required")]
        errors: List[FieldError] = []
        text = str(value)
        if not _DIGITS_ONLY.fullmatch(text):
            errors.append(
                FieldError(field="phone", message="Phone number must contain only digits")
            )
        if len(text) < PHONE_MIN_DIGITS:
            errors.append(
                FieldError(
                    field="phone",
                    message=f"Phone number must be at least {PHONE_MIN_DIGITS} digits",
                )
            )
        elif len(text) > PHONE_MAX_DIGITS:
            errors.append(
                FieldError(
                    field="phone",
                    message=f"Phone number must not exceed {PHONE_MAX_DIGITS} digits",
                )
            )
        return errors

    @staticmethod
    def _check_email(value: Any) -> List[FieldError]:
        if value is None:
            return []
        try:
            _EMAIL_ADAPTER.validate_python(value)
        except ValidationError:
            return [FieldError(field="email", message="Please enter a valid email address")]
        return []

    @staticmethod
    def _check_bhk(property_type: Any, bhk: Any) -> List[FieldError]:
        """BHK is required for Apartment/Villa and must be absent otherwise."""
        if property_type in BHK_REQUIRED_PROPERTY_TYPES:
            if bhk is None:
                return [
                    FieldError(
                        field="bhk", message="BHK is required for Apartments and Villas"
                    )
                ]
        elif property_type in PROPERTY_TYPES and bhk is not None:
            return [
                FieldError(
                    field="bhk",
                    message=f"BHK does not apply to {property_type} properties",
                )
            ]
        if bhk is not None and bhk not in BHK_VALUES:
            return [FieldError(field="bhk", message=ENUM_ERROR_MESSAGES["bhk"])]
        return []

    @staticmethod
    def _check_budget(budget_min: Any, budget_max: Any) -> List[FieldError]:
        errors: List[FieldError] = []
        valid = {}
        for name, value in (("budget_min", budget_min), ("budget_max", budget_max)):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(FieldError(field=name, message="Budget must be a number"))
            elif value < 0:
                errors.append(
                    FieldError(field=name, message="Budget must be a positive number")
                )
            elif isinstance(value, float) and not value.is_integer():
                errors.append(
                    FieldError(field=name, message="Budget must be a whole number")
                )
            elif value > MAX_BUDGET:
                errors.append(
                    FieldError(field=name, message="Budget seems unreasonably high")
                )
            else:
                valid[name] = value

        if (
            "budget_min" in valid
            and "budget_max" in valid
            and valid["budget_max"] < valid["budget_min"]
        ):
            errors.append(
                FieldError(
                    field="budget_max",
                    message="Maximum budget must be greater than or equal to minimum budget",
                )
            )
        return errors

    @staticmethod
    def _check_notes(value: Any) -> List[FieldError]:
        if value is not None and len(str(value)) > NOTES_MAX_LENGTH:
            return [
                FieldError(
                    field="notes",
                    message=f"Notes must not exceed {NOTES_MAX_LENGTH} characters",
                )
            ]
        return []

    @staticmethod
    def _check_tags(value: Any) -> List[FieldError]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            return [FieldError(field="tags", message="Tags must be a list")]
        errors: List[FieldError] = []
        if len(value) > MAX_TAGS:
            errors.append(
                FieldError(field="tags", message=f"Maximum {MAX_TAGS} tags allowed")
            )
        if any(not isinstance(tag, str) or not tag.strip() for tag in value):
            errors.append(FieldError(field="tags", message="Tags must not be empty"))
        return errors
