"""Input checks shared by the ledger operations."""

from enum import Enum

from protean.exceptions import ValidationError


def require_quantity(quantity, field_name="quantity", allow_zero=False):
    """Reject anything that is not a positive whole number (or zero, when allowed)."""
    lowest = 0 if allow_zero else 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < lowest:
        qualifier = "a non-negative" if allow_zero else "a positive"
        raise ValidationError({field_name: [f"Quantity must be {qualifier} whole number"]})


def coerce_choice(enum_cls: type[Enum], value, field_name: str) -> str:
    """Return the stored string for ``value``, accepting members or raw values."""
    if isinstance(value, enum_cls):
        return value.value
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError({field_name: [f"Must be one of: {allowed}"]}) from None
