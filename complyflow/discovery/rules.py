"""Predicate evaluation over business profiles."""

from __future__ import annotations

import re
from typing import Any, Callable, Optional

from ..exceptions import ProfileFieldError
from .entities import BusinessProfile, Condition, FieldCondition, Location

STATE_CODES = frozenset(
    {
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
        "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
        "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
        "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
        "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
        "DC",
    }
)

NAICS_PATTERN = re.compile(r"^\d{2,6}$")

LOCATION_PREFIX = "location."

Lookup = Callable[[str], Any]


def parse_location(value: Location | str) -> Location:
    """Split ``"City, County, ST"`` into its parts.

    The county part is only recognized when it ends in ``County``; the suffix
    is dropped so templates can render ``"{county} County"``.
    """

    if isinstance(value, Location):
        state = (value.state or "").strip().upper()
        if state not in STATE_CODES:
            raise ProfileFieldError(
                "locations", f"no recognizable state in {value.raw or value.city!r}"
            )
        return value.model_copy(update={"state": state})

    parts = [part.strip() for part in str(value).split(",")]
    state = next((part.upper() for part in parts if part.upper() in STATE_CODES), None)
    if state is None:
        raise ProfileFieldError("locations", f"no recognizable state in {value!r}")

    city: Optional[str] = parts[0] or None
    if city and city.upper() == state and len(parts) == 1:
        city = None
    county: Optional[str] = None
    if len(parts) > 2 and parts[1].endswith("County"):
        county = parts[1][: -len("County")].strip() or None
    return Location(city=city, county=county, state=state, raw=str(value))


def make_lookup(profile: BusinessProfile, location: Optional[Location] = None) -> Lookup:
    """Return a field accessor for ``profile`` scoped to ``location``."""

    def lookup(field: str) -> Any:
        if field.startswith(LOCATION_PREFIX):
            if location is None:
                return None
            return getattr(location, field[len(LOCATION_PREFIX) :], None)
        value = profile.get_field(field)
        if field == "industry_code" and value is not None:
            if not NAICS_PATTERN.match(str(value)):
                raise ProfileFieldError(field, f"{value!r} is not a NAICS code")
        return value

    return lookup


def _as_sequence(field: str, actual: Any) -> list[Any]:
    if actual is None:
        return []
    if isinstance(actual, str):
        return [actual]
    if isinstance(actual, (list, tuple, set, frozenset)):
        return list(actual)
    raise ProfileFieldError(field, f"expected a list, got {type(actual).__name__}")


def _contains(field: str, actual: Any, needle: Any) -> bool:
    needle = str(needle).lower()
    return any(needle in str(item).lower() for item in _as_sequence(field, actual))


def _is_empty(actual: Any) -> bool:
    if actual is None:
        return True
    if isinstance(actual, (str, list, tuple, set, frozenset, dict)):
        return len(actual) == 0
    return False


def evaluate_field(condition: FieldCondition, lookup: Lookup) -> bool:
    actual = lookup(condition.field)
    op = condition.op
    expected = condition.value

    if op == "eq":
        return actual == expected
    if op == "ne":
        return actual != expected
    if op == "in":
        return actual in (expected or ())
    if op == "contains":
        return _contains(condition.field, actual, expected)
    if op == "contains_any":
        return any(_contains(condition.field, actual, item) for item in expected or ())
    if op == "startswith":
        if actual is None:
            return False
        if not isinstance(actual, str):
            raise ProfileFieldError(
                condition.field, f"expected a string, got {type(actual).__name__}"
            )
        return actual.startswith(str(expected))
    if op == "truthy":
        return bool(actual)
    if op == "falsy":
        return not actual
    if op == "empty":
        return _is_empty(actual)
    if op == "not_empty":
        return not _is_empty(actual)
    raise ValueError(f"Unsupported operator: {op}")


def evaluate(predicate: Condition | FieldCondition, lookup: Lookup) -> bool:
    """Evaluate ``predicate`` against the fields exposed by ``lookup``.

    ``ProfileFieldError`` propagates to the caller so it can be attributed to
    the rule being evaluated.
    """

    if isinstance(predicate, FieldCondition):
        return evaluate_field(predicate, lookup)
    if not all(evaluate(item, lookup) for item in predicate.all):
        return False
    if predicate.any and not any(evaluate(item, lookup) for item in predicate.any):
        return False
    if predicate.not_ is not None and evaluate(predicate.not_, lookup):
        return False
    return True


def referenced_fields(predicate: Condition | FieldCondition) -> set[str]:
    """Return every field name a predicate reads."""
    if isinstance(predicate, FieldCondition):
        return {predicate.field}
    fields: set[str] = set()
    for item in (*predicate.all, *predicate.any):
        fields |= referenced_fields(item)
    if predicate.not_ is not None:
        fields |= referenced_fields(predicate.not_)
    return fields


__all__ = [
    "STATE_CODES",
    "NAICS_PATTERN",
    "parse_location",
    "make_lookup",
    "evaluate",
    "evaluate_field",
    "referenced_fields",
]
