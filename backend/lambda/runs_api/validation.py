"""validation.py — Field allow-lists and validation rules for run payloads.

Create and update bodies are checked against closed allow-lists before any
field rule runs, so server-owned attributes (id, editToken, timestamps, key
and index attributes) can never be injected. A validated update body becomes
a RunPatch whose unset fields are left untouched by the lifecycle engine.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List

from errors import ValidationError

__all__ = [
    "AVAILABILITY_LEVELS",
    "CREATE_FIELDS",
    "DAYS_OF_WEEK",
    "OPTIONAL_FIELDS",
    "PACE_BUCKETS",
    "REQUIRED_FIELDS",
    "RunPatch",
    "TERRAINS",
    "UNSET",
    "UPDATE_FIELDS",
    "validate_create",
    "validate_update",
]

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

DAYS_OF_WEEK = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
TERRAINS = ("Road", "Trail", "Mixed")
PACE_BUCKETS = ("sub_8", "8_to_9", "9_to_10", "10_plus")
AVAILABILITY_LEVELS = ("consistently", "frequently", "sometimes", "rarely")

# ---------------------------------------------------------------------------
# Allow-lists
# ---------------------------------------------------------------------------

REQUIRED_FIELDS = (
    "name",
    "dayOfWeek",
    "startTime",
    "locationName",
    "latitude",
    "longitude",
    "typicalDistances",
    "terrain",
    "paceGroups",
)
OPTIONAL_FIELDS = ("contactName", "contactEmail", "contactPhone", "notes")

CREATE_FIELDS = frozenset(REQUIRED_FIELDS + OPTIONAL_FIELDS)
UPDATE_FIELDS = CREATE_FIELDS | {"isActive"}

_MAX_LENGTHS = {
    "name": 100,
    "startTime": 20,
    "locationName": 200,
    "typicalDistances": 100,
    "contactName": 100,
    "contactEmail": 254,
    "contactPhone": 30,
    "notes": 1000,
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Decimal places kept for latitude and longitude (about 1 cm).
COORDINATE_PRECISION = 7


# ---------------------------------------------------------------------------
# Field rules
# ---------------------------------------------------------------------------
# Each rule returns (normalized_value, problem). problem is None when valid.


def _required_text(field: str) -> Callable[[Any], tuple]:
    def rule(value: Any) -> tuple:
        if not isinstance(value, str) or not value.strip():
            return None, f"Field '{field}' must be a non-empty string."
        text = value.strip()
        if len(text) > _MAX_LENGTHS[field]:
            return None, f"Field '{field}' must be at most {_MAX_LENGTHS[field]} characters."
        return text, None

    return rule


def _optional_text(field: str) -> Callable[[Any], tuple]:
    def rule(value: Any) -> tuple:
        if value is None:
            return None, None
        if not isinstance(value, str):
            return None, f"Field '{field}' must be a string or null."
        text = value.strip()
        if not text:
            return None, None
        if len(text) > _MAX_LENGTHS[field]:
            return None, f"Field '{field}' must be at most {_MAX_LENGTHS[field]} characters."
        return text, None

    return rule


def _choice(field: str, allowed: tuple) -> Callable[[Any], tuple]:
    def rule(value: Any) -> tuple:
        if value not in allowed:
            return None, f"Field '{field}' must be one of: {', '.join(allowed)}."
        return value, None

    return rule


def _coordinate(field: str, bound: float) -> Callable[[Any], tuple]:
    def rule(value: Any) -> tuple:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None, f"Field '{field}' must be a number."
        out_of_range = f"Field '{field}' must be between {-bound:g} and {bound:g}."
        # No float conversion before this check: huge ints overflow a float.
        # NaN and infinities fail the comparison too.
        if not -bound <= value <= bound:
            return None, out_of_range
        if isinstance(value, int):
            return value, None
        return round(value, COORDINATE_PRECISION), None

    return rule


def _contact_email(value: Any) -> tuple:
    text, problem = _optional_text("contactEmail")(value)
    if problem or text is None:
        return text, problem
    if not _EMAIL_RE.match(text):
        return None, "Field 'contactEmail' must be a valid email address."
    return text, None


def _pace_groups(value: Any) -> tuple:
    if not isinstance(value, dict):
        return None, "Field 'paceGroups' must be an object."
    unknown = sorted(set(value) - set(PACE_BUCKETS))
    if unknown:
        return None, f"Field 'paceGroups' has unknown pace bucket(s): {', '.join(unknown)}."
    missing = [bucket for bucket in PACE_BUCKETS if bucket not in value]
    if missing:
        return None, f"Field 'paceGroups' is missing pace bucket(s): {', '.join(missing)}."
    for bucket in PACE_BUCKETS:
        if value[bucket] not in AVAILABILITY_LEVELS:
            return None, (
                f"paceGroups.{bucket} must be one of: {', '.join(AVAILABILITY_LEVELS)}."
            )
    return {bucket: value[bucket] for bucket in PACE_BUCKETS}, None


def _is_active(value: Any) -> tuple:
    if not isinstance(value, bool):
        return None, "Field 'isActive' must be a boolean."
    return value, None


_FIELD_RULES: Dict[str, Callable[[Any], tuple]] = {
    "name": _required_text("name"),
    "dayOfWeek": _choice("dayOfWeek", DAYS_OF_WEEK),
    "startTime": _required_text("startTime"),
    "locationName": _required_text("locationName"),
    "latitude": _coordinate("latitude", 90),
    "longitude": _coordinate("longitude", 180),
    "typicalDistances": _required_text("typicalDistances"),
    "terrain": _choice("terrain", TERRAINS),
    "paceGroups": _pace_groups,
    "contactName": _optional_text("contactName"),
    "contactEmail": _contact_email,
    "contactPhone": _optional_text("contactPhone"),
    "notes": _optional_text("notes"),
    "isActive": _is_active,
}


def _reject_unknown(body: Any, allowed: frozenset) -> None:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    unknown = sorted(str(key) for key in body if key not in allowed)
    if unknown:
        raise ValidationError(f"Unrecognized field(s): {', '.join(unknown)}.")


def _apply_rules(body: Dict[str, Any], problems: List[str]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for field, value in body.items():
        normalized, problem = _FIELD_RULES[field](value)
        if problem:
            problems.append(problem)
        else:
            cleaned[field] = normalized
    return cleaned


def validate_create(body: Any) -> Dict[str, Any]:
    """Validate a create body and return the normalized business fields.

    Raises ValidationError listing every problem found.
    """
    _reject_unknown(body, CREATE_FIELDS)

    problems: List[str] = []
    for field in REQUIRED_FIELDS:
        if body.get(field) is None:
            problems.append(f"Field '{field}' is required.")
    present = {k: v for k, v in body.items() if not (k in REQUIRED_FIELDS and v is None)}
    cleaned = _apply_rules(present, problems)
    if problems:
        raise ValidationError(" ".join(problems))
    return cleaned


# ---------------------------------------------------------------------------
# Partial update value object
# ---------------------------------------------------------------------------


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

_WIRE_TO_ATTR = {
    "name": "name",
    "dayOfWeek": "day_of_week",
    "startTime": "start_time",
    "locationName": "location_name",
    "latitude": "latitude",
    "longitude": "longitude",
    "typicalDistances": "typical_distances",
    "terrain": "terrain",
    "paceGroups": "pace_groups",
    "contactName": "contact_name",
    "contactEmail": "contact_email",
    "contactPhone": "contact_phone",
    "notes": "notes",
    "isActive": "is_active",
}
_ATTR_TO_WIRE = {attr: wire for wire, attr in _WIRE_TO_ATTR.items()}


@dataclass(frozen=True)
class RunPatch:
    """Validated partial update; UNSET fields are not touched."""

    name: Any = UNSET
    day_of_week: Any = UNSET
    start_time: Any = UNSET
    location_name: Any = UNSET
    latitude: Any = UNSET
    longitude: Any = UNSET
    typical_distances: Any = UNSET
    terrain: Any = UNSET
    pace_groups: Any = UNSET
    contact_name: Any = UNSET
    contact_email: Any = UNSET
    contact_phone: Any = UNSET
    notes: Any = UNSET
    is_active: Any = UNSET

    @classmethod
    def from_fields(cls, values: Dict[str, Any]) -> "RunPatch":
        return cls(**{_WIRE_TO_ATTR[k]: v for k, v in values.items()})

    def changes(self) -> Dict[str, Any]:
        """Present fields keyed by their stored attribute names."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not UNSET:
                out[_ATTR_TO_WIRE[f.name]] = value
        return out

    @property
    def is_empty(self) -> bool:
        return not self.changes()


def validate_update(body: Any) -> RunPatch:
    """Validate an update body field by field.

    Required business fields may be changed but not cleared; the optional
    contact fields and notes accept null to clear them.
    """
    _reject_unknown(body, UPDATE_FIELDS)

    non_nullable = REQUIRED_FIELDS + ("isActive",)
    problems: List[str] = [
        f"Field '{k}' cannot be null." for k in non_nullable if k in body and body[k] is None
    ]
    present = {k: v for k, v in body.items() if not (k in non_nullable and v is None)}
    cleaned = _apply_rules(present, problems)
    if problems:
        raise ValidationError(" ".join(problems))
    return RunPatch.from_fields(cleaned)

