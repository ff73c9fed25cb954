"""records.py — Mapping between stored run items and the public run shape.

Stored layout (single table):
  PK      RUN#<id>
  SK      METADATA
  GSI1PK  ACTIVE_RUN        (present only while isActive is true)
  GSI1SK  DAY#<dayOfWeek>   (present only while isActive is true)
"""
from __future__ import annotations

from typing import Any, Dict

from config import ACTIVE_RUN_PARTITION, DAY_SORT_PREFIX, METADATA_SORT_KEY, RUN_KEY_PREFIX
from validation import OPTIONAL_FIELDS, REQUIRED_FIELDS

__all__ = [
    "INDEX_ATTRIBUTES",
    "PUBLIC_FIELDS",
    "build_item",
    "index_attributes",
    "index_sort_key",
    "is_active",
    "item_to_record",
    "redact",
    "run_id_from_item",
    "run_key",
]

INDEX_ATTRIBUTES = ("GSI1PK", "GSI1SK")

PUBLIC_FIELDS = (
    ("id",)
    + REQUIRED_FIELDS
    + OPTIONAL_FIELDS
    + ("isActive", "createdAt", "updatedAt")
)


def run_key(run_id: str) -> Dict[str, str]:
    return {"PK": f"{RUN_KEY_PREFIX}{run_id}", "SK": METADATA_SORT_KEY}


def index_sort_key(day_of_week: str) -> str:
    return f"{DAY_SORT_PREFIX}{day_of_week}"


def index_attributes(day_of_week: str) -> Dict[str, str]:
    """GSI1 attributes that place a run in the active-runs partition."""
    return {"GSI1PK": ACTIVE_RUN_PARTITION, "GSI1SK": index_sort_key(day_of_week)}


def is_active(item: Dict[str, Any]) -> bool:
    return item.get("isActive") is True


def run_id_from_item(item: Dict[str, Any]) -> str:
    pk = str(item.get("PK") or "")
    if pk.startswith(RUN_KEY_PREFIX):
        return pk[len(RUN_KEY_PREFIX):]
    return str(item.get("id") or "")


def build_item(
    run_id: str,
    edit_token: str,
    fields: Dict[str, Any],
    now: str,
) -> Dict[str, Any]:
    """Assemble the stored item for a newly created, active run."""
    item: Dict[str, Any] = {
        **run_key(run_id),
        **index_attributes(fields["dayOfWeek"]),
        "id": run_id,
    }
    item.update(fields)
    item.update(
        {
            "isActive": True,
            "editToken": edit_token,
            "createdAt": now,
            "updatedAt": now,
        }
    )
    return item


def item_to_record(item: Dict[str, Any], include_token: bool = False) -> Dict[str, Any]:
    """Project a stored item onto the public run shape.

    Key and index attributes never leave this function. Optional contact
    fields and notes are always present, null when unset.
    """
    record: Dict[str, Any] = {"id": run_id_from_item(item)}
    for field in PUBLIC_FIELDS[1:]:
        if field in OPTIONAL_FIELDS:
            record[field] = item.get(field)
        elif field in item:
            record[field] = item[field]
    if include_token:
        record["editToken"] = item.get("editToken")
    return record


def redact(item: Dict[str, Any]) -> Dict[str, Any]:
    """Public shape without the edit token."""
    return item_to_record(item, include_token=False)
