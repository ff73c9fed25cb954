"""lifecycle.py — Create, fetch, list and update runs.

The GSI1 active-runs index must hold an entry for a run if and only if the
run is active, keyed by its current dayOfWeek. Index attribute changes are
decided by plan_index_transition from the merge of the stored item and the
incoming patch, and written in the same update_item call as the field
changes, so index membership is never transiently wrong.

The edit token issued by create_run is the only credential for a run:
update_run requires it, and get_run requires it to reveal an inactive run.
"""
from __future__ import annotations

import hmac
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from config import ACTIVE_RUN_PARTITION
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from persistence import RunStore, _get_store
from records import (
    INDEX_ATTRIBUTES,
    build_item,
    index_attributes,
    index_sort_key,
    is_active,
    item_to_record,
    redact,
    run_key,
)
from runfinder_shared.serialization import _emit_structured_observability, _now_z
from validation import RunPatch, validate_create, validate_update

__all__ = [
    "IndexChange",
    "UpdatePlan",
    "create_run",
    "get_run",
    "list_runs",
    "plan_index_transition",
    "plan_update",
    "update_run",
]

RUN_NOT_FOUND = "Run not found"

_COMPONENT = "runs_api"


def _new_identifier() -> str:
    return str(uuid.uuid4())


def _tokens_match(supplied: Any, stored: Any) -> bool:
    if not isinstance(supplied, str) or not isinstance(stored, str):
        return False
    if not supplied or not stored:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), stored.encode("utf-8"))


# ---------------------------------------------------------------------------
# Update planning (pure)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexChange:
    transition: str = "none"
    set_attributes: Dict[str, str] = field(default_factory=dict)
    remove_attributes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class UpdatePlan:
    """One update_item call. merged is the item the write is expected to produce."""

    set_attributes: Dict[str, Any]
    remove_attributes: Tuple[str, ...]
    merged: Dict[str, Any]
    index_change: IndexChange


def plan_index_transition(
    currently_active: bool,
    new_active: bool,
    current_day: Optional[str],
    new_day: Optional[str],
) -> IndexChange:
    """Decide the GSI1 attribute change for an update.

    new_active and new_day must already be merged: the patched value when
    supplied, the stored value otherwise.
    """
    if currently_active and not new_active:
        return IndexChange("deactivate", remove_attributes=INDEX_ATTRIBUTES)
    if not currently_active and new_active:
        return IndexChange("activate", set_attributes=index_attributes(new_day))
    if currently_active and new_active and new_day != current_day:
        return IndexChange("move", set_attributes={"GSI1SK": index_sort_key(new_day)})
    return IndexChange()


def plan_update(existing: Dict[str, Any], patch: RunPatch, now: str) -> UpdatePlan:
    """Map (stored item, validated patch) to the single write that applies it."""
    changes = patch.changes()
    currently_active = is_active(existing)
    new_active = changes.get("isActive", currently_active)
    current_day = existing.get("dayOfWeek")
    new_day = changes.get("dayOfWeek", current_day)

    index_change = plan_index_transition(currently_active, new_active, current_day, new_day)

    set_attributes: Dict[str, Any] = dict(changes)
    set_attributes["updatedAt"] = now
    set_attributes.update(index_change.set_attributes)

    merged = {**existing, **set_attributes}
    for attr in index_change.remove_attributes:
        merged.pop(attr, None)

    return UpdatePlan(
        set_attributes=set_attributes,
        remove_attributes=index_change.remove_attributes,
        merged=merged,
        index_change=index_change,
    )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def create_run(body: Any, store: Optional[RunStore] = None) -> Dict[str, Any]:
    """Validate and store a new active run. The response carries its editToken."""
    fields = validate_create(body)
    store = store or _get_store()

    run_id = _new_identifier()
    edit_token = _new_identifier()
    item = build_item(run_id, edit_token, fields, _now_z())

    if not store.put_if_absent(item):
        _emit_structured_observability(
            component=_COMPONENT,
            event="run_create_conflict",
            run_id=run_id,
            error_code=ConflictError.code,
        )
        raise ConflictError("Run with this ID already exists")

    _emit_structured_observability(
        component=_COMPONENT,
        event="run_created",
        run_id=run_id,
        extra={"day_of_week": fields["dayOfWeek"]},
    )
    return item_to_record(item, include_token=True)


def get_run(run_id: str, token: Optional[str] = None, store: Optional[RunStore] = None) -> Dict[str, Any]:
    """Fetch one run. Inactive runs are only visible with their edit token."""
    if not run_id:
        raise NotFoundError(RUN_NOT_FOUND)
    store = store or _get_store()

    item = store.get_by_key(run_key(run_id))
    if item is None:
        raise NotFoundError(RUN_NOT_FOUND)
    if not is_active(item) and not _tokens_match(token, item.get("editToken")):
        raise NotFoundError(RUN_NOT_FOUND)
    return redact(item)


def list_runs(store: Optional[RunStore] = None) -> List[Dict[str, Any]]:
    store = store or _get_store()
    return [redact(item) for item in store.query_index(ACTIVE_RUN_PARTITION)]


def update_run(
    run_id: str,
    token: Optional[str],
    body: Any,
    store: Optional[RunStore] = None,
) -> Dict[str, Any]:
    """Apply a partial update to a run.

    Order of checks: existence, edit token, body validation, non-empty patch.
    A caller without the right token learns nothing about their payload.
    """
    if not run_id:
        raise NotFoundError(RUN_NOT_FOUND)
    store = store or _get_store()
    key = run_key(run_id)

    existing = store.get_by_key(key)
    if existing is None:
        raise NotFoundError(RUN_NOT_FOUND)

    if not _tokens_match(token, existing.get("editToken")):
        _emit_structured_observability(
            component=_COMPONENT,
            event="run_update_denied",
            run_id=run_id,
            error_code=ForbiddenError.code,
        )
        if not token:
            raise ForbiddenError("Edit token is required")
        raise ForbiddenError("Invalid edit token")

    patch = validate_update(body)
    if patch.is_empty:
        raise ValidationError("No fields to update")

    plan = plan_update(existing, patch, _now_z())
    updated = store.update_if_exists(key, plan.set_attributes, plan.remove_attributes)
    if updated is None:
        raise NotFoundError(RUN_NOT_FOUND)

    _emit_structured_observability(
        component=_COMPONENT,
        event="run_updated",
        run_id=run_id,
        extra={
            "fields": sorted(patch.changes()),
            "index_transition": plan.index_change.transition,
        },
    )
    return redact(updated)
