"""test_lifecycle.py — Lifecycle engine tests against an in-memory store.

Covers create uniqueness, token redaction, inactive-run visibility, the
GSI1 index invariant across update sequences, partial update isolation and
the index transition table.

Run: python3 -m pytest test_lifecycle.py -v
"""

from __future__ import annotations

import copy
import os
import random
import re
import sys
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(__file__))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "shared_layer", "python"))

import lifecycle
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from lifecycle import (
    create_run,
    get_run,
    list_runs,
    plan_index_transition,
    plan_update,
    update_run,
)
from persistence import RunStore
from validation import DAYS_OF_WEEK, RunPatch

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")

VALID_BODY = {
    "name": "Test Tuesday Run",
    "dayOfWeek": "Tuesday",
    "startTime": "6:30 AM",
    "locationName": "Bethesda Elementary",
    "latitude": 39.0,
    "longitude": -77.1,
    "typicalDistances": "4 miles",
    "terrain": "Road",
    "paceGroups": {
        "sub_8": "consistently",
        "8_to_9": "frequently",
        "9_to_10": "sometimes",
        "10_plus": "rarely",
    },
}


class InMemoryRunStore:
    """RunStore double with DynamoDB conditional-write semantics."""

    def __init__(self):
        self.items = {}
        self.writes = []

    @staticmethod
    def _k(key):
        return (key["PK"], key["SK"])

    def get_by_key(self, key):
        item = self.items.get(self._k(key))
        return copy.deepcopy(item) if item is not None else None

    def put_if_absent(self, item):
        self.writes.append(("put", item["PK"]))
        k = self._k(item)
        if k in self.items:
            return False
        self.items[k] = copy.deepcopy(item)
        return True

    def update_if_exists(self, key, set_attributes, remove_attributes=()):
        self.writes.append(("update", key["PK"]))
        k = self._k(key)
        if k not in self.items:
            return None
        item = self.items[k]
        item.update(copy.deepcopy(set_attributes))
        for attr in remove_attributes:
            item.pop(attr, None)
        return copy.deepcopy(item)

    def query_index(self, partition_value):
        matches = [i for i in self.items.values() if i.get("GSI1PK") == partition_value]
        matches.sort(key=lambda i: i["GSI1SK"])
        return copy.deepcopy(matches)


class _StoreTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryRunStore()

    def _create(self, **overrides):
        body = copy.deepcopy(VALID_BODY)
        body.update(overrides)
        return create_run(body, store=self.store)

    def _stored(self, run_id):
        return self.store.items[(f"RUN#{run_id}", "METADATA")]


class CreateTests(_StoreTestCase):
    def test_returns_record_with_edit_token(self):
        run = self._create()
        self.assertEqual(run["name"], "Test Tuesday Run")
        self.assertTrue(run["isActive"])
        self.assertRegex(run["id"], _UUID_RE)
        self.assertRegex(run["editToken"], _UUID_RE)
        self.assertNotEqual(run["id"], run["editToken"])
        self.assertEqual(run["createdAt"], run["updatedAt"])
        self.assertIsNone(run["contactEmail"])

    def test_stored_item_shape(self):
        run = self._create()
        item = self._stored(run["id"])
        self.assertEqual(item["SK"], "METADATA")
        self.assertEqual(item["GSI1PK"], "ACTIVE_RUN")
        self.assertEqual(item["GSI1SK"], "DAY#Tuesday")
        self.assertEqual(item["editToken"], run["editToken"])
        self.assertIs(item["isActive"], True)

    def test_tiny_coordinate_serializes_for_dynamodb(self):
        ddb = MagicMock()
        body = copy.deepcopy(VALID_BODY)
        body["latitude"] = 1e-200
        run = create_run(body, store=RunStore(client=ddb, table_name="runs"))

        self.assertEqual(run["latitude"], 0.0)
        self.assertEqual(ddb.put_item.call_args.kwargs["Item"]["latitude"], {"N": "0.0"})

    def test_rejects_server_owned_fields(self):
        for field, value in (
            ("id", "abc"),
            ("editToken", "injected-token"),
            ("isActive", False),
            ("createdAt", "2024-01-01T00:00:00Z"),
            ("PK", "RUN#hack"),
            ("GSI1PK", "ACTIVE_RUN"),
        ):
            with self.subTest(field=field):
                with self.assertRaises(ValidationError) as ctx:
                    self._create(**{field: value})
                self.assertIn(field, str(ctx.exception))
        self.assertEqual(self.store.writes, [])

    def test_missing_required_fields(self):
        with self.assertRaises(ValidationError) as ctx:
            create_run({}, store=self.store)
        self.assertIn("'name' is required", str(ctx.exception))
        self.assertIn("'paceGroups' is required", str(ctx.exception))
        self.assertEqual(self.store.writes, [])

    def test_invalid_terrain(self):
        with self.assertRaises(ValidationError):
            self._create(terrain="Water")

    def test_invalid_pace_availability(self):
        pace = dict(VALID_BODY["paceGroups"], sub_8="always")
        with self.assertRaises(ValidationError):
            self._create(paceGroups=pace)

    def test_extra_pace_bucket(self):
        pace = dict(VALID_BODY["paceGroups"], ultra_slow="consistently")
        with self.assertRaises(ValidationError):
            self._create(paceGroups=pace)

    def test_out_of_range_coordinates(self):
        with self.assertRaises(ValidationError):
            self._create(latitude=200)
        with self.assertRaises(ValidationError):
            self._create(longitude=-180.5)

    def test_identifier_collision_raises_conflict(self):
        with patch.object(
            lifecycle,
            "_new_identifier",
            side_effect=["run-1", "token-1", "run-1", "token-2"],
        ):
            first = self._create()
            with self.assertRaises(ConflictError):
                self._create(name="Second Run")

        self.assertEqual(len(self.store.items), 1)
        stored = self._stored("run-1")
        self.assertEqual(stored["name"], first["name"])
        self.assertEqual(stored["editToken"], "token-1")


class GetTests(_StoreTestCase):
    def test_active_run_is_redacted(self):
        run = self._create()
        fetched = get_run(run["id"], store=self.store)
        self.assertEqual(fetched["id"], run["id"])
        self.assertNotIn("editToken", fetched)
        self.assertNotIn("PK", fetched)
        self.assertNotIn("GSI1SK", fetched)

    def test_active_run_with_token_is_still_redacted(self):
        run = self._create()
        fetched = get_run(run["id"], run["editToken"], store=self.store)
        self.assertNotIn("editToken", fetched)

    def test_missing_run(self):
        with self.assertRaises(NotFoundError):
            get_run("nonexistent", store=self.store)

    def test_inactive_run_visibility(self):
        run = self._create()
        update_run(run["id"], run["editToken"], {"isActive": False}, store=self.store)

        with self.assertRaises(NotFoundError) as no_token:
            get_run(run["id"], store=self.store)
        with self.assertRaises(NotFoundError) as wrong_token:
            get_run(run["id"], "wrong-token", store=self.store)
        with self.assertRaises(NotFoundError) as absent:
            get_run("nonexistent", "wrong-token", store=self.store)
        self.assertEqual(str(no_token.exception), str(absent.exception))
        self.assertEqual(str(wrong_token.exception), str(absent.exception))

        fetched = get_run(run["id"], run["editToken"], store=self.store)
        self.assertFalse(fetched["isActive"])
        self.assertNotIn("editToken", fetched)


class ListTests(_StoreTestCase):
    def test_empty(self):
        self.assertEqual(list_runs(store=self.store), [])

    def test_only_active_runs_redacted(self):
        keep = self._create(name="Keep")
        hide = self._create(name="Hide")
        update_run(hide["id"], hide["editToken"], {"isActive": False}, store=self.store)

        runs = list_runs(store=self.store)
        self.assertEqual([r["id"] for r in runs], [keep["id"]])
        self.assertNotIn("editToken", runs[0])

    def test_index_order_follows_day(self):
        self._create(name="Wed", dayOfWeek="Wednesday")
        self._create(name="Mon", dayOfWeek="Monday")
        names = [r["name"] for r in list_runs(store=self.store)]
        self.assertEqual(names, ["Mon", "Wed"])


class UpdateTests(_StoreTestCase):
    def setUp(self):
        super().setUp()
        self.existing = self._create()
        self.store.writes.clear()

    def _update(self, body, token=None):
        token = self.existing["editToken"] if token is None else token
        return update_run(self.existing["id"], token, body, store=self.store)

    def test_missing_run(self):
        with self.assertRaises(NotFoundError):
            update_run("nonexistent", "some-token", {"name": "x"}, store=self.store)

    def test_missing_token(self):
        with self.assertRaises(ForbiddenError):
            update_run(self.existing["id"], None, {"name": "x"}, store=self.store)
        self.assertEqual(self.store.writes, [])

    def test_wrong_token_changes_nothing(self):
        before = copy.deepcopy(self._stored(self.existing["id"]))
        with self.assertRaises(ForbiddenError):
            self._update({"name": "Hijacked"}, token="wrong-token")
        self.assertEqual(self.store.writes, [])
        self.assertEqual(get_run(self.existing["id"], store=self.store)["name"], "Test Tuesday Run")
        self.assertEqual(self._stored(self.existing["id"]), before)

    def test_token_checked_before_body(self):
        with self.assertRaises(ForbiddenError):
            self._update({"terrain": "Water", "editToken": "x"}, token="wrong-token")

    def test_invalid_body(self):
        with self.assertRaises(ValidationError):
            self._update({"terrain": "Water"})
        self.assertEqual(self.store.writes, [])

    def test_non_object_body(self):
        with self.assertRaises(ValidationError):
            self._update(None)

    def test_rejects_fields_outside_allow_list(self):
        for field in ("editToken", "id", "GSI1PK", "createdAt", "updatedAt"):
            with self.subTest(field=field):
                with self.assertRaises(ValidationError):
                    self._update({field: "x", "name": "ok"})
        self.assertEqual(self.store.writes, [])

    def test_empty_update_performs_no_write(self):
        with self.assertRaises(ValidationError) as ctx:
            self._update({})
        self.assertIn("No fields to update", str(ctx.exception))
        self.assertEqual(self.store.writes, [])

    def test_partial_update_isolation(self):
        before = copy.deepcopy(self._stored(self.existing["id"]))
        with patch.object(lifecycle, "_now_z", return_value="2030-01-01T00:00:00.000000Z"):
            result = self._update({"startTime": "7:00 AM"})

        after = self._stored(self.existing["id"])
        self.assertEqual(result["startTime"], "7:00 AM")
        self.assertEqual(result["name"], "Test Tuesday Run")
        self.assertEqual(after["updatedAt"], "2030-01-01T00:00:00.000000Z")
        for attr in set(before) | set(after):
            if attr in ("startTime", "updatedAt"):
                continue
            self.assertEqual(after.get(attr), before.get(attr), attr)
        self.assertEqual(self.store.writes, [("update", f"RUN#{self.existing['id']}")])

    def test_result_is_redacted(self):
        result = self._update({"name": "Updated Run"})
        self.assertEqual(result["name"], "Updated Run")
        self.assertNotIn("editToken", result)

    def test_clear_optional_contact(self):
        self._update({"contactEmail": "lead@example.org"})
        result = self._update({"contactEmail": None})
        self.assertIsNone(result["contactEmail"])

    def test_deactivate_removes_index_entry(self):
        result = self._update({"isActive": False})
        item = self._stored(self.existing["id"])
        self.assertFalse(result["isActive"])
        self.assertNotIn("GSI1PK", item)
        self.assertNotIn("GSI1SK", item)

    def test_day_change_while_active_moves_index_entry(self):
        self._update({"dayOfWeek": "Saturday"})
        self.assertEqual(self._stored(self.existing["id"])["GSI1SK"], "DAY#Saturday")

    def test_day_change_while_inactive_leaves_index_absent(self):
        self._update({"isActive": False})
        self._update({"dayOfWeek": "Friday"})
        item = self._stored(self.existing["id"])
        self.assertNotIn("GSI1PK", item)
        self.assertNotIn("GSI1SK", item)

    def test_reactivate_uses_merged_day(self):
        self._update({"isActive": False})
        self._update({"dayOfWeek": "Friday"})
        self._update({"isActive": True})
        item = self._stored(self.existing["id"])
        self.assertEqual(item["GSI1PK"], "ACTIVE_RUN")
        self.assertEqual(item["GSI1SK"], "DAY#Friday")

    def test_record_vanishing_before_write(self):
        original = self.store.update_if_exists

        def vanish(key, set_attributes, remove_attributes=()):
            self.store.items.clear()
            return original(key, set_attributes, remove_attributes)

        with patch.object(self.store, "update_if_exists", side_effect=vanish):
            with self.assertRaises(NotFoundError):
                self._update({"name": "Too late"})

    def test_returns_item_written_by_store(self):
        original = self.store.update_if_exists

        def concurrent_notes(key, set_attributes, remove_attributes=()):
            stored = original(key, set_attributes, remove_attributes)
            stored["notes"] = "Written by another editor"
            return stored

        with patch.object(self.store, "update_if_exists", side_effect=concurrent_notes):
            result = self._update({"name": "Renamed"})
        self.assertEqual(result["name"], "Renamed")
        self.assertEqual(result["notes"], "Written by another editor")


class IndexTransitionTests(unittest.TestCase):
    def test_transition_table(self):
        cases = [
            # currently, new, current_day, new_day, transition, set, remove
            (True, False, "Monday", "Monday", "deactivate", {}, ("GSI1PK", "GSI1SK")),
            (True, False, "Monday", "Friday", "deactivate", {}, ("GSI1PK", "GSI1SK")),
            (False, True, "Monday", "Monday", "activate",
             {"GSI1PK": "ACTIVE_RUN", "GSI1SK": "DAY#Monday"}, ()),
            (False, True, "Monday", "Friday", "activate",
             {"GSI1PK": "ACTIVE_RUN", "GSI1SK": "DAY#Friday"}, ()),
            (True, True, "Monday", "Friday", "move", {"GSI1SK": "DAY#Friday"}, ()),
            (True, True, "Monday", "Monday", "none", {}, ()),
            (False, False, "Monday", "Friday", "none", {}, ()),
            (False, False, "Monday", "Monday", "none", {}, ()),
        ]
        for currently, new, cur_day, new_day, transition, set_attrs, remove in cases:
            with self.subTest(currently=currently, new=new, cur_day=cur_day, new_day=new_day):
                change = plan_index_transition(currently, new, cur_day, new_day)
                self.assertEqual(change.transition, transition)
                self.assertEqual(change.set_attributes, set_attrs)
                self.assertEqual(change.remove_attributes, remove)

    def test_plan_update_merges_existing_state(self):
        existing = {
            "PK": "RUN#abc",
            "SK": "METADATA",
            "dayOfWeek": "Tuesday",
            "isActive": False,
            "updatedAt": "old",
        }
        plan = plan_update(existing, RunPatch(is_active=True), "now")
        self.assertEqual(plan.set_attributes["GSI1SK"], "DAY#Tuesday")
        self.assertEqual(plan.set_attributes["updatedAt"], "now")
        self.assertNotIn("dayOfWeek", plan.set_attributes)
        self.assertTrue(plan.merged["isActive"])

    def test_plan_update_deactivate_and_move_together(self):
        existing = {
            "dayOfWeek": "Tuesday",
            "isActive": True,
            "GSI1PK": "ACTIVE_RUN",
            "GSI1SK": "DAY#Tuesday",
        }
        plan = plan_update(existing, RunPatch(is_active=False, day_of_week="Sunday"), "now")
        self.assertEqual(plan.remove_attributes, ("GSI1PK", "GSI1SK"))
        self.assertNotIn("GSI1SK", plan.set_attributes)
        self.assertNotIn("GSI1PK", plan.merged)
        self.assertEqual(plan.merged["dayOfWeek"], "Sunday")


class ScenarioTests(_StoreTestCase):
    def test_deactivate_then_reactivate_on_new_day(self):
        run = self._create(dayOfWeek="Tuesday")
        token = run["editToken"]

        listed = list_runs(store=self.store)
        self.assertEqual([(r["id"], r["dayOfWeek"]) for r in listed], [(run["id"], "Tuesday")])
        self.assertEqual(self._stored(run["id"])["GSI1SK"], "DAY#Tuesday")

        update_run(run["id"], token, {"isActive": False}, store=self.store)
        self.assertEqual(list_runs(store=self.store), [])
        with self.assertRaises(NotFoundError):
            get_run(run["id"], store=self.store)
        hidden = get_run(run["id"], token, store=self.store)
        self.assertEqual(hidden["name"], run["name"])
        self.assertNotIn("editToken", hidden)

        update_run(run["id"], token, {"isActive": True, "dayOfWeek": "Thursday"}, store=self.store)
        listed = list_runs(store=self.store)
        self.assertEqual([(r["id"], r["dayOfWeek"]) for r in listed], [(run["id"], "Thursday")])
        self.assertEqual(self._stored(run["id"])["GSI1SK"], "DAY#Thursday")

    def test_index_invariant_over_random_updates(self):
        rng = random.Random(20240101)
        runs = [self._create(name=f"Run {n}", dayOfWeek=rng.choice(DAYS_OF_WEEK)) for n in range(5)]

        for _ in range(200):
            run = rng.choice(runs)
            body = {}
            if rng.random() < 0.6:
                body["isActive"] = rng.random() < 0.5
            if rng.random() < 0.6:
                body["dayOfWeek"] = rng.choice(DAYS_OF_WEEK)
            if not body:
                body["notes"] = f"note {rng.randint(0, 99)}"
            update_run(run["id"], run["editToken"], body, store=self.store)

            listed = {r["id"]: r for r in list_runs(store=self.store)}
            for candidate in runs:
                item = self._stored(candidate["id"])
                self.assertEqual(candidate["id"] in listed, item["isActive"])
                if item["isActive"]:
                    self.assertEqual(item["GSI1PK"], "ACTIVE_RUN")
                    self.assertEqual(item["GSI1SK"], f"DAY#{item['dayOfWeek']}")
                else:
                    self.assertNotIn("GSI1PK", item)
                    self.assertNotIn("GSI1SK", item)


if __name__ == "__main__":
    unittest.main()
