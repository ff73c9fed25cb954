"""persistence.py — DynamoDB adapter for the runs table.

Every call is a single round trip except query_index, which follows
LastEvaluatedKey until the partition is exhausted. Conditional-check
failures are reported as return values; every other ClientError propagates.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from config import RUNS_INDEX_NAME, TABLE_NAME, logger
from runfinder_shared.aws_clients import _get_ddb
from runfinder_shared.serialization import _deserialize, _serialize, _serialize_item

__all__ = [
    "RunStore",
    "_get_store",
    "_is_conditional_check_failed",
]


def _is_conditional_check_failed(exc: Exception) -> bool:
    if not isinstance(exc, ClientError):
        return False
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class RunStore:
    """Key-value store contract used by the lifecycle engine."""

    def __init__(
        self,
        client: Any = None,
        table_name: str = TABLE_NAME,
        index_name: str = RUNS_INDEX_NAME,
    ):
        self._client = client
        self.table_name = table_name
        self.index_name = index_name

    @property
    def client(self):
        if self._client is None:
            self._client = _get_ddb()
        return self._client

    def get_by_key(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        resp = self.client.get_item(
            TableName=self.table_name,
            Key=_serialize_item(key),
            ConsistentRead=True,
        )
        raw = resp.get("Item")
        if not raw:
            return None
        return _deserialize(raw)

    def put_if_absent(self, item: Dict[str, Any]) -> bool:
        """Write the item unless its primary key exists. False on condition failure."""
        try:
            self.client.put_item(
                TableName=self.table_name,
                Item=_serialize_item(item),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                logger.warning("put_item condition failed for %s", item.get("PK"))
                return False
            raise
        return True

    def update_if_exists(
        self,
        key: Dict[str, Any],
        set_attributes: Dict[str, Any],
        remove_attributes: Iterable[str] = (),
    ) -> Optional[Dict[str, Any]]:
        """Apply SET/REMOVE atomically to an existing item.

        Returns the full item after the write, or None when the key is gone.
        """
        names: Dict[str, str] = {"#PK": "PK"}
        values: Dict[str, Any] = {}
        set_parts: List[str] = []
        remove_parts: List[str] = []

        for attr, value in set_attributes.items():
            names[f"#{attr}"] = attr
            values[f":{attr}"] = _serialize(value)
            set_parts.append(f"#{attr} = :{attr}")
        for attr in remove_attributes:
            names[f"#{attr}"] = attr
            remove_parts.append(f"#{attr}")

        if not set_parts and not remove_parts:
            raise ValueError("update_if_exists requires at least one attribute change")

        clauses = []
        if set_parts:
            clauses.append(f"SET {', '.join(set_parts)}")
        if remove_parts:
            clauses.append(f"REMOVE {', '.join(remove_parts)}")

        kwargs: Dict[str, Any] = {
            "TableName": self.table_name,
            "Key": _serialize_item(key),
            "UpdateExpression": " ".join(clauses),
            "ConditionExpression": "attribute_exists(#PK)",
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_NEW",
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values

        try:
            resp = self.client.update_item(**kwargs)
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                logger.warning("update_item condition failed for %s", key.get("PK"))
                return None
            raise
        return _deserialize(resp.get("Attributes") or {})

    def query_index(self, partition_value: str) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "TableName": self.table_name,
            "IndexName": self.index_name,
            "KeyConditionExpression": "GSI1PK = :pk",
            "ExpressionAttributeValues": {":pk": _serialize(partition_value)},
        }
        items: List[Dict[str, Any]] = []
        while True:
            resp = self.client.query(**kwargs)
            items.extend(_deserialize(raw) for raw in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return items


_store: Optional[RunStore] = None


def _get_store() -> RunStore:
    """Get (or create) the RunStore bound to the configured table."""
    global _store
    if _store is None:
        _store = RunStore()
    return _store
