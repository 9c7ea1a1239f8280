"""DynamoDB-backed storage.

Several broker instances may share one table. Keys passed to `refresh`
are watched: every read of a watched key compares it with the value last
seen and notifies listeners when another instance changed it.
"""

import threading

from rollbar_secrets.storage.base import Storage

_UNSEEN = object()


class DynamoDBStorage(Storage):
    """Stores each entry as an item with string key `key` and binary `value`."""

    def __init__(self, table_name: str, region: str = "us-east-1"):
        super().__init__()
        self._table_name = table_name
        self._region = region
        self._table = None
        self._seen: dict[str, object] = {}
        self._seen_lock = threading.Lock()

    def _get_table(self):
        """Lazy-init boto3 Table resource."""
        if self._table is None:
            import boto3

            dynamodb = boto3.resource("dynamodb", region_name=self._region)
            self._table = dynamodb.Table(self._table_name)
        return self._table

    def _observe(self, key: str, value: bytes | None) -> bool:
        """Record the latest value of a watched key. True if it changed out of band."""
        with self._seen_lock:
            if key not in self._seen:
                return False
            previous = self._seen[key]
            self._seen[key] = value
        return previous is not _UNSEEN and previous != value

    def _remember(self, key: str, value: bytes | None) -> None:
        with self._seen_lock:
            if key in self._seen:
                self._seen[key] = value

    def get(self, key: str) -> bytes | None:
        resp = self._get_table().get_item(Key={"key": key}, ConsistentRead=True)
        item = resp.get("Item")
        if item is None:
            value = None
        else:
            # boto3 wraps binary attributes in boto3.dynamodb.types.Binary
            raw = item["value"]
            value = bytes(getattr(raw, "value", raw))
        if self._observe(key, value):
            self._notify(key)
        return value

    def put(self, key: str, value: bytes) -> None:
        self._get_table().put_item(Item={"key": key, "value": bytes(value)})
        self._remember(key, bytes(value))

    def delete(self, key: str) -> None:
        self._get_table().delete_item(Key={"key": key})
        self._remember(key, None)

    def refresh(self, key: str) -> None:
        with self._seen_lock:
            self._seen.setdefault(key, _UNSEEN)
        self.get(key)

    def list(self, prefix: str) -> list[str]:
        from boto3.dynamodb.conditions import Attr

        table = self._get_table()
        kwargs = {
            "ProjectionExpression": "#k",
            "ExpressionAttributeNames": {"#k": "key"},
        }
        if prefix:
            kwargs["FilterExpression"] = Attr("key").begins_with(prefix)

        keys = []
        while True:
            resp = table.scan(**kwargs)
            keys.extend(item["key"][len(prefix):] for item in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return sorted(keys)
