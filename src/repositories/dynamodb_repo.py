"""DynamoDB-backed alert store, keyed by alert id."""

import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3

from models.alert import Alert


def _to_item(alert: Alert) -> Dict[str, Any]:
    """DynamoDB rejects floats, so numbers go through Decimal."""
    return json.loads(alert.model_dump_json(), parse_float=Decimal)


def _from_item(value: Any) -> Any:
    """Turn the Decimals boto3 returns back into int or float, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value.as_tuple().exponent >= 0 else float(value)
    if isinstance(value, dict):
        return {key: _from_item(inner) for key, inner in value.items()}
    if isinstance(value, list):
        return [_from_item(inner) for inner in value]
    return value


class DynamoDbAlertStore:
    """Same interface as InMemoryAlertStore, persisted to a table."""

    def __init__(self, table_name: str):
        self.table = boto3.resource("dynamodb").Table(table_name)

    def get(self, alert_id: str) -> Optional[Alert]:
        """Fetch one alert."""
        resp = self.table.get_item(Key={"id": alert_id})
        item = resp.get("Item")
        return Alert.model_validate(_from_item(item)) if item else None

    def put(self, alert: Alert) -> None:
        """Insert or replace an alert."""
        self.table.put_item(Item=_to_item(alert))

    def _scan(self, **scan_kwargs) -> List[Dict[str, Any]]:
        """Every item of a scan, following LastEvaluatedKey."""
        items: List[Dict[str, Any]] = []
        while True:
            resp = self.table.scan(**scan_kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            scan_kwargs["ExclusiveStartKey"] = last_key

    def values(self) -> List[Alert]:
        """Scan every alert, following pagination."""
        return [Alert.model_validate(_from_item(item)) for item in self._scan()]

    def snapshot(self) -> Dict[str, Alert]:
        """Mapping of id -> alert built from a full scan."""
        return {alert.id: alert for alert in self.values()}

    def clear(self) -> None:
        """Delete every alert; only ids are scanned."""
        keys = self._scan(ProjectionExpression="id")
        with self.table.batch_writer() as batch:
            for key in keys:
                batch.delete_item(Key={"id": key["id"]})

    def __len__(self) -> int:
        return len(self._scan(ProjectionExpression="id"))
