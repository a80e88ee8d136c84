"""
In-memory alert store.

Default storage for ``PredictiveAlertEngine``. Each engine gets its own
instance, so tests and tenants never share alerts by accident.
"""

from threading import Lock
from typing import Dict, List, Optional

from models.alert import Alert


class InMemoryAlertStore:
    """Thread-safe mapping of alert id to alert."""

    def __init__(self) -> None:
        self._alerts: Dict[str, Alert] = {}
        self._lock = Lock()

    def get(self, alert_id: str) -> Optional[Alert]:
        """Return the stored alert or None."""
        with self._lock:
            return self._alerts.get(alert_id)

    def put(self, alert: Alert) -> None:
        """Insert or replace an alert by id."""
        with self._lock:
            self._alerts[alert.id] = alert

    def values(self) -> List[Alert]:
        """Snapshot list of all stored alerts, in insertion order."""
        with self._lock:
            return list(self._alerts.values())

    def snapshot(self) -> Dict[str, Alert]:
        """Shallow copy of the id -> alert mapping."""
        with self._lock:
            return dict(self._alerts)

    def clear(self) -> None:
        """Drop every stored alert."""
        with self._lock:
            self._alerts.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)
