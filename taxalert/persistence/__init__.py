"""Alert storage backends."""

from .alert_store import AlertStore, InMemoryAlertStore, JsonlAlertStore, flatten_alert

__all__ = ["AlertStore", "InMemoryAlertStore", "JsonlAlertStore", "flatten_alert"]
