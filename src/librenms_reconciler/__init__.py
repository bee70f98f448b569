"""Declarative lifecycle management for LibreNMS entities."""
from .client import ApiError, LibreNMSClient
from .reconcile import EntityKind, EntityState, ReconcileEngine, ReconcileError
from .config import ApiSettings, ResourceInventory
from .state import StateStore

__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "LibreNMSClient",
    "EntityKind",
    "EntityState",
    "ReconcileEngine",
    "ReconcileError",
    "ApiSettings",
    "ResourceInventory",
    "StateStore",
]
