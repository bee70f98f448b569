"""Configuration management."""
from .inventory import ApiSettings, ResourceInventory

__all__ = ["ApiSettings", "ResourceInventory"]
