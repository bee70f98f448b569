"""Entity handlers for the LibreNMS resource types."""
from typing import TYPE_CHECKING, Union

from ..reconcile.schema import EntityKind
from .alert_rule import AlertRuleHandler
from .base import ResourceHandler
from .device import DeviceHandler
from .device_group import DeviceGroupHandler
from .location import LocationHandler
from .service import ServiceHandler

if TYPE_CHECKING:
    from ..client import LibreNMSClient

__all__ = [
    "ResourceHandler",
    "AlertRuleHandler",
    "DeviceHandler",
    "DeviceGroupHandler",
    "LocationHandler",
    "ServiceHandler",
]

# Resource type registry
RESOURCE_TYPES = {
    EntityKind.DEVICE: DeviceHandler,
    EntityKind.DEVICE_GROUP: DeviceGroupHandler,
    EntityKind.ALERT_RULE: AlertRuleHandler,
    EntityKind.LOCATION: LocationHandler,
    EntityKind.SERVICE: ServiceHandler,
}


def create_handler(
    kind: Union[EntityKind, str],
    client: "LibreNMSClient",
    clear_on_switch: bool = False,
) -> ResourceHandler:
    """Factory function to create handler instances."""
    try:
        kind = EntityKind(kind)
    except ValueError:
        raise ValueError(f"Unknown resource type: {kind}") from None

    handler_class = RESOURCE_TYPES[kind]
    return handler_class(client, clear_on_switch=clear_on_switch)
