"""Service handler.

LibreNMS permits several identical-looking services on one device, so the
new identifier is taken from the ``(#<id>)`` suffix of the create message
rather than by listing and matching.
"""
from typing import Any, Mapping

from ..reconcile.identity import MessageToken
from ..reconcile.refresh import FieldMapping, RefreshSpec, as_bool, as_int
from ..reconcile.schema import EntityKind, FieldPolicy, UpdateMode, is_unset
from .base import ResourceHandler

# desired attribute -> create payload key
CREATE_KEYS = {
    "type": "type",
    "target": "ip",
    "description": "desc",
    "parameters": "param",
    "ignore": "ignore",
    "name": "name",
}


class ServiceHandler(ResourceHandler):
    """LibreNMS service check (``/services``)."""

    kind = EntityKind.SERVICE
    update_mode = UpdateMode.PATCH
    identity = MessageToken()
    id_key = "service_id"
    required = ("device_id", "type", "target")
    immutable = frozenset({"device_id", "type"})
    flat_names = {
        "target": "service_ip",
        "description": "service_desc",
        "parameters": "service_param",
        "ignore": "service_ignore",
        "type": "service_type",
        "name": "service_name",
    }

    policy = FieldPolicy(
        updatable=("service_ip", "service_desc", "service_param", "service_ignore", "service_name"),
        identifier="service_id",
    )

    refresh_spec = RefreshSpec(
        mappings={
            "device_id": FieldMapping("device_id", as_int),
            "type": FieldMapping("service_type"),
            "target": FieldMapping("service_ip"),
            "description": FieldMapping("service_desc", nullable=True),
            "parameters": FieldMapping("service_param", nullable=True),
            "ignore": FieldMapping("service_ignore", as_bool),
            "name": FieldMapping("service_name", nullable=True),
        },
    )

    def validate(self, fields: Mapping[str, Any]) -> None:
        super().validate(fields)
        self.check_range(fields, "device_id", 1)

    def build_create_payload(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        payload = {
            remote: fields[attr]
            for attr, remote in CREATE_KEYS.items()
            if not is_unset(fields.get(attr))
        }
        payload["device_id"] = fields["device_id"]
        return payload

    async def submit_create(self, payload: dict[str, Any]) -> Any:
        body = dict(payload)
        device = body.pop("device_id")
        return await self.client.create_service(device, body)

    async def fetch(self, entity_id: int) -> list[dict]:
        return await self.client.get_service(entity_id)

    async def submit_update(self, entity_id: int, body: dict[str, Any]) -> Any:
        return await self.client.update_service(entity_id, body)

    async def submit_delete(self, entity_id: int) -> Any:
        return await self.client.delete_service(entity_id)
