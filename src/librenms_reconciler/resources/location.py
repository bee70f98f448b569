"""Location handler."""
from typing import Any, Mapping

from ..reconcile.identity import ListAndMatch
from ..reconcile.refresh import FieldMapping, RefreshSpec, as_bool, as_float
from ..reconcile.schema import EntityKind, FieldPolicy, UpdateMode
from .base import ResourceHandler


class LocationHandler(ResourceHandler):
    """LibreNMS location (``/locations``)."""

    kind = EntityKind.LOCATION
    update_mode = UpdateMode.PATCH
    identity = ListAndMatch(payload_key="location", record_key="location")
    required = ("name", "latitude", "longitude")
    flat_names = {"name": "location", "latitude": "lat", "longitude": "lng"}

    policy = FieldPolicy(
        updatable=("location", "lat", "lng", "fixed_coordinates"),
        computed=frozenset({"timestamp"}),
    )

    refresh_spec = RefreshSpec(
        mappings={
            "name": FieldMapping("location"),
            "latitude": FieldMapping("lat", as_float),
            "longitude": FieldMapping("lng", as_float),
            "fixed_coordinates": FieldMapping("fixed_coordinates", as_bool, nullable=True),
            "timestamp": FieldMapping("timestamp", nullable=True),
        },
    )

    def validate(self, fields: Mapping[str, Any]) -> None:
        super().validate(fields)
        self.check_range(fields, "latitude", -90, 90)
        self.check_range(fields, "longitude", -180, 180)

    def build_create_payload(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        payload = super().build_create_payload(fields)
        payload.pop("timestamp", None)
        return payload

    async def submit_create(self, payload: dict[str, Any]) -> Any:
        return await self.client.create_location(payload)

    async def list_candidates(self, payload: Mapping[str, Any]) -> list[dict]:
        return await self.client.list_locations()

    async def fetch(self, entity_id: int) -> list[dict]:
        return await self.client.get_location(entity_id)

    async def submit_update(self, entity_id: int, body: dict[str, Any]) -> Any:
        return await self.client.update_location(entity_id, body)

    async def submit_delete(self, entity_id: int) -> Any:
        return await self.client.delete_location(entity_id)
