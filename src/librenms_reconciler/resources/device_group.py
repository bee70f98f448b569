"""Device group handler.

Static groups list their member device ids; dynamic groups carry a rule
tree, either structured (``rules``) or pre-encoded (``rules_json``).
"""
import json
import logging
from typing import Any, Mapping

from ..reconcile.errors import InvalidAttributeValue, MalformedRuleTree
from ..reconcile.identity import ResponseIdentifier
from ..reconcile.refresh import FieldMapping, RefreshSpec, as_int
from ..reconcile.rules import decode, encode_source, normalize_json, rule_source
from ..reconcile.schema import EntityKind, FieldPolicy, UpdateMode, is_unset
from ..reconcile.variants import VariantCluster, VariantGroup
from .base import ResourceHandler

logger = logging.getLogger(__name__)

GROUP_TYPES = ("static", "dynamic")


def _static_to_flat(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {"devices": [int(d) for d in fields["devices"]]}


def _dynamic_to_flat(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {"rules": encode_source(rule_source(fields))}


GROUP_VARIANTS = VariantGroup(
    name="device group membership",
    clusters=(
        VariantCluster(
            "static", ("devices",), _static_to_flat,
            discriminator_value="static", cleared={"devices": []},
        ),
        VariantCluster(
            "dynamic", ("rules", "rules_json"), _dynamic_to_flat,
            discriminator_value="dynamic",
        ),
    ),
    discriminator="type",
    required=True,
)


def _rules_text(value: Any) -> str:
    """LibreNMS returns rules as a decoded object; older versions as a string."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


class DeviceGroupHandler(ResourceHandler):
    """LibreNMS device group (``/devicegroups``)."""

    kind = EntityKind.DEVICE_GROUP
    update_mode = UpdateMode.PATCH
    variant_group = GROUP_VARIANTS
    identity = ResponseIdentifier("id")
    required = ("name", "type")
    flat_names = {"description": "desc"}

    policy = FieldPolicy(
        updatable=("name", "desc", "type", "devices", "rules"),
        unordered=frozenset({"devices"}),
        json_fields=frozenset({"rules"}),
    )

    refresh_spec = RefreshSpec(
        mappings={
            "name": FieldMapping("name"),
            "description": FieldMapping("desc", nullable=True),
            "type": FieldMapping("type"),
        },
    )

    def validate(self, fields: Mapping[str, Any]) -> None:
        self.check_choice(fields, "type", GROUP_TYPES)
        # rule_source raises on rules + rules_json and on malformed trees
        rule_source(fields)
        super().validate(fields)

        devices = fields.get("devices")
        if not is_unset(devices):
            if not isinstance(devices, (list, tuple)) or not all(
                isinstance(d, int) and not isinstance(d, bool) for d in devices
            ):
                raise InvalidAttributeValue(
                    f"devices must be a list of device ids, got {devices!r}",
                    attributes=("devices",),
                )

    async def submit_create(self, payload: dict[str, Any]) -> Any:
        return await self.client.create_device_group(payload)

    async def fetch(self, entity_id: int) -> list[dict]:
        return await self.client.get_device_group(entity_id)

    async def refresh_fields(self, entity_id, record, prior) -> dict[str, Any]:
        fields = await super().refresh_fields(entity_id, record, prior)
        fields["devices"] = None
        fields["rules"] = None
        fields["rules_json"] = None

        if record.get("type") == "static":
            members = await self.client.get_device_group_members(entity_id)
            fields["devices"] = [as_int(m.get("device_id", m.get("id"))) for m in members]
            return fields

        raw = record.get("rules")
        if raw is None:
            return fields

        text = _rules_text(raw)
        if not is_unset(prior.get("rules")):
            try:
                fields["rules"] = decode(text).to_dict()
                return fields
            except MalformedRuleTree as e:
                logger.warning(
                    f"Device group {entity_id} rules cannot be represented as a "
                    f"structured tree, falling back to rules_json: {e.message}"
                )
        fields["rules_json"] = normalize_json(text, "rules_json")
        return fields

    async def submit_update(self, entity_id: int, body: dict[str, Any]) -> Any:
        return await self.client.update_device_group(entity_id, body)

    async def submit_delete(self, entity_id: int) -> Any:
        return await self.client.delete_device_group(entity_id)
