"""Alert rule handler.

LibreNMS folds ``delay``, ``interval``, ``count`` and ``mute`` into the
opaque ``extra`` blob and does not echo them back reliably, so they are
write-only: sent with every create and update document, never diffed and
never refreshed. Devices, groups and locations the rule is bound to are not
returned by the rules endpoint either.
"""
import json
import logging
from typing import Any, Mapping

from ..reconcile.errors import InvalidAttributeValue
from ..reconcile.identity import ListAndMatch
from ..reconcile.refresh import FieldMapping, RefreshSpec, as_bool
from ..reconcile.rules import normalize_json
from ..reconcile.schema import EntityKind, FieldPolicy, UpdateMode, is_unset
from .base import ResourceHandler, present

logger = logging.getLogger(__name__)

SEVERITIES = ("ok", "warning", "critical")

WRITE_ONLY = frozenset({"delay", "interval", "max_alerts", "mute"})
TARGETS = ("devices", "groups", "locations")


def _json_text(value: Any) -> str:
    if isinstance(value, str):
        return normalize_json(value, "builder") if value else value
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class AlertRuleHandler(ResourceHandler):
    """LibreNMS alert rule (``/rules``)."""

    kind = EntityKind.ALERT_RULE
    update_mode = UpdateMode.FULL
    identity = ListAndMatch(payload_key="name", record_key="name")
    required = ("builder", "disabled", "name", "severity")
    flat_names = {"procedure_url": "proc", "max_alerts": "count"}

    policy = FieldPolicy(
        updatable=(
            "builder",
            "disabled",
            "name",
            "severity",
            "notes",
            "proc",
            "devices",
            "groups",
            "locations",
            "delay",
            "interval",
            "count",
            "mute",
        ),
        write_only_on_create=frozenset({"delay", "interval", "count", "mute"}),
        computed=frozenset({"extra", "query"}),
        unordered=frozenset(TARGETS),
        json_fields=frozenset({"builder"}),
    )

    refresh_spec = RefreshSpec(
        mappings={
            "builder": FieldMapping("builder", _json_text),
            "disabled": FieldMapping("disabled", as_bool),
            "name": FieldMapping("name"),
            "severity": FieldMapping("severity"),
            "notes": FieldMapping("notes", nullable=True),
            "procedure_url": FieldMapping("proc", nullable=True),
            "extra": FieldMapping("extra", _json_text, nullable=True),
            "query": FieldMapping("query", nullable=True),
        },
        preserved=WRITE_ONLY | frozenset(TARGETS),
    )

    def validate(self, fields: Mapping[str, Any]) -> None:
        super().validate(fields)
        self.check_choice(fields, "severity", SEVERITIES)
        self.check_range(fields, "max_alerts", 0)

        builder = fields.get("builder")
        try:
            if not isinstance(builder, str):
                raise TypeError(f"expected a JSON string, got {type(builder).__name__}")
            json.loads(builder)
        except (TypeError, ValueError) as e:
            raise InvalidAttributeValue(
                f"builder is not valid JSON: {e}", attributes=("builder",)
            ) from e

        for target in TARGETS:
            ids = fields.get(target)
            if not is_unset(ids) and not isinstance(ids, (list, tuple)):
                raise InvalidAttributeValue(
                    f"{target} must be a list of ids, got {ids!r}", attributes=(target,)
                )

    def _document(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        _, flat = self.flatten(fields)
        document = {
            key: flat[key]
            for key in self.policy.updatable
            if key in flat
        }
        for target in TARGETS:
            document[target] = list(flat.get(target) or [])
        return document

    def build_create_payload(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        return self._document(fields)

    def build_full_document(self, entity_id: int, fields: Mapping[str, Any]) -> dict[str, Any]:
        document = self._document(present(fields))
        document["rule_id"] = entity_id
        return document

    async def submit_create(self, payload: dict[str, Any]) -> Any:
        return await self.client.create_alert_rule(payload)

    async def list_candidates(self, payload: Mapping[str, Any]) -> list[dict]:
        return await self.client.list_alert_rules()

    async def fetch(self, entity_id: int) -> list[dict]:
        return await self.client.get_alert_rule(entity_id)

    async def submit_update(self, entity_id: int, body: dict[str, Any]) -> Any:
        return await self.client.update_alert_rule(body)

    async def submit_delete(self, entity_id: int) -> Any:
        return await self.client.delete_alert_rule(entity_id)
