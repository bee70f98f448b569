"""Tests for the Reconcile Engine lifecycle against an in-memory LibreNMS."""
import json

import pytest

from librenms_reconciler.client import ApiError
from librenms_reconciler.reconcile import ReconcileEngine
from librenms_reconciler.reconcile.errors import (
    AmbiguousCreateMatch,
    ConfigurationError,
    ConflictingRuleRepresentation,
    IdentifierNotFound,
    InvalidAttributeValue,
    InvalidImportKey,
    MultipleVariantsSet,
    NoVariantSet,
    RemoteCallError,
    ReplacementRequired,
    UnexpectedRecordCount,
)
from librenms_reconciler.reconcile.schema import ABSENT, EntityKind, EntityState

LOCATION = {"name": "Headquarters", "latitude": 52.37, "longitude": 4.89}

DYNAMIC_RULES = {
    "condition": "AND",
    "rules": [
        {"field": "devices.hostname", "operator": "begins_with", "value": "core-"},
        {
            "condition": "OR",
            "rules": [
                {"field": "devices.os", "operator": "equal", "value": "ios"},
                {"field": "devices.os", "operator": "equal", "value": "nxos"},
            ],
        },
    ],
}

ALERT_RULE = {
    "name": "Devices up/down",
    "builder": '{"condition":"AND","rules":[{"id":"macros.device_down","field":"macros.device_down",'
               '"type":"integer","input":"radio","operator":"equal","value":"1"}],"valid":true}',
    "disabled": False,
    "severity": "critical",
    "delay": "5m",
    "interval": "1h",
    "max_alerts": 3,
    "mute": False,
    "devices": [1, 2],
}


class TestLocationLifecycle:
    """Create/read/update/delete of a location (list-and-match, PATCH)."""

    @pytest.mark.asyncio
    async def test_create(self, engine, fake_api):
        """Create submits, matches by name and fetches exactly once."""
        state = await engine.create("location", LOCATION)
        assert state.kind == EntityKind.LOCATION
        assert state.id == 1
        assert state.fields["name"] == "Headquarters"
        assert state.fields["fixed_coordinates"] is False
        assert state.fields["timestamp"] == "2026-01-05 10:12:03"
        assert fake_api.call_names == ["create_location", "list_locations", "get_location"]
        assert fake_api.calls[0][1] == {"location": "Headquarters", "lat": 52.37, "lng": 4.89}

    @pytest.mark.asyncio
    async def test_update_unchanged_makes_no_calls(self, engine, fake_api):
        """Idempotence: re-applying the same document issues no calls."""
        state = await engine.create("location", LOCATION)
        fake_api.calls.clear()

        updated = await engine.update(state, LOCATION)
        assert fake_api.calls == []
        assert updated.fields == state.fields

    @pytest.mark.asyncio
    async def test_update_patches_changed_fields_only(self, engine, fake_api):
        state = await engine.create("location", LOCATION)
        fake_api.calls.clear()

        updated = await engine.update(state, dict(LOCATION, latitude=52.5))
        assert fake_api.calls[0] == ("update_location", 1, {"lat": 52.5})
        assert fake_api.call_names == ["update_location", "get_location"]
        assert updated.fields["latitude"] == 52.5

    @pytest.mark.asyncio
    async def test_undeclared_attribute_keeps_remote_value(self, engine, fake_api):
        state = await engine.create("location", dict(LOCATION, fixed_coordinates=True))
        fake_api.calls.clear()

        await engine.update(state, LOCATION)
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_invalid_latitude_rejected_before_calls(self, engine, fake_api):
        with pytest.raises(InvalidAttributeValue) as exc_info:
            await engine.create("location", dict(LOCATION, latitude=123))
        assert exc_info.value.entity == "location"
        assert exc_info.value.operation == "create"
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_read_refreshes(self, engine, fake_api):
        state = await engine.create("location", LOCATION)
        fake_api.locations[state.id]["location"] = "Renamed"

        refreshed = await engine.read(state)
        assert refreshed.fields["name"] == "Renamed"

    @pytest.mark.asyncio
    async def test_delete(self, engine, fake_api):
        state = await engine.create("location", LOCATION)
        await engine.delete(state)
        assert fake_api.calls[-1] == ("delete_location", 1)
        assert fake_api.locations == {}

    @pytest.mark.asyncio
    async def test_duplicate_name_is_ambiguous(self, engine, fake_api):
        """List-and-match with two records of the same name fails after submit."""
        await engine.create("location", LOCATION)
        with pytest.raises(AmbiguousCreateMatch) as exc_info:
            await engine.create("location", LOCATION)
        assert exc_info.value.created_but_unconfirmed is True
        assert exc_info.value.entity == "location"

    @pytest.mark.asyncio
    async def test_fetch_count_mismatch(self, engine, fake_api):
        """The authoritative fetch must return exactly one record."""
        async def no_records(identifier):
            return []

        fake_api.get_location = no_records
        with pytest.raises(UnexpectedRecordCount) as exc_info:
            await engine.create("location", LOCATION)
        assert exc_info.value.count == 0
        assert exc_info.value.created_but_unconfirmed is True
        assert fake_api.call_names == ["create_location", "list_locations"]

    @pytest.mark.asyncio
    async def test_remote_error_wrapped(self, engine, fake_api):
        cause = ApiError("Missing coordinates", status_code=400, method="POST", path="/locations")
        fake_api.fail["create_location"] = cause

        with pytest.raises(RemoteCallError) as exc_info:
            await engine.create("location", LOCATION)
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.entity == "location"
        assert exc_info.value.operation == "create"
        assert "Missing coordinates" in str(exc_info.value)


class TestDeviceGroupLifecycle:
    """Static and dynamic groups (response identifier, rule tree)."""

    @pytest.mark.asyncio
    async def test_static_group_create(self, engine, fake_api):
        state = await engine.create("devicegroup", {"name": "edge", "type": "static", "devices": [2, 1]})
        assert state.id == 1
        assert state.fields["devices"] == [2, 1]
        assert state.fields["description"] is ABSENT
        assert fake_api.calls[0][1] == {"name": "edge", "type": "static", "devices": [2, 1]}
        assert fake_api.call_names == [
            "create_device_group", "get_device_group", "get_device_group_members",
        ]

    @pytest.mark.asyncio
    async def test_device_order_is_not_a_change(self, engine, fake_api):
        """Static group devices [2,1] vs [1,2] produce no change."""
        state = await engine.create("devicegroup", {"name": "edge", "type": "static", "devices": [2, 1]})
        fake_api.calls.clear()

        await engine.update(state, {"name": "edge", "type": "static", "devices": [1, 2]})
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_dynamic_group_round_trip(self, engine, fake_api):
        """Structured rules are decoded back into the structured form."""
        desired = {"name": "core", "type": "dynamic", "rules": DYNAMIC_RULES}
        state = await engine.create("devicegroup", desired)

        sent = json.loads(fake_api.calls[0][1]["rules"])
        assert sent["valid"] is True
        assert state.fields["rules"] == DYNAMIC_RULES
        assert state.fields["rules_json"] is None

        fake_api.calls.clear()
        await engine.update(state, desired)
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_raw_rules_stay_raw(self, engine, fake_api):
        raw = json.dumps({
            "condition": "AND",
            "rules": [{
                "id": "devices.port", "field": "devices.port", "type": "integer",
                "input": "number", "operator": "equal", "value": 161,
            }],
            "valid": True,
        })
        desired = {"name": "snmp", "type": "dynamic", "rules_json": raw}
        state = await engine.create("devicegroup", desired)
        assert state.fields["rules"] is None
        assert json.loads(state.fields["rules_json"]) == json.loads(raw)

        fake_api.calls.clear()
        await engine.update(state, desired)
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_switch_static_to_dynamic(self, engine, fake_api):
        state = await engine.create("devicegroup", {"name": "g", "type": "static", "devices": [1]})
        fake_api.calls.clear()

        updated = await engine.update(state, {"name": "g", "type": "dynamic", "rules": DYNAMIC_RULES})
        name, group_id, body = fake_api.calls[0]
        assert name == "update_device_group"
        assert set(body) == {"type", "rules"}
        assert body["type"] == "dynamic"
        assert updated.fields["rules"] == DYNAMIC_RULES
        assert updated.fields["devices"] is None

    @pytest.mark.asyncio
    async def test_rules_and_rules_json_conflict(self, engine, fake_api):
        with pytest.raises(ConflictingRuleRepresentation):
            await engine.create("devicegroup", {
                "name": "g", "type": "dynamic", "rules": DYNAMIC_RULES, "rules_json": "{}",
            })
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_dynamic_without_rules(self, engine, fake_api):
        with pytest.raises(NoVariantSet):
            await engine.create("devicegroup", {"name": "g", "type": "dynamic"})
        assert fake_api.calls == []


class TestAlertRuleLifecycle:
    """Alert rules: write-only extras and full-document PUT."""

    @pytest.mark.asyncio
    async def test_create_payload(self, engine, fake_api):
        state = await engine.create("alertrule", ALERT_RULE)
        payload = fake_api.calls[0][1]
        assert payload["count"] == 3
        assert payload["delay"] == "5m"
        assert payload["groups"] == []
        assert payload["locations"] == []
        assert "max_alerts" not in payload
        # write-only values come from the desired document
        assert state.fields["delay"] == "5m"
        assert state.fields["max_alerts"] == 3
        assert state.fields["query"].startswith("SELECT")

    @pytest.mark.asyncio
    async def test_write_only_change_is_not_planned(self, engine, fake_api):
        """Changing only delay/interval issues no call."""
        state = await engine.create("alertrule", ALERT_RULE)
        fake_api.calls.clear()

        await engine.update(state, dict(ALERT_RULE, delay="10m", interval="2h"))
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_write_only_values_never_drift(self, engine, fake_api):
        """delay/interval set on create are not echoed back and never planned."""
        desired = dict(ALERT_RULE, delay="11m", interval="5m")
        state = await engine.create("alertrule", desired)
        assert "delay" not in fake_api.rules[state.id]

        assert engine.plan_update(state, desired).empty
        refreshed = await engine.read(state)
        assert refreshed.fields["delay"] == "11m"
        assert refreshed.fields["interval"] == "5m"

    @pytest.mark.asyncio
    async def test_update_sends_full_document(self, engine, fake_api):
        state = await engine.create("alertrule", ALERT_RULE)
        fake_api.calls.clear()

        updated = await engine.update(state, dict(ALERT_RULE, severity="warning", delay="10m"))
        name, body = fake_api.calls[0]
        assert name == "update_alert_rule"
        assert body["rule_id"] == state.id
        assert body["severity"] == "warning"
        assert body["delay"] == "10m"
        assert body["builder"] == ALERT_RULE["builder"]
        assert body["devices"] == [1, 2]
        assert updated.fields["severity"] == "warning"
        assert updated.fields["delay"] == "10m"

    @pytest.mark.asyncio
    async def test_builder_key_order_is_not_a_change(self, engine, fake_api):
        state = await engine.create("alertrule", ALERT_RULE)
        fake_api.calls.clear()

        reordered = json.dumps(json.loads(ALERT_RULE["builder"]), sort_keys=True, indent=2)
        await engine.update(state, dict(ALERT_RULE, builder=reordered))
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_invalid_builder(self, engine, fake_api):
        with pytest.raises(InvalidAttributeValue) as exc_info:
            await engine.create("alertrule", dict(ALERT_RULE, builder="{oops"))
        assert exc_info.value.attributes == ("builder",)
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_invalid_severity(self, engine, fake_api):
        with pytest.raises(InvalidAttributeValue):
            await engine.create("alertrule", dict(ALERT_RULE, severity="fatal"))


class TestServiceLifecycle:
    """Services: message-token identity and immutable fields."""

    SERVICE = {"device_id": 2, "type": "ping", "target": "10.0.0.1", "name": "gw"}

    @pytest.mark.asyncio
    async def test_create_parses_message_token(self, engine, fake_api):
        state = await engine.create("service", self.SERVICE)
        assert state.id == 1
        assert fake_api.calls[0] == (
            "create_service", 2, {"type": "ping", "ip": "10.0.0.1", "name": "gw"},
        )
        assert fake_api.call_names == ["create_service", "get_service"]
        assert state.fields["target"] == "10.0.0.1"
        assert state.fields["ignore"] is False

    @pytest.mark.asyncio
    async def test_missing_token(self, engine, fake_api):
        fake_api.service_message_suffix = False
        with pytest.raises(IdentifierNotFound) as exc_info:
            await engine.create("service", self.SERVICE)
        assert exc_info.value.created_but_unconfirmed is True
        assert "[service create]" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_update_name(self, engine, fake_api):
        state = await engine.create("service", self.SERVICE)
        fake_api.calls.clear()

        await engine.update(state, dict(self.SERVICE, name="gateway"))
        assert fake_api.calls[0] == ("update_service", 1, {"service_name": "gateway"})

    @pytest.mark.asyncio
    async def test_device_change_requires_replacement(self, engine, fake_api):
        state = await engine.create("service", self.SERVICE)
        fake_api.calls.clear()

        with pytest.raises(ReplacementRequired) as exc_info:
            await engine.update(state, dict(self.SERVICE, device_id=3))
        assert exc_info.value.attributes == ("device_id",)
        assert fake_api.calls == []


class TestDeviceLifecycle:
    """Devices: SNMP variants and sparse field/data updates."""

    V2C = {"hostname": "sw1.example.net", "snmp_v2c": {"community": "public"}}

    @pytest.mark.asyncio
    async def test_create(self, engine, fake_api):
        state = await engine.create("device", self.V2C)
        payload = fake_api.calls[0][1]
        assert payload["version"] == "v2c"
        assert "snmpver" not in payload
        assert payload["snmp_disable"] is False
        assert "force_add" not in payload
        assert fake_api.calls[1] == ("get_device", "sw1.example.net")
        assert state.fields["snmp_v2c"] == {"community": "public"}
        assert state.fields["snmp_v1"] is None
        assert state.fields["transport"] == "udp"

        fake_api.calls.clear()
        await engine.update(state, self.V2C)
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_sparse_update(self, engine, fake_api):
        state = await engine.create("device", self.V2C)
        fake_api.calls.clear()

        await engine.update(state, dict(self.V2C, snmp_v2c={"community": "private"}, port=1161))
        assert fake_api.calls[0] == (
            "update_device", state.id, {"field": ["port", "community"], "data": [1161, "private"]},
        )

    @pytest.mark.asyncio
    async def test_switch_to_icmp(self, engine, fake_api):
        state = await engine.create("device", self.V2C)
        fake_api.calls.clear()

        updated = await engine.update(state, {"hostname": "sw1.example.net", "icmp_only": {"os": "ping"}})
        assert fake_api.calls[0][2] == {"field": ["snmp_disable", "os"], "data": [True, "ping"]}
        assert updated.fields["icmp_only"]["os"] == "ping"
        assert updated.fields["snmp_v2c"] is None

    @pytest.mark.asyncio
    async def test_force_add_sent_only_on_create(self, engine, fake_api):
        state = await engine.create("device", dict(self.V2C, force_add=True))
        assert fake_api.calls[0][1]["force_add"] is True
        assert state.fields["force_add"] is True

        fake_api.calls.clear()
        await engine.update(state, dict(self.V2C, force_add=False))
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_two_variants_rejected(self, engine, fake_api):
        with pytest.raises(MultipleVariantsSet):
            await engine.create("device", dict(self.V2C, snmp_v1={"community": "x"}))
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_snmp_v3_enumerations(self, engine, fake_api):
        v3 = {
            "auth_algorithm": "SHA-1024",
            "auth_level": "authPriv",
            "auth_name": "u",
            "auth_pass": "p",
            "crypto_algorithm": "AES",
            "crypto_pass": "c",
        }
        with pytest.raises(InvalidAttributeValue):
            await engine.create("device", {"hostname": "sw2", "snmp_v3": v3})

    @pytest.mark.asyncio
    async def test_hostname_is_immutable(self, engine, fake_api):
        state = await engine.create("device", self.V2C)
        with pytest.raises(ReplacementRequired):
            engine.plan_update(state, dict(self.V2C, hostname="sw9"))

    @pytest.mark.asyncio
    async def test_preview_masks_community(self, engine, fake_api):
        state = await engine.create("device", self.V2C)
        preview = engine.preview(state, dict(self.V2C, snmp_v2c={"community": "s3cret"}))
        assert "s3cret" not in preview
        assert "community" in preview


class TestImportAndRead:
    """Import and read entry points."""

    @pytest.mark.asyncio
    async def test_import(self, engine, fake_api):
        created = await engine.create("location", LOCATION)
        fake_api.calls.clear()

        imported = await engine.import_state("location", f" {created.id} ")
        assert imported.id == created.id
        assert imported.fields["name"] == "Headquarters"
        assert fake_api.call_names == ["get_location"]

    @pytest.mark.asyncio
    async def test_import_invalid_key(self, engine, fake_api):
        with pytest.raises(InvalidImportKey) as exc_info:
            await engine.import_state("service", "abc")
        assert exc_info.value.operation == "import"
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_read_without_id(self, engine):
        with pytest.raises(ConfigurationError):
            await engine.read(EntityState(kind=EntityKind.LOCATION))

    @pytest.mark.asyncio
    async def test_unknown_kind(self, engine):
        with pytest.raises(ConfigurationError):
            await engine.create("printer", {})


class TestEngineSettings:
    """Per-type engine settings from the inventory."""

    @pytest.mark.asyncio
    async def test_clear_on_switch(self, fake_api):
        class Settings:
            def clear_on_switch(self, kind):
                return kind == EntityKind.DEVICE

        engine = ReconcileEngine(fake_api, Settings())
        state = await engine.create("device", {"hostname": "sw1", "snmp_v1": {"community": "old"}})
        fake_api.calls.clear()

        await engine.update(state, {"hostname": "sw1", "icmp_only": {}})
        assert fake_api.calls[0][2] == {"field": ["snmp_disable", "community"], "data": [True, ""]}

    @pytest.mark.asyncio
    async def test_clear_on_switch_without_declared_access(self, fake_api):
        """A device declaring no access block converges with clearing enabled."""
        class Settings:
            def clear_on_switch(self, kind):
                return True

        engine = ReconcileEngine(fake_api, Settings())
        desired = {"hostname": "sw1", "port": 161}
        state = await engine.create("device", desired)
        fake_api.calls.clear()

        assert engine.plan_update(state, desired).empty
        assert engine.plan_update(state, desired).empty

        again = await engine.update(state, desired)
        assert fake_api.calls == []
        assert again.fields["snmp_v2c"] == state.fields["snmp_v2c"]

    @pytest.mark.asyncio
    async def test_apply_creates_then_updates(self, engine, fake_api):
        state = await engine.apply("location", LOCATION)
        assert fake_api.call_names[0] == "create_location"
        fake_api.calls.clear()

        await engine.apply("location", LOCATION, state)
        assert fake_api.calls == []
