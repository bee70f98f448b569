"""Shared fixtures: an in-memory LibreNMS API."""
import copy
import itertools
import json

import pytest

from librenms_reconciler.client import ApiError
from librenms_reconciler.reconcile import ReconcileEngine


class FakeLibreNMS:
    """In-memory stand-in for LibreNMSClient.

    Mirrors the record shapes of the LibreNMS v0 API closely enough for the
    handlers: flags come back as 0/1, rules as decoded objects, services
    report their id only in the create message.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail: dict[str, ApiError] = {}
        self.service_message_suffix = True
        self.devices: dict[int, dict] = {}
        self.groups: dict[int, dict] = {}
        self.members: dict[int, list[int]] = {}
        self.rules: dict[int, dict] = {}
        self.locations: dict[int, dict] = {}
        self.services: dict[int, dict] = {}
        self._ids = itertools.count(1)

    def _call(self, name: str, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise self.fail[name]

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    @property
    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    @property
    def write_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0].startswith(("create", "update", "delete"))]

    # === Devices ===

    async def create_device(self, payload):
        self._call("create_device", copy.deepcopy(payload))
        device_id = next(self._ids)
        self.devices[device_id] = {
            "device_id": device_id,
            "hostname": payload["hostname"],
            "override_sysLocation": int(payload.get("override_sysLocation", False)),
            "poller_group": payload.get("poller_group", 0),
            "port": payload.get("port", 161),
            "port_association_mode": payload.get("port_association_mode", 1),
            "transport": payload.get("transport", "udp"),
            "snmp_disable": int(payload.get("snmp_disable", False)),
            "snmpver": payload.get("version", "v2c"),
            "community": payload.get("community"),
            "authalgo": payload.get("authalgo"),
            "authlevel": payload.get("authlevel"),
            "authname": payload.get("authname"),
            "authpass": payload.get("authpass"),
            "cryptoalgo": payload.get("cryptoalgo"),
            "cryptopass": payload.get("cryptopass"),
            "hardware": payload.get("hardware", "Generic"),
            "os": payload.get("os", "ping"),
            "sysName": payload.get("sysName", payload["hostname"]),
        }
        return {"status": "ok", "message": f"Device {payload['hostname']} has been added successfully"}

    async def get_device(self, identifier):
        self._call("get_device", identifier)
        return [
            copy.deepcopy(d) for d in self.devices.values()
            if str(d["device_id"]) == str(identifier) or d["hostname"] == identifier
        ]

    async def update_device(self, identifier, fields):
        self._call("update_device", identifier, copy.deepcopy(fields))
        record = self.devices[int(identifier)]
        for name, value in zip(fields["field"], fields["data"]):
            record[name] = int(value) if isinstance(value, bool) else value
        return {"status": "ok"}

    async def delete_device(self, identifier):
        self._call("delete_device", identifier)
        self.devices.pop(int(identifier), None)
        return {"status": "ok"}

    # === Device groups ===

    async def create_device_group(self, payload):
        self._call("create_device_group", copy.deepcopy(payload))
        group_id = next(self._ids)
        self.groups[group_id] = {
            "id": group_id,
            "name": payload["name"],
            "desc": payload.get("desc"),
            "type": payload["type"],
            "rules": json.loads(payload["rules"]) if payload.get("rules") else None,
        }
        self.members[group_id] = list(payload.get("devices") or [])
        return {"status": "ok", "id": group_id, "message": f"Device group {payload['name']} created"}

    async def get_device_group(self, identifier):
        self._call("get_device_group", identifier)
        group = self.groups.get(int(identifier))
        return [copy.deepcopy(group)] if group else []

    async def get_device_group_members(self, identifier):
        self._call("get_device_group_members", identifier)
        return [{"device_id": d} for d in self.members.get(int(identifier), [])]

    async def update_device_group(self, identifier, payload):
        self._call("update_device_group", identifier, copy.deepcopy(payload))
        group = self.groups[int(identifier)]
        for name, value in payload.items():
            if name == "devices":
                self.members[int(identifier)] = list(value)
            elif name == "rules":
                group["rules"] = json.loads(value)
            else:
                group[name] = value
        return {"status": "ok"}

    async def delete_device_group(self, identifier):
        self._call("delete_device_group", identifier)
        self.groups.pop(int(identifier), None)
        return {"status": "ok"}

    # === Alert rules ===

    def _rule_record(self, rule_id, payload):
        return {
            "id": rule_id,
            "name": payload["name"],
            "builder": payload["builder"],
            "disabled": int(payload.get("disabled", False)),
            "severity": payload["severity"],
            "notes": payload.get("notes"),
            "proc": payload.get("proc"),
            "extra": json.dumps({"mute": payload.get("mute", False), "count": payload.get("count", -1)}),
            "query": "SELECT * FROM devices WHERE (devices.device_id = ?)",
        }

    async def create_alert_rule(self, payload):
        self._call("create_alert_rule", copy.deepcopy(payload))
        rule_id = next(self._ids)
        self.rules[rule_id] = self._rule_record(rule_id, payload)
        return {"status": "ok", "message": "Added rule"}

    async def list_alert_rules(self):
        self._call("list_alert_rules")
        return [copy.deepcopy(r) for r in self.rules.values()]

    async def get_alert_rule(self, identifier):
        self._call("get_alert_rule", identifier)
        rule = self.rules.get(int(identifier))
        return [copy.deepcopy(rule)] if rule else []

    async def update_alert_rule(self, payload):
        self._call("update_alert_rule", copy.deepcopy(payload))
        rule_id = payload["rule_id"]
        self.rules[rule_id] = self._rule_record(rule_id, payload)
        return {"status": "ok"}

    async def delete_alert_rule(self, identifier):
        self._call("delete_alert_rule", identifier)
        self.rules.pop(int(identifier), None)
        return {"status": "ok"}

    # === Locations ===

    async def create_location(self, payload):
        self._call("create_location", copy.deepcopy(payload))
        location_id = next(self._ids)
        self.locations[location_id] = {
            "id": location_id,
            "location": payload["location"],
            "lat": payload["lat"],
            "lng": payload["lng"],
            "fixed_coordinates": int(payload.get("fixed_coordinates", False)),
            "timestamp": "2026-01-05 10:12:03",
        }
        return {"status": "ok", "message": f"Location added with id #{location_id}"}

    async def list_locations(self):
        self._call("list_locations")
        return [copy.deepcopy(loc) for loc in self.locations.values()]

    async def get_location(self, identifier):
        self._call("get_location", identifier)
        location = self.locations.get(int(identifier))
        return [copy.deepcopy(location)] if location else []

    async def update_location(self, identifier, payload):
        self._call("update_location", identifier, copy.deepcopy(payload))
        location = self.locations[int(identifier)]
        for name, value in payload.items():
            location[name] = int(value) if isinstance(value, bool) else value
        return {"status": "ok"}

    async def delete_location(self, identifier):
        self._call("delete_location", identifier)
        self.locations.pop(int(identifier), None)
        return {"status": "ok"}

    # === Services ===

    async def create_service(self, device, payload):
        self._call("create_service", device, copy.deepcopy(payload))
        service_id = next(self._ids)
        self.services[service_id] = {
            "service_id": service_id,
            "device_id": int(device),
            "service_ip": payload.get("ip"),
            "service_type": payload["type"],
            "service_desc": payload.get("desc", ""),
            "service_param": payload.get("param", ""),
            "service_ignore": int(payload.get("ignore", False)),
            "service_name": payload.get("name", ""),
        }
        message = f"Service {payload['type']} has been added to device {device}"
        if self.service_message_suffix:
            message += f" (#{service_id})"
        return {"status": "ok", "message": message}

    async def get_service(self, identifier):
        self._call("get_service", identifier)
        service = self.services.get(int(identifier))
        return [copy.deepcopy(service)] if service else []

    async def update_service(self, identifier, payload):
        self._call("update_service", identifier, copy.deepcopy(payload))
        service = self.services[int(identifier)]
        for name, value in payload.items():
            service[name] = int(value) if isinstance(value, bool) else value
        return {"status": "ok"}

    async def delete_service(self, identifier):
        self._call("delete_service", identifier)
        self.services.pop(int(identifier), None)
        return {"status": "ok"}


@pytest.fixture
def fake_api():
    """Fresh in-memory LibreNMS."""
    return FakeLibreNMS()


@pytest.fixture
def engine(fake_api):
    """Engine wired to the in-memory LibreNMS."""
    return ReconcileEngine(fake_api)
