"""Device handler.

Devices are polled over SNMP v1, v2c or v3, or only pinged (ICMP). The four
modes are mutually exclusive clusters that collapse into the flat
``snmp_disable``/``snmpver``/credential fields LibreNMS stores.
"""
import logging
from typing import Any, Mapping

from ..reconcile.errors import InvalidAttributeValue
from ..reconcile.identity import ListAndMatch
from ..reconcile.refresh import FieldMapping, RefreshSpec, as_bool, as_int
from ..reconcile.schema import EntityKind, FieldPolicy, UpdateMode, is_unset
from ..reconcile.variants import VariantCluster, VariantGroup
from .base import ResourceHandler

logger = logging.getLogger(__name__)

TRANSPORTS = ("udp", "tcp", "udp6", "tcp6")
PORT_ASSOCIATION_MODES = (1, 2, 3, 4)  # ifIndex, ifName, ifDescr, ifAlias
AUTH_ALGORITHMS = ("MD5", "SHA", "SHA-224", "SHA-256", "SHA-384", "SHA-512")
AUTH_LEVELS = ("noAuthNoPriv", "authNoPriv", "authPriv")
CRYPTO_ALGORITHMS = ("DES", "AES", "AES-192", "AES-256", "AES-256-C")

# snmp_v3 attribute -> flat LibreNMS field
SNMP_V3_FIELDS = {
    "auth_algorithm": "authalgo",
    "auth_level": "authlevel",
    "auth_name": "authname",
    "auth_pass": "authpass",
    "crypto_algorithm": "cryptoalgo",
    "crypto_pass": "cryptopass",
}

# icmp_only attribute -> flat LibreNMS field
ICMP_FIELDS = {
    "hardware": "hardware",
    "os": "os",
    "sys_name": "sysName",
}


def _icmp_to_flat(fields: Mapping[str, Any]) -> dict[str, Any]:
    icmp = fields.get("icmp_only") or {}
    flat: dict[str, Any] = {"snmp_disable": True}
    for attr, remote in ICMP_FIELDS.items():
        if not is_unset(icmp.get(attr)):
            flat[remote] = icmp[attr]
    return flat


def _community_to_flat(cluster: str, version: str):
    def to_flat(fields: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "snmp_disable": False,
            "snmpver": version,
            "community": (fields.get(cluster) or {}).get("community"),
        }
    return to_flat


def _v3_to_flat(fields: Mapping[str, Any]) -> dict[str, Any]:
    v3 = fields.get("snmp_v3") or {}
    flat: dict[str, Any] = {"snmp_disable": False, "snmpver": "v3"}
    for attr, remote in SNMP_V3_FIELDS.items():
        flat[remote] = v3.get(attr)
    return flat


SNMP_VARIANTS = VariantGroup(
    name="device access",
    clusters=(
        VariantCluster("icmp_only", ("icmp_only",), _icmp_to_flat),
        VariantCluster(
            "snmp_v1", ("snmp_v1",), _community_to_flat("snmp_v1", "v1"),
            cleared={"community": ""},
        ),
        VariantCluster(
            "snmp_v2c", ("snmp_v2c",), _community_to_flat("snmp_v2c", "v2c"),
            cleared={"community": ""},
        ),
        VariantCluster(
            "snmp_v3", ("snmp_v3",), _v3_to_flat,
            cleared={"authname": "", "authpass": "", "cryptopass": ""},
        ),
    ),
)


class DeviceHandler(ResourceHandler):
    """LibreNMS device (``/devices``)."""

    kind = EntityKind.DEVICE
    update_mode = UpdateMode.SPARSE
    variant_group = SNMP_VARIANTS
    identity = ListAndMatch(payload_key="hostname", record_key="hostname")
    id_key = "device_id"
    required = ("hostname",)
    immutable = frozenset({"hostname"})
    flat_names = {"override_syslocation": "override_sysLocation"}

    policy = FieldPolicy(
        updatable=(
            "override_sysLocation",
            "poller_group",
            "port",
            "port_association_mode",
            "transport",
            "snmp_disable",
            "snmpver",
            "community",
            "authalgo",
            "authlevel",
            "authname",
            "authpass",
            "cryptoalgo",
            "cryptopass",
            "hardware",
            "os",
            "sysName",
        ),
        write_only_on_create=frozenset({"force_add"}),
        sensitive=frozenset({"community", "authname", "authpass", "cryptopass"}),
        identifier="device_id",
    )

    refresh_spec = RefreshSpec(
        mappings={
            "hostname": FieldMapping("hostname"),
            "override_syslocation": FieldMapping("override_sysLocation", as_bool),
            "poller_group": FieldMapping("poller_group", as_int),
            "port": FieldMapping("port", as_int),
            "port_association_mode": FieldMapping("port_association_mode", as_int),
            "transport": FieldMapping("transport"),
        },
        preserved=frozenset({"force_add"}),
    )

    def validate(self, fields: Mapping[str, Any]) -> None:
        super().validate(fields)
        self.check_range(fields, "poller_group", 0, 65535)
        self.check_range(fields, "port", 1, 65535)
        self.check_choice(fields, "port_association_mode", PORT_ASSOCIATION_MODES)
        self.check_choice(fields, "transport", TRANSPORTS)

        for cluster in ("snmp_v1", "snmp_v2c"):
            settings = fields.get(cluster)
            if not is_unset(settings) and is_unset((settings or {}).get("community")):
                raise InvalidAttributeValue(
                    f"{cluster}.community is required", attributes=(f"{cluster}.community",)
                )

        v3 = fields.get("snmp_v3")
        if not is_unset(v3):
            missing = [f"snmp_v3.{a}" for a in SNMP_V3_FIELDS if is_unset(v3.get(a))]
            if missing:
                raise InvalidAttributeValue(
                    f"Missing SNMPv3 attribute(s): {', '.join(missing)}",
                    attributes=missing,
                )
            self.check_choice(v3, "auth_algorithm", AUTH_ALGORITHMS)
            self.check_choice(v3, "auth_level", AUTH_LEVELS)
            self.check_choice(v3, "crypto_algorithm", CRYPTO_ALGORITHMS)

    def build_create_payload(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        payload = super().build_create_payload(fields)
        if "snmpver" in payload:
            payload["version"] = payload.pop("snmpver")
        if payload.get("force_add"):
            logger.warning(
                f"force_add is set for {payload['hostname']}: the device is added "
                f"without SNMP/ICMP checks and may have incomplete information"
            )
        else:
            payload.pop("force_add", None)
        return payload

    async def submit_create(self, payload: dict[str, Any]) -> Any:
        return await self.client.create_device(payload)

    async def list_candidates(self, payload: Mapping[str, Any]) -> list[dict]:
        return await self.client.get_device(payload["hostname"])

    async def fetch(self, entity_id: int) -> list[dict]:
        return await self.client.get_device(entity_id)

    async def refresh_fields(self, entity_id, record, prior) -> dict[str, Any]:
        fields = await super().refresh_fields(entity_id, record, prior)
        for cluster in SNMP_VARIANTS.clusters:
            fields[cluster.name] = None

        if as_bool(record.get("snmp_disable", False)):
            fields["icmp_only"] = {
                attr: record.get(remote) for attr, remote in ICMP_FIELDS.items()
            }
            return fields

        version = record.get("snmpver")
        if version in ("v1", "v2c"):
            fields[f"snmp_{version}"] = {"community": record.get("community")}
        elif version == "v3":
            fields["snmp_v3"] = {
                attr: record.get(remote) for attr, remote in SNMP_V3_FIELDS.items()
            }
        else:
            logger.warning(f"Device {entity_id} reports unknown SNMP version {version!r}")
        return fields

    async def submit_update(self, entity_id: int, body: dict[str, Any]) -> Any:
        return await self.client.update_device(entity_id, body)

    async def submit_delete(self, entity_id: int) -> Any:
        return await self.client.delete_device(entity_id)
