"""Base entity handler abstraction.

A handler binds one LibreNMS entity type to the generic reconciliation
components: it declares the field policy, refresh spec, variant group and
identity strategy, and owns the collaborator calls for that type.
"""
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..reconcile.errors import InvalidAttributeValue, ReplacementRequired, UnexpectedRecordCount
from ..reconcile.identity import IdentityStrategy
from ..reconcile.planner import plan
from ..reconcile.refresh import RefreshSpec, apply_overlay, refresh
from ..reconcile.schema import EntityKind, FieldPolicy, UpdateMode, UpdatePlan, is_unset
from ..reconcile.variants import ResolvedVariant, VariantGroup, resolve, transition

if TYPE_CHECKING:
    from ..client import LibreNMSClient

logger = logging.getLogger(__name__)


def present(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Drop attributes that are None or ABSENT."""
    return {k: v for k, v in fields.items() if not is_unset(v)}


class ResourceHandler(ABC):
    """Abstract base class for entity handlers."""

    kind: EntityKind
    policy: FieldPolicy
    refresh_spec: RefreshSpec
    identity: IdentityStrategy
    update_mode: UpdateMode = UpdateMode.PATCH
    variant_group: Optional[VariantGroup] = None
    # Key of the identifier in fetched records
    id_key: str = "id"
    # Desired attribute -> flat remote name, identity when missing
    flat_names: Mapping[str, str] = {}
    # Desired attributes whose change needs a replacement
    immutable: frozenset[str] = frozenset()
    required: tuple[str, ...] = ()

    def __init__(self, client: "LibreNMSClient", clear_on_switch: bool = False):
        missing = [name for name in self.required_hooks() if not callable(getattr(self, name, None))]
        if missing:
            raise TypeError(
                f"Can't instantiate {type(self).__name__} without {', '.join(missing)}"
            )
        self.client = client
        if self.variant_group is not None:
            self.variant_group = self.variant_group.with_clear_on_switch(clear_on_switch)

    @classmethod
    def required_hooks(cls) -> list[str]:
        """Methods the identity strategy and update mode call on the handler.

        ListAndMatch needs ``list_candidates(payload)``; FULL updates need
        ``build_full_document(entity_id, fields)``.
        """
        hooks = list(cls.identity.handler_hooks)
        if cls.update_mode == UpdateMode.FULL:
            hooks.append("build_full_document")
        return hooks

    @property
    def label(self) -> str:
        return self.kind.value

    # === Validation ===

    def validate(self, fields: Mapping[str, Any]) -> None:
        """Check a desired document before any remote call.

        Raises:
            ConfigurationError: on missing, invalid or conflicting attributes
        """
        missing = [name for name in self.required if is_unset(fields.get(name))]
        if missing:
            raise InvalidAttributeValue(
                f"Missing required attribute(s): {', '.join(missing)}",
                attributes=missing,
            )
        if self.variant_group is not None:
            resolve(present(fields), self.variant_group)

    def check_immutable(self, prior: Mapping[str, Any], desired: Mapping[str, Any]) -> None:
        """Raise if an attribute that cannot be updated in place changed."""
        changed = [
            name for name in sorted(self.immutable)
            if not is_unset(prior.get(name))
            and not is_unset(desired.get(name))
            and prior.get(name) != desired.get(name)
        ]
        if changed:
            raise ReplacementRequired(
                f"Cannot change {', '.join(changed)} in place; the {self.label} "
                f"must be deleted and recreated",
                attributes=changed,
            )

    @staticmethod
    def check_choice(fields: Mapping[str, Any], name: str, choices) -> None:
        value = fields.get(name)
        if not is_unset(value) and value not in choices:
            raise InvalidAttributeValue(
                f"{name} must be one of {', '.join(str(c) for c in choices)}, got {value!r}",
                attributes=(name,),
            )

    @staticmethod
    def check_range(fields: Mapping[str, Any], name: str, low: float, high: Optional[float] = None) -> None:
        value = fields.get(name)
        if is_unset(value):
            return
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidAttributeValue(
                f"{name} must be a number, got {value!r}", attributes=(name,)
            )
        if value < low or (high is not None and value > high):
            bounds = f"between {low} and {high}" if high is not None else f"at least {low}"
            raise InvalidAttributeValue(
                f"{name} must be {bounds}, got {value}", attributes=(name,)
            )

    # === Flattening and planning ===

    def flatten(self, fields: Mapping[str, Any]) -> tuple[Optional[ResolvedVariant], dict[str, Any]]:
        """Map a desired-shape document to flat remote field names."""
        values = present(fields)
        resolved = None
        variant_attrs: set[str] = set()

        if self.variant_group is not None:
            resolved = resolve(values, self.variant_group)
            for cluster in self.variant_group.clusters:
                variant_attrs.update(cluster.attributes)
            if self.variant_group.discriminator:
                variant_attrs.add(self.variant_group.discriminator)

        flat = {
            self.flat_names.get(name, name): value
            for name, value in values.items()
            if name not in variant_attrs
        }
        if resolved is not None:
            flat.update(resolved.fields)
        return resolved, flat

    def diff(self, prior: Mapping[str, Any], desired: Mapping[str, Any]) -> UpdatePlan:
        """Plan the update from the last-known state to a desired document."""
        before, remote_flat = self.flatten(prior)
        after, desired_flat = self.flatten(desired)
        change = None
        if self.variant_group is not None:
            change = transition(before, after, self.variant_group)
        return plan(desired_flat, remote_flat, self.policy, change)

    # === Create ===

    def build_create_payload(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Build the create call body. Defaults to the flat document."""
        _, flat = self.flatten(fields)
        return flat

    @abstractmethod
    async def submit_create(self, payload: dict[str, Any]) -> Any:
        """Issue the create call and return the decoded response."""

    # === Read ===

    @abstractmethod
    async def fetch(self, entity_id: int) -> list[dict]:
        """Fetch records by identifier."""

    async def read(self, entity_id: int) -> dict:
        """Fetch the single authoritative record.

        Raises:
            UnexpectedRecordCount: if the remote returns other than one record
        """
        records = await self.fetch(entity_id)
        if len(records) != 1:
            raise UnexpectedRecordCount(
                f"Expected one {self.label} with id {entity_id}, got {len(records)}",
                count=len(records),
            )
        return records[0]

    async def refresh_fields(self, entity_id: int, record: Mapping[str, Any], prior: Mapping[str, Any]) -> dict[str, Any]:
        """Map a remote record into desired-shape attributes."""
        return apply_overlay(prior, refresh(record, self.refresh_spec))

    async def load(self, entity_id: int, prior: Mapping[str, Any]) -> dict[str, Any]:
        record = await self.read(entity_id)
        return await self.refresh_fields(entity_id, record, prior)

    # === Update ===

    def update_body(self, entity_id: int, update: UpdatePlan, merged: Mapping[str, Any]) -> dict[str, Any]:
        """Serialise a non-empty plan for the update call."""
        if self.update_mode == UpdateMode.SPARSE:
            return update.as_arrays()
        if self.update_mode == UpdateMode.FULL:
            return self.build_full_document(entity_id, merged)
        return update.as_dict()

    @abstractmethod
    async def submit_update(self, entity_id: int, body: dict[str, Any]) -> Any:
        """Issue the update call."""

    async def apply_update(self, entity_id: int, update: UpdatePlan, merged: Mapping[str, Any]) -> Any:
        body = self.update_body(entity_id, update, merged)
        logger.debug(f"Updating {self.label} {entity_id} ({self.update_mode.value}): {update.field_names}")
        return await self.submit_update(entity_id, body)

    # === Delete ===

    @abstractmethod
    async def submit_delete(self, entity_id: int) -> Any:
        """Issue the delete call."""
