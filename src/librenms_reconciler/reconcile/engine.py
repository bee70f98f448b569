"""Reconcile Engine - orchestrates the entity lifecycle.

Provides a single entry point per lifecycle operation:
1. Create: validate, submit, recover identity, authoritative fetch, refresh
2. Read: fetch and refresh
3. Update: validate, plan, apply (only when the plan is non-empty), re-read
4. Delete: one call
5. Import: parse the key, then read
"""
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

from .. import resources
from ..client import ApiError
from ..utils.logging_config import timed
from .errors import ConfigurationError, ProtocolError, ReconcileError, RemoteCallError
from .importer import resolve_import_key
from .planner import summarize_plan
from .refresh import apply_overlay
from .schema import EntityKind, EntityState, UpdatePlan, is_unset

if TYPE_CHECKING:
    from ..client import LibreNMSClient
    from ..config.inventory import ResourceInventory
    from ..resources.base import ResourceHandler

logger = logging.getLogger(__name__)


def _declared(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if not is_unset(v)}


class ReconcileEngine:
    """
    Reconciles desired documents against LibreNMS.

    Usage:
        engine = ReconcileEngine(client, inventory)
        state = await engine.create("location", {"name": "HQ", "latitude": 52.37, "longitude": 4.89})
        state = await engine.update(state, {"name": "HQ", "latitude": 52.4, "longitude": 4.89})
    """

    def __init__(
        self,
        client: "LibreNMSClient",
        inventory: Optional["ResourceInventory"] = None,
    ):
        """
        Initialize the Reconcile Engine.

        Args:
            client: LibreNMS API client
            inventory: Inventory supplying per-type engine settings (optional)
        """
        self.client = client
        self.inventory = inventory
        self._handlers: dict[EntityKind, "ResourceHandler"] = {}

    @staticmethod
    def _kind(kind: Union[EntityKind, str]) -> EntityKind:
        try:
            return EntityKind(kind)
        except ValueError:
            raise ConfigurationError(f"Unknown resource type: {kind!r}") from None

    def handler(self, kind: Union[EntityKind, str]) -> "ResourceHandler":
        """Get or create the handler for an entity type."""
        kind = self._kind(kind)
        if kind not in self._handlers:
            clear = self.inventory.clear_on_switch(kind) if self.inventory else False
            self._handlers[kind] = resources.create_handler(
                kind, self.client, clear_on_switch=clear
            )
        return self._handlers[kind]

    @contextmanager
    def _errors(self, kind: EntityKind, operation: str):
        """Attach entity/operation context to every error leaving an operation."""
        try:
            yield
        except ReconcileError as e:
            raise e.bind(kind.value, operation)
        except ApiError as e:
            raise RemoteCallError(
                str(e), entity=kind.value, operation=operation
            ) from e

    @staticmethod
    def _require_id(state: EntityState) -> int:
        if not state.created:
            raise ConfigurationError(
                "Entity has no identifier; create or import it first",
                attributes=("id",),
            )
        return state.id

    # === Lifecycle ===

    @timed("create")
    async def create(
        self,
        kind: Union[EntityKind, str],
        desired: Mapping[str, Any],
    ) -> EntityState:
        """
        Create an entity and return its authoritative state.

        Raises:
            ConfigurationError: before any remote call if the document is invalid
            ProtocolError: the entity may exist remotely but was not confirmed
            RemoteCallError: a collaborator call failed
        """
        kind = self._kind(kind)
        handler = self.handler(kind)

        with self._errors(kind, "create"):
            handler.validate(desired)
            payload = handler.build_create_payload(desired)

            logger.info(f"Creating {kind.value}")
            response = await handler.submit_create(payload)

            try:
                entity_id = await handler.identity.recover(handler, payload, response)
                logger.info(f"Created {kind.value} {entity_id}")
                fields = await handler.load(entity_id, prior=_declared(desired))
            except ProtocolError as e:
                e.created_but_unconfirmed = True
                logger.error(
                    f"{kind.value} may exist remotely but could not be confirmed: {e.message}"
                )
                raise
            except ApiError as e:
                logger.error(
                    f"{kind.value} was submitted but the follow-up call failed: {e}"
                )
                raise

        return EntityState(kind=kind, id=entity_id, fields=fields)

    @timed("read")
    async def read(self, state: EntityState) -> EntityState:
        """Refresh an entity from its authoritative remote record."""
        kind = self._kind(state.kind)
        with self._errors(kind, "read"):
            entity_id = self._require_id(state)
            fields = await self.handler(kind).load(entity_id, prior=state.fields)
        return EntityState(kind=kind, id=entity_id, fields=fields)

    def plan_update(self, state: EntityState, desired: Mapping[str, Any]) -> UpdatePlan:
        """Compute the update plan without calling the remote system."""
        kind = self._kind(state.kind)
        handler = self.handler(kind)
        with self._errors(kind, "update"):
            handler.validate(desired)
            handler.check_immutable(state.fields, desired)
            return handler.diff(state.fields, desired)

    def preview(self, state: EntityState, desired: Mapping[str, Any]) -> str:
        """Human-readable update preview, sensitive values masked."""
        update = self.plan_update(state, desired)
        handler = self.handler(state.kind)
        entity = f"{handler.label} {state.id}" if state.created else handler.label
        return summarize_plan(update, handler.policy, entity=entity)

    @timed("update")
    async def update(self, state: EntityState, desired: Mapping[str, Any]) -> EntityState:
        """
        Converge an existing entity towards a desired document.

        An empty plan issues no remote calls and returns the state unchanged.
        """
        kind = self._kind(state.kind)
        handler = self.handler(kind)

        with self._errors(kind, "update"):
            entity_id = self._require_id(state)
            update = self.plan_update(state, desired)

            if update.empty:
                logger.info(f"No changes needed for {kind.value} {entity_id}")
                return EntityState(kind=kind, id=entity_id, fields=dict(state.fields))

            logger.info(f"Updating {kind.value} {entity_id}: {len(update)} change(s)")
            logger.debug(summarize_plan(update, handler.policy, entity=f"{kind.value} {entity_id}"))

            merged = apply_overlay(state.fields, _declared(desired))
            await handler.apply_update(entity_id, update, merged)
            fields = await handler.load(entity_id, prior=merged)

        return EntityState(kind=kind, id=entity_id, fields=fields)

    @timed("delete")
    async def delete(self, state: EntityState) -> None:
        """Delete an entity."""
        kind = self._kind(state.kind)
        with self._errors(kind, "delete"):
            entity_id = self._require_id(state)
            await self.handler(kind).submit_delete(entity_id)
        logger.info(f"Deleted {kind.value} {entity_id}")

    @timed("import")
    async def import_state(self, kind: Union[EntityKind, str], raw_key: Any) -> EntityState:
        """Adopt an existing entity by its external identifier."""
        kind = self._kind(kind)
        with self._errors(kind, "import"):
            entity_id = resolve_import_key(raw_key)
            logger.info(f"Importing {kind.value} {entity_id}")
            fields = await self.handler(kind).load(entity_id, prior={})
        return EntityState(kind=kind, id=entity_id, fields=fields)

    async def apply(
        self,
        kind: Union[EntityKind, str],
        desired: Mapping[str, Any],
        state: Optional[EntityState] = None,
    ) -> EntityState:
        """Create the entity when there is no state yet, otherwise update it."""
        if state is None or not state.created:
            return await self.create(kind, desired)
        return await self.update(state, desired)
