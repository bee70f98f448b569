#!/usr/bin/env python3
"""Command line runner.

Usage:
    librenms-reconciler [--config FILE] [--state FILE] plan [--refresh]
    librenms-reconciler apply [--prune]
    librenms-reconciler refresh
    librenms-reconciler import KIND NAME ID
    librenms-reconciler delete KIND NAME

Environment variables:
    LIBRENMS_RECONCILER_CONFIG    Inventory file (default: ./configs/librenms.yaml)
    LIBRENMS_RECONCILER_STATE     State file (default: ./librenms.state.yaml)
    LIBRENMS_TOKEN                API token unless api.token is set
"""
import argparse
import asyncio
import logging
import sys

from .config.inventory import ResourceInventory
from .reconcile import EntityKind, ReconcileEngine, ReconcileError
from .state import StateStore
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def run_plan(inventory: ResourceInventory, store: StateStore, refresh: bool) -> int:
    """Print the pending changes for every declared resource."""
    async with inventory.create_client() as client:
        engine = ReconcileEngine(client, inventory)
        pending = 0

        for kind, name, desired in inventory.iter_resources():
            state = store.get(kind, name)
            if state is None:
                print(f"+ {kind.value} {name}: will be created")
                pending += 1
                continue
            if refresh:
                state = await engine.read(state)
                store.put(name, state)

            update = engine.plan_update(state, desired)
            if update.empty:
                print(f"  {kind.value} {name}: up to date")
                continue
            pending += 1
            print(f"~ {kind.value} {name}:")
            print(engine.preview(state, desired))

        for kind in EntityKind:
            declared = set(inventory.get_resource_names(kind))
            for name in store.names(kind):
                if name not in declared:
                    print(f"- {kind.value} {name}: no longer declared (apply --prune deletes it)")

        if refresh:
            store.save()
        print(f"\n{pending} resource(s) with pending changes")
        return 0


async def run_apply(inventory: ResourceInventory, store: StateStore, prune: bool) -> int:
    """Converge every declared resource, saving state after each one."""
    failures = 0
    async with inventory.create_client() as client:
        engine = ReconcileEngine(client, inventory)

        for kind, name, desired in inventory.iter_resources():
            state = store.get(kind, name)
            try:
                state = await engine.apply(kind, desired, state)
            except ReconcileError as e:
                failures += 1
                logger.error(f"{kind.value} {name}: {e}")
                if getattr(e, "created_but_unconfirmed", False):
                    logger.error(
                        f"{kind.value} {name} may exist in LibreNMS; import it "
                        f"before applying again"
                    )
                continue
            store.put(name, state)
            store.save()
            logger.info(f"{kind.value} {name}: ok (id {state.id})")

        if prune:
            for kind in EntityKind:
                declared = set(inventory.get_resource_names(kind))
                for name in store.names(kind):
                    if name in declared:
                        continue
                    try:
                        await engine.delete(store.get(kind, name))
                    except ReconcileError as e:
                        failures += 1
                        logger.error(f"{kind.value} {name}: {e}")
                        continue
                    store.remove(kind, name)
                    store.save()

    return 1 if failures else 0


async def run_refresh(inventory: ResourceInventory, store: StateStore) -> int:
    """Re-read every stored entity from LibreNMS."""
    async with inventory.create_client() as client:
        engine = ReconcileEngine(client, inventory)
        for kind in EntityKind:
            for name in store.names(kind):
                store.put(name, await engine.read(store.get(kind, name)))
    store.save()
    return 0


async def run_import(inventory: ResourceInventory, store: StateStore, kind: str, name: str, key: str) -> int:
    """Adopt an existing LibreNMS entity under a resource name."""
    async with inventory.create_client() as client:
        engine = ReconcileEngine(client, inventory)
        state = await engine.import_state(kind, key)
    store.put(name, state)
    store.save()
    logger.info(f"Imported {state.kind.value} {state.id} as {name}")
    return 0


async def run_delete(inventory: ResourceInventory, store: StateStore, kind: str, name: str) -> int:
    """Delete one stored entity."""
    state = store.get(kind, name)
    if state is None:
        logger.error(f"No state for {kind} {name}")
        return 1
    async with inventory.create_client() as client:
        await ReconcileEngine(client, inventory).delete(state)
    store.remove(kind, name)
    store.save()
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Reconcile LibreNMS devices, groups, alert rules, locations and services",
    )
    parser.add_argument("--config", help="Inventory YAML file")
    parser.add_argument("--state", help="State YAML file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    plan_cmd = commands.add_parser("plan", help="Show pending changes")
    plan_cmd.add_argument("--refresh", action="store_true", help="Re-read state from LibreNMS first")

    apply_cmd = commands.add_parser("apply", help="Create and update declared resources")
    apply_cmd.add_argument("--prune", action="store_true", help="Delete resources no longer declared")

    commands.add_parser("refresh", help="Re-read all stored resources")

    import_cmd = commands.add_parser("import", help="Adopt an existing entity")
    import_cmd.add_argument("kind", choices=[k.value for k in EntityKind])
    import_cmd.add_argument("name")
    import_cmd.add_argument("id")

    delete_cmd = commands.add_parser("delete", help="Delete a stored entity")
    delete_cmd.add_argument("kind", choices=[k.value for k in EntityKind])
    delete_cmd.add_argument("name")

    args = parser.parse_args()

    setup_logging()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        inventory = ResourceInventory(args.config)
    except (FileNotFoundError, KeyError) as e:
        logger.error(f"Could not load inventory: {e}")
        return 1
    store = StateStore(args.state)

    if args.command == "plan":
        coro = run_plan(inventory, store, args.refresh)
    elif args.command == "apply":
        coro = run_apply(inventory, store, args.prune)
    elif args.command == "refresh":
        coro = run_refresh(inventory, store)
    elif args.command == "import":
        coro = run_import(inventory, store, args.kind, args.name, args.id)
    else:
        coro = run_delete(inventory, store, args.kind, args.name)

    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (ReconcileError, KeyError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
