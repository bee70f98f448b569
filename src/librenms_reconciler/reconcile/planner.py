"""Diff-based update planner.

Computes the minimal ordered set of (field, value) pairs that moves the
remote state towards the desired state. Operates on flat remote field
names; variant clusters are flattened beforehand by the variant resolver.
"""
import json
import logging
from collections import Counter
from typing import Any, Mapping, Optional

from .schema import ABSENT, FieldChange, FieldPolicy, UpdatePlan, is_unset
from .variants import VariantTransition

logger = logging.getLogger(__name__)

MASK = "********"


def plan(
    desired: Mapping[str, Any],
    remote: Mapping[str, Any],
    policy: FieldPolicy,
    transition: Optional[VariantTransition] = None,
) -> UpdatePlan:
    """
    Plan the update for one entity.

    Args:
        desired: Flat desired fields
        remote: Flat fields of the last-known remote snapshot
        policy: Field policy of the entity type
        transition: Variant cluster transition, if the entity has one

    Returns:
        UpdatePlan ordered by policy.updatable
    """
    excluded = policy.computed | policy.write_only_on_create | {policy.identifier}
    forced = _forced_fields(transition)
    result = UpdatePlan()

    for name in policy.updatable:
        if name in excluded:
            continue

        if name in forced:
            result.changes.append(FieldChange(name, forced[name]))
            continue

        desired_value = desired.get(name)
        if is_unset(desired_value):
            # Not declared: the remote keeps whatever it has
            continue

        remote_value = remote.get(name, ABSENT)
        if remote_value is None:
            remote_value = ABSENT

        if not values_equal(name, desired_value, remote_value, policy):
            result.changes.append(FieldChange(name, desired_value))

    if not result.empty:
        logger.debug(f"Planned changes: {', '.join(result.field_names)}")
    return result


def _forced_fields(transition: Optional[VariantTransition]) -> dict[str, Any]:
    """Fields that must be sent because the active cluster changed."""
    if transition is None or not transition.switched:
        return {}
    if transition.active is None:
        # No cluster declared: the remote keeps its access settings
        return {}

    forced = dict(transition.active_fields)

    if transition.group.clear_on_switch:
        old = transition.group.cluster(transition.previous)
        if old is not None:
            for name, value in old.cleared.items():
                forced.setdefault(name, value)

    return forced


def values_equal(name: str, desired: Any, remote: Any, policy: FieldPolicy) -> bool:
    """Value equality with per-field semantics."""
    if remote is ABSENT:
        return False

    if name in policy.unordered:
        if not isinstance(desired, (list, tuple)) or not isinstance(remote, (list, tuple)):
            return desired == remote
        return Counter(desired) == Counter(remote)

    if name in policy.json_fields:
        try:
            return _load_json(desired) == _load_json(remote)
        except ValueError:
            return desired == remote

    return desired == remote


def _load_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def summarize_plan(update: UpdatePlan, policy: FieldPolicy, entity: str = "") -> str:
    """
    Create a human-readable summary of an update plan.

    Sensitive values are masked. Useful for previews and logging.
    """
    label = f" for {entity}" if entity else ""

    if update.empty:
        return f"No changes needed{label} - remote state matches desired state"

    lines = [f"Changes to apply{label} ({len(update)} total):"]
    for change in update:
        value = MASK if change.name in policy.sensitive else change.value
        lines.append(f"  [~] {change.name}: {value!r}")

    return "\n".join(lines)
