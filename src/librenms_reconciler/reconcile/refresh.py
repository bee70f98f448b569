"""State refresh: map an authoritative remote record into desired shape.

Attributes the remote system folds into an opaque blob (write-only after
create) are never part of the overlay, so the caller's last-known value
survives. Nullable attributes missing from the record become ABSENT rather
than a zero value.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from .schema import ABSENT


def as_bool(value: Any) -> bool:
    """LibreNMS returns flags as 0/1, "0"/"1" or booleans."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def as_int(value: Any) -> int:
    return int(value)


def as_float(value: Any) -> float:
    return float(value)


def as_int_list(value: Any) -> list[int]:
    return [int(v) for v in value]


@dataclass(frozen=True)
class FieldMapping:
    """One desired attribute sourced from one remote record key."""
    remote_key: str
    convert: Optional[Callable[[Any], Any]] = None
    nullable: bool = False
    is_list: bool = False


@dataclass(frozen=True)
class RefreshSpec:
    """How a remote record maps back into desired-shape attributes.

    Attributes:
        mappings: desired attribute -> FieldMapping
        preserved: attributes the remote system never echoes back
    """
    mappings: Mapping[str, FieldMapping]
    preserved: frozenset[str] = field(default_factory=frozenset)


def refresh(record: Mapping[str, Any], spec: RefreshSpec) -> dict[str, Any]:
    """
    Build the overlay of desired-shape attributes from a remote record.

    Args:
        record: Decoded remote record
        spec: Refresh spec of the entity type

    Returns:
        Overlay to merge over the last-known state with apply_overlay()
    """
    overlay: dict[str, Any] = {}

    for attribute, mapping in spec.mappings.items():
        if attribute in spec.preserved:
            continue

        raw = record.get(mapping.remote_key)

        if raw is None:
            if mapping.nullable or mapping.is_list:
                overlay[attribute] = ABSENT
            # non-nullable and missing: leave the last-known value alone
            continue

        if mapping.is_list:
            items = list(raw)
            overlay[attribute] = mapping.convert(items) if mapping.convert else items
            continue

        overlay[attribute] = mapping.convert(raw) if mapping.convert else raw

    return overlay


def apply_overlay(prior: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Merge a refresh overlay over the caller's last-known attributes."""
    merged = dict(prior)
    merged.update(overlay)
    return merged
