"""Variant resolution for mutually exclusive configuration shapes.

A VariantGroup lists clusters in a fixed order. At most one cluster may be
populated; the resolver names it and maps it to the flat field set the
remote API expects, so the rest of the engine never sees variant-specific
naming.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from .errors import MultipleVariantsSet, NoVariantSet
from .schema import is_unset


@dataclass(frozen=True)
class VariantCluster:
    """One mutually exclusive shape.

    Attributes:
        name: Cluster name used in messages and transitions
        attributes: Desired-document attributes belonging to this cluster
        to_flat: Maps the desired document to the flat remote fields
        discriminator_value: Value of the group discriminator selecting it
        cleared: Flat values that deactivate this cluster when clearing
    """
    name: str
    attributes: tuple[str, ...]
    to_flat: Callable[[Mapping[str, Any]], dict[str, Any]]
    discriminator_value: Optional[str] = None
    cleared: Mapping[str, Any] = field(default_factory=dict)

    def populated(self, fields: Mapping[str, Any]) -> bool:
        return any(not is_unset(fields.get(attr)) for attr in self.attributes)


@dataclass(frozen=True)
class VariantGroup:
    """A set of pairwise exclusive clusters."""
    name: str
    clusters: tuple[VariantCluster, ...]
    discriminator: Optional[str] = None
    required: bool = False
    clear_on_switch: bool = False

    def cluster(self, name: Optional[str]) -> Optional[VariantCluster]:
        for cluster in self.clusters:
            if cluster.name == name:
                return cluster
        return None

    def with_clear_on_switch(self, enabled: bool) -> "VariantGroup":
        return VariantGroup(
            name=self.name,
            clusters=self.clusters,
            discriminator=self.discriminator,
            required=self.required,
            clear_on_switch=enabled,
        )


@dataclass(frozen=True)
class ResolvedVariant:
    """The active cluster and its flat remote fields."""
    active: Optional[str]
    fields: dict[str, Any]


@dataclass(frozen=True)
class VariantTransition:
    """Active cluster before and after an update."""
    group: VariantGroup
    previous: Optional[str]
    active: Optional[str]
    active_fields: dict[str, Any]

    @property
    def switched(self) -> bool:
        return self.previous != self.active


def resolve(fields: Mapping[str, Any], group: VariantGroup) -> ResolvedVariant:
    """Determine the single active cluster of a document.

    Raises:
        MultipleVariantsSet: if two or more clusters are populated
        NoVariantSet: if the discriminator (or a required group) names a
            cluster that is not populated
    """
    populated = [c for c in group.clusters if c.populated(fields)]

    if len(populated) > 1:
        names = [c.name for c in populated]
        attrs = [a for c in populated for a in c.attributes if not is_unset(fields.get(a))]
        raise MultipleVariantsSet(
            f"Only one of {', '.join(c.name for c in group.clusters)} may be set "
            f"for {group.name}, found: {', '.join(names)}",
            attributes=attrs,
        )

    if group.discriminator is not None:
        selector = fields.get(group.discriminator)
        expected = next(
            (c for c in group.clusters if c.discriminator_value == selector), None
        )
        if expected is None:
            raise NoVariantSet(
                f"{group.discriminator}={selector!r} does not select any of "
                f"{', '.join(str(c.discriminator_value) for c in group.clusters)}",
                attributes=(group.discriminator,),
            )
        if not populated or populated[0] is not expected:
            raise NoVariantSet(
                f"{group.discriminator} is {selector!r} but "
                f"{' / '.join(expected.attributes)} is not set",
                attributes=(group.discriminator,) + expected.attributes,
            )

    if not populated:
        if group.required:
            raise NoVariantSet(
                f"One of {', '.join(c.name for c in group.clusters)} must be set "
                f"for {group.name}",
                attributes=[a for c in group.clusters for a in c.attributes],
            )
        return ResolvedVariant(active=None, fields={})

    active = populated[0]
    flat = dict(active.to_flat(fields))
    if group.discriminator is not None:
        flat[group.discriminator] = active.discriminator_value
    return ResolvedVariant(active=active.name, fields=flat)


def transition(
    before: ResolvedVariant,
    after: ResolvedVariant,
    group: VariantGroup,
) -> VariantTransition:
    """Describe the cluster change between two resolved documents."""
    return VariantTransition(
        group=group,
        previous=before.active,
        active=after.active,
        active_fields=after.fields,
    )
