"""Schema definitions for the reconciliation engine.

Defines entity state, field policies and update plans.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class EntityKind(str, Enum):
    """Manageable LibreNMS entity types."""
    DEVICE = "device"
    DEVICE_GROUP = "devicegroup"
    ALERT_RULE = "alertrule"
    LOCATION = "location"
    SERVICE = "service"


class UpdateMode(str, Enum):
    """How a non-empty plan is submitted to the remote API."""
    SPARSE = "sparse"   # field/data arrays of the changed fields only
    PATCH = "patch"     # JSON object of the changed fields only
    FULL = "full"       # whole document, sent only when the plan is non-empty


class _Absent:
    """Marker for a nullable attribute the remote system did not return."""

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __copy__(self) -> "_Absent":
        return self

    def __deepcopy__(self, memo: dict) -> "_Absent":
        return self


ABSENT = _Absent()


def is_unset(value: Any) -> bool:
    """True for values that mean "not declared": None or ABSENT."""
    return value is None or value is ABSENT


@dataclass
class EntityState:
    """Desired-shape attributes of one entity plus its remote identifier.

    The same type carries a caller's desired document (id unknown) and the
    last-known remote state produced by a refresh (id set).
    """
    kind: EntityKind
    id: Optional[int] = None
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def created(self) -> bool:
        return self.id is not None

    def get(self, name: str, default: Any = None) -> Any:
        value = self.fields.get(name, default)
        return default if value is ABSENT else value


@dataclass(frozen=True)
class FieldPolicy:
    """Per-entity diffing rules over the flat remote field names."""
    updatable: tuple[str, ...]
    write_only_on_create: frozenset[str] = frozenset()
    computed: frozenset[str] = frozenset()
    unordered: frozenset[str] = frozenset()
    json_fields: frozenset[str] = frozenset()
    sensitive: frozenset[str] = frozenset()
    identifier: str = "id"


@dataclass(frozen=True)
class FieldChange:
    """One attribute to submit in an update."""
    name: str
    value: Any


@dataclass
class UpdatePlan:
    """Ordered set of field changes; empty means no remote call."""
    changes: list[FieldChange] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return len(self.changes) == 0

    @property
    def field_names(self) -> list[str]:
        return [change.name for change in self.changes]

    def as_dict(self) -> dict[str, Any]:
        return {change.name: change.value for change in self.changes}

    def as_arrays(self) -> dict[str, list]:
        """Serialise to the parallel field/data arrays LibreNMS expects."""
        return {
            "field": [change.name for change in self.changes],
            "data": [change.value for change in self.changes],
        }

    def __len__(self) -> int:
        return len(self.changes)

    def __iter__(self):
        return iter(self.changes)
