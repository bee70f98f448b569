"""State store for reconciled entities.

The engine never persists anything; the caller owns the last-known state.
This store keeps it in one YAML file keyed by resource type and name:

```yaml
location:
  hq:
    id: 7
    updated_at: '2026-01-05T10:12:03+00:00'
    fields:
      name: Headquarters
      latitude: 52.37
      longitude: 4.89
```
"""
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import yaml

from .reconcile.schema import EntityKind, EntityState, is_unset

logger = logging.getLogger(__name__)

STATE_ENV = "LIBRENMS_RECONCILER_STATE"
DEFAULT_STATE_PATH = Path("librenms.state.yaml")


class StateStore:
    """YAML-backed store of EntityState per (kind, name)."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path or os.environ.get(STATE_ENV) or DEFAULT_STATE_PATH)
        self._data: dict[str, dict[str, dict]] = {}
        self.load()

    def load(self) -> None:
        """Load the state file; a missing file is an empty state."""
        if not self.path.exists():
            self._data = {}
            return
        with open(self.path) as f:
            self._data = yaml.safe_load(f) or {}
        logger.debug(f"Loaded state for {sum(len(v) for v in self._data.values())} entities")

    def save(self) -> None:
        """Write the state file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w") as f:
            yaml.safe_dump(self._data, f, default_flow_style=False, sort_keys=True)
        tmp.replace(self.path)

    def names(self, kind: Union[EntityKind, str]) -> list[str]:
        return list(self._data.get(EntityKind(kind).value, {}).keys())

    def get(self, kind: Union[EntityKind, str], name: str) -> Optional[EntityState]:
        kind = EntityKind(kind)
        entry = self._data.get(kind.value, {}).get(name)
        if entry is None:
            return None
        return EntityState(kind=kind, id=entry.get("id"), fields=dict(entry.get("fields") or {}))

    def put(self, name: str, state: EntityState) -> None:
        # ABSENT is not serialisable and reads back as "not declared" anyway
        fields = {k: v for k, v in state.fields.items() if not is_unset(v)}
        self._data.setdefault(state.kind.value, {})[name] = {
            "id": state.id,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "fields": fields,
        }

    def remove(self, kind: Union[EntityKind, str], name: str) -> None:
        kind = EntityKind(kind).value
        self._data.get(kind, {}).pop(name, None)
        if kind in self._data and not self._data[kind]:
            del self._data[kind]
