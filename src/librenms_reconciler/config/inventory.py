"""Resource inventory management from YAML configuration."""
import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from ..client import LibreNMSClient
from ..reconcile.schema import EntityKind

logger = logging.getLogger(__name__)

CONFIG_ENV = "LIBRENMS_RECONCILER_CONFIG"


@dataclass
class ApiSettings:
    """Connection settings for the LibreNMS API."""
    url: str
    token: Optional[str] = None
    token_env: str = "LIBRENMS_TOKEN"
    timeout: float = 30
    verify_ssl: bool = True
    retries: int = 3

    def get_token(self) -> str:
        """Get the API token from config or environment variable."""
        if self.token:
            return self.token
        return os.environ.get(self.token_env, "")


class ResourceInventory:
    """Manages API settings and desired resources loaded from YAML config.

    ```yaml
    api:
      url: https://librenms.example.com
      token_env: LIBRENMS_TOKEN

    defaults:
      device:
        transport: udp

    variant_switch:
      device: {clear_on_switch: true}

    resources:
      device:
        core-switch:
          hostname: 10.0.0.1
          snmp_v2c: {community: public}
      location:
        hq:
          name: Headquarters
          latitude: 52.37
          longitude: 4.89
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the librenms.yaml config file."""
        env_path = os.environ.get(CONFIG_ENV)
        if env_path:
            return env_path

        search_paths = [
            Path.cwd() / "configs" / "librenms.yaml",
            Path.cwd() / "librenms.yaml",
            Path.home() / ".config" / "librenms-reconciler" / "librenms.yaml",
            Path("/etc/librenms-reconciler/librenms.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            f"Could not find librenms.yaml. Create one in ./configs/librenms.yaml "
            f"or set {CONFIG_ENV}"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        self._validate_kinds()

        # Apply defaults
        defaults = self._config.get("defaults", {})
        for kind, resources in self._config.get("resources", {}).items():
            kind_defaults = defaults.get(kind, {})
            for name, document in (resources or {}).items():
                for key, value in kind_defaults.items():
                    if key not in document:
                        document[key] = copy.deepcopy(value)

    def _validate_kinds(self) -> None:
        """Warn about sections that reference unknown resource types."""
        known = {kind.value for kind in EntityKind}
        for section in ("defaults", "variant_switch", "resources"):
            for kind in self._config.get(section, {}) or {}:
                if kind not in known:
                    logger.warning(
                        f"Section '{section}' references unknown resource type: {kind}"
                    )

    # === API ===

    def get_api_settings(self) -> ApiSettings:
        """Get API connection settings.

        Raises:
            KeyError: If the api section or its url is missing
        """
        api = self._config.get("api") or {}
        if "url" not in api:
            raise KeyError("Missing api.url in configuration")
        return ApiSettings(**api)

    def create_client(self, **kwargs) -> LibreNMSClient:
        """Create an API client from the api section."""
        settings = self.get_api_settings()
        return LibreNMSClient(
            settings.url,
            settings.get_token(),
            timeout=settings.timeout,
            verify_ssl=settings.verify_ssl,
            retries=settings.retries,
            **kwargs,
        )

    # === Engine settings ===

    def clear_on_switch(self, kind: Union[EntityKind, str]) -> bool:
        """Whether fields of a deactivated variant are cleared on switch."""
        kind = EntityKind(kind).value
        section = self._config.get("variant_switch", {}) or {}
        return bool((section.get(kind) or {}).get("clear_on_switch", False))

    # === Resources ===

    def get_kinds(self) -> list[EntityKind]:
        """Get resource types that have at least one declared resource."""
        kinds = []
        for kind in self._config.get("resources", {}):
            try:
                kinds.append(EntityKind(kind))
            except ValueError:
                continue
        return kinds

    def get_resource_names(self, kind: Union[EntityKind, str]) -> list[str]:
        """Get declared resource names of one type."""
        kind = EntityKind(kind).value
        return list((self._config.get("resources", {}).get(kind) or {}).keys())

    def get_resource(self, kind: Union[EntityKind, str], name: str) -> dict[str, Any]:
        """Get a copy of one desired document, defaults applied."""
        kind = EntityKind(kind).value
        resources = self._config.get("resources", {}).get(kind) or {}
        if name not in resources:
            raise KeyError(f"Unknown {kind}: {name}")
        return copy.deepcopy(resources[name])

    def iter_resources(self) -> list[tuple[EntityKind, str, dict[str, Any]]]:
        """Get all declared resources as (kind, name, document) tuples."""
        return [
            (kind, name, self.get_resource(kind, name))
            for kind in self.get_kinds()
            for name in self.get_resource_names(kind)
        ]
