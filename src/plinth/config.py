"""Configuration of the lifecycle manager.

Configuration is a small frozen record. It can be built in code, from a mapping,
or from a YAML file such as:

    self-plugin-id: plinth.boot
    boot-hook: todo.app/start
    initially-disabled:
      - todo.calendar
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from plinth.domain import Key
from plinth.errors import ConfigurationError

__all__ = ["DEFAULT_SELF_PLUGIN_ID", "BOOT_HOOK_NAME", "LifecycleConfig"]

DEFAULT_SELF_PLUGIN_ID = "plinth.boot"
BOOT_HOOK_NAME = "boot-fn"


@dataclass(frozen=True)
class LifecycleConfig:
    """
    Settings of a :class:`~plinth.lifecycle.Lifecycle`.

    Attributes:
        self_plugin_id: Id of the lifecycle's own plugin, which provides the
            ``api`` bean.
        boot_hook: Key of the bean invoked with the container after each rebuild;
            defaults to ``<self_plugin_id>/boot-fn``.
        initially_disabled: Plugin ids disabled when bootstrapping, unless the
            caller passes its own set.
    """

    self_plugin_id: str = DEFAULT_SELF_PLUGIN_ID
    boot_hook: Optional[Key] = None
    initially_disabled: frozenset[str] = frozenset()

    @property
    def boot_hook_key(self) -> Key:
        return self.boot_hook or Key(self.self_plugin_id, BOOT_HOOK_NAME)

    @property
    def api_key(self) -> Key:
        return Key(self.self_plugin_id, "api")

    @staticmethod
    def from_mapping(data: Optional[Mapping[str, Any]]) -> "LifecycleConfig":
        """Build a configuration from a mapping.

        Option names may be written with dashes or underscores.

        Raises:
            ConfigurationError: If the mapping holds unknown options or invalid values.
        """
        options = {str(k).replace("-", "_"): v for k, v in (data or {}).items()}
        unknown = options.keys() - {"self_plugin_id", "boot_hook", "initially_disabled"}
        if unknown:
            raise ConfigurationError(f"Unknown configuration options {sorted(unknown)}")

        try:
            self_plugin_id = options.get("self_plugin_id") or DEFAULT_SELF_PLUGIN_ID
            boot_hook = options.get("boot_hook")
            disabled = options.get("initially_disabled") or []
            if isinstance(disabled, str):
                disabled = [disabled]
            return LifecycleConfig(
                str(self_plugin_id),
                Key.parse(boot_hook, self_plugin_id) if boot_hook else None,
                frozenset(str(plugin_id) for plugin_id in disabled),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @staticmethod
    def load(path: Union[str, Path]) -> "LifecycleConfig":
        """Read a configuration from a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot load configuration from {path}: {e}") from e

        if data is not None and not isinstance(data, Mapping):
            raise ConfigurationError(
                f"Configuration file {path} must contain a mapping, got {type(data).__name__}"
            )
        return LifecycleConfig.from_mapping(data)
