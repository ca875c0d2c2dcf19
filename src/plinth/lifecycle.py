"""
Lifecycle management: system state, cascading disablement and reloads.

A :class:`Lifecycle` holds the list of known plugins, the set of plugins disabled
by the user and the current container. Whenever the plugin list or the disabled
set changes, it recomputes which plugins are effectively disabled, rebuilds the
container from the rest and invokes the boot hook found in the new container.

The lifecycle adds a plugin of its own, which exposes a :class:`LifecycleApi`
bean so that other plugins (debug panels, admin endpoints) can inspect and
control the system.

Example:
    >>> lifecycle = Lifecycle.new()
    >>> lifecycle.bootstrap([domain_plugin, storage_plugin, app_plugin])
    >>> lifecycle.state.container["todo.domain/add-task"]
    >>> lifecycle.disable("todo.storage")
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional, Sequence, Union

from plinth.builders import make_container
from plinth.config import LifecycleConfig
from plinth.container import Container
from plinth.domain import call
from plinth.plugin import Plugin, make_plugin

__all__ = ["SystemState", "Lifecycle", "LifecycleApi", "cascading_disabled"]

logger = logging.getLogger(__name__)

PluginOrId = Union[Plugin, str]


@dataclass(frozen=True)
class SystemState:
    """
    A snapshot of the system.

    Attributes:
        all_plugins: Every known plugin, in load order, including disabled ones.
        disabled_ids: Ids of the plugins disabled explicitly.
        container: The most recently published container, if any.
        last_error: The error raised by the last reload, if it failed.
        generation: How many containers have been published.
    """

    all_plugins: tuple[Plugin, ...] = ()
    disabled_ids: frozenset[str] = frozenset()
    container: Optional[Container] = None
    last_error: Optional[Exception] = None
    generation: int = 0


def cascading_disabled(
    plugins: Iterable[Plugin], disabled_ids: Iterable[str]
) -> frozenset[str]:
    """Compute the ids of every plugin that is effectively disabled.

    A plugin is disabled when it is disabled explicitly, or when any plugin it
    depends on is disabled. The rule is applied repeatedly until no further
    plugin is added.

    Args:
        plugins: All known plugins.
        disabled_ids: Ids of the plugins disabled explicitly.

    Returns:
        The explicitly disabled ids together with those of their dependents.

    Example:
        >>> # b depends on a, c depends on b
        >>> cascading_disabled([a, b, c], {"a"})
        frozenset({'a', 'b', 'c'})
    """
    plugins = list(plugins)
    current = set(disabled_ids)

    while True:
        newly_disabled = {
            plugin.id
            for plugin in plugins
            if plugin.id not in current
            and any(dependency in current for dependency in plugin.deps)
        }
        if not newly_disabled:
            return frozenset(current)
        current |= newly_disabled


class LifecycleApi:
    """Control surface of a :class:`Lifecycle`, published as a bean."""

    def __init__(self, lifecycle: "Lifecycle"):
        self._lifecycle = lifecycle

    @property
    def state(self) -> SystemState:
        return self._lifecycle.state

    def reload(self) -> None:
        self._lifecycle.reload()

    def register(self, plugin: Plugin) -> None:
        self._lifecycle.register(plugin)

    def enable(self, plugin: PluginOrId) -> None:
        self._lifecycle.enable(plugin)

    def disable(self, plugin: PluginOrId) -> None:
        self._lifecycle.disable(plugin)

    def toggle(self, plugin: PluginOrId) -> None:
        self._lifecycle.toggle(plugin)


class Lifecycle:
    """
    Owner of the system state.

    Every change to the state is an atomic swap of an immutable
    :class:`SystemState`. Reloads are not serialised against each other: when two
    overlap, the last one to publish its container wins.

    Args:
        config: Lifecycle settings; defaults to :class:`LifecycleConfig` defaults.
        scheduler: Optional callable used to defer reloads, such as
            ``loop.call_soon``. Without one, reloads run synchronously.
    """

    def __init__(
        self,
        config: Optional[LifecycleConfig] = None,
        scheduler: Optional[Callable[[Callable[[], None]], object]] = None,
    ):
        self.config = config or LifecycleConfig()
        self._scheduler = scheduler
        self._lock = threading.Lock()
        self._state = SystemState()

    @classmethod
    def new(
        cls,
        config: Optional[LifecycleConfig] = None,
        scheduler: Optional[Callable[[Callable[[], None]], object]] = None,
    ) -> "Lifecycle":
        return cls(config, scheduler)

    def reset(self) -> None:
        """Forget every plugin, the disabled set and the current container."""
        self._swap(lambda _state: SystemState())

    @property
    def state(self) -> SystemState:
        with self._lock:
            return self._state

    @property
    def container(self) -> Optional[Container]:
        return self.state.container

    def self_plugin(self) -> Plugin:
        """The lifecycle's own plugin, exposing the ``api`` bean."""
        return make_plugin(
            id=self.config.self_plugin_id,
            doc="System bootstrapper. Manages the plugin lifecycle and system state.",
            beans={
                self.config.api_key: call(
                    LifecycleApi,
                    self,
                    doc="System control API: state, reload, register, enable, disable, toggle.",
                )
            },
        )

    def bootstrap(
        self, plugins: Sequence[Plugin], initially_disabled: Optional[Iterable[str]] = None
    ) -> None:
        """Start the system with the given plugins.

        The lifecycle's own plugin is appended to the list, the disabled set is
        initialised and a first reload is triggered.

        Args:
            plugins: The plugins to load, in order.
            initially_disabled: Ids of plugins to start disabled; defaults to the
                configured ``initially_disabled``.
        """
        all_plugins = tuple(
            plugin for plugin in plugins if plugin.id != self.config.self_plugin_id
        ) + (self.self_plugin(),)
        if initially_disabled is None:
            initially_disabled = self.config.initially_disabled

        disabled_ids = frozenset(initially_disabled)
        self._swap(
            lambda state: replace(
                state, all_plugins=all_plugins, disabled_ids=disabled_ids
            )
        )
        self.reload()

    def reload(self) -> None:
        """Rebuild the container from the enabled plugins and run the boot hook.

        Errors are never raised to the caller. A failed build leaves the previous
        container in place; a failing boot hook leaves the new one published.
        Either way the error is logged and stored as ``last_error``.
        """
        if self._scheduler is not None:
            self._scheduler(self._reload)
        else:
            self._reload()

    def register(self, plugin: Plugin) -> None:
        """Add a plugin, replacing any plugin with the same id, then reload."""

        def add(state: SystemState) -> SystemState:
            if any(p.id == plugin.id for p in state.all_plugins):
                all_plugins = tuple(
                    plugin if p.id == plugin.id else p for p in state.all_plugins
                )
            else:
                all_plugins = state.all_plugins + (plugin,)
            return replace(state, all_plugins=all_plugins)

        self._swap(add)
        self.reload()

    def enable(self, plugin: PluginOrId) -> None:
        plugin_id = _plugin_id(plugin)
        self._swap(
            lambda state: replace(state, disabled_ids=state.disabled_ids - {plugin_id})
        )
        self.reload()

    def disable(self, plugin: PluginOrId) -> None:
        plugin_id = _plugin_id(plugin)
        self._swap(
            lambda state: replace(state, disabled_ids=state.disabled_ids | {plugin_id})
        )
        self.reload()

    def toggle(self, plugin: PluginOrId) -> None:
        plugin_id = _plugin_id(plugin)
        self._swap(
            lambda state: replace(state, disabled_ids=state.disabled_ids ^ {plugin_id})
        )
        self.reload()

    def _swap(self, update: Callable[[SystemState], SystemState]) -> SystemState:
        with self._lock:
            self._state = update(self._state)
            return self._state

    def _reload(self) -> None:
        logger.info("Reloading...")
        state = self.state
        disabled = cascading_disabled(state.all_plugins, state.disabled_ids)
        active = [plugin for plugin in state.all_plugins if plugin.id not in disabled]

        try:
            container = make_container(active)
        except Exception as e:
            logger.exception("Reload failed, keeping the previous container")
            self._swap(lambda current: replace(current, last_error=e))
            return

        self._swap(
            lambda current: replace(
                current,
                container=container,
                last_error=None,
                generation=current.generation + 1,
            )
        )

        boot_hook = self.config.boot_hook_key
        if boot_hook in container:
            try:
                container[boot_hook](container)
            except Exception as e:
                logger.exception("Boot hook '%s' failed", boot_hook)
                self._swap(lambda current: replace(current, last_error=e))
        else:
            logger.warning("No boot hook '%s' found in the container", boot_hook)

        logger.info(
            "Reload complete. Active plugins: %d, disabled: %s",
            len(active),
            sorted(disabled),
        )


def _plugin_id(plugin: PluginOrId) -> str:
    return plugin.id if isinstance(plugin, Plugin) else plugin
