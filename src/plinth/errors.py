"""Exceptions raised while composing plugins into a container.

Every error that aborts a container build derives from :class:`DependencyError`,
so host code can catch the whole family or distinguish individual failures.
"""

__all__ = [
    "DependencyError",
    "PluginDefinitionError",
    "ValidationError",
    "ExtensionError",
    "CycleError",
    "MissingBeanError",
    "BeanCreationError",
    "ConfigurationError",
]


class DependencyError(Exception):
    """Raised when a container cannot be built from the given plugins."""

    pass


class PluginDefinitionError(DependencyError):
    """Raised when a plugin descriptor is malformed."""

    pass


class ValidationError(DependencyError):
    """Raised when a plugin uses a key owned by a plugin it does not depend on.

    Attributes:
        plugin_id: The plugin that referenced the key (None for structural errors).
        key: The offending key, if any.
        owner: The plugin that should be added to ``deps``, if one is known.
    """

    def __init__(self, message, plugin_id=None, key=None, owner=None):
        super().__init__(message)
        self.plugin_id = plugin_id
        self.key = key
        self.owner = owner


class ExtensionError(DependencyError):
    """Raised when extension declarations or contributions are inconsistent."""

    pass


class CycleError(DependencyError):
    """Raised when bean definitions depend on each other in a cycle.

    Attributes:
        cycle: The keys forming the cycle, in visitation order, ending with the
            repeated key.
    """

    def __init__(self, cycle):
        self.cycle = list(cycle)
        super().__init__(
            "Dependency cycle detected: " + " -> ".join(str(key) for key in self.cycle)
        )


class MissingBeanError(DependencyError):
    """Raised when a bean refers to a key that nothing defines."""

    pass


class BeanCreationError(DependencyError):
    """Raised when a factory or mutator fails while realising a bean."""

    def __init__(self, key):
        super().__init__(f"Failed to create bean '{key}'")
        self.key = key


class ConfigurationError(Exception):
    """Raised when lifecycle configuration cannot be loaded."""

    pass
