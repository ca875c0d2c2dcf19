"""High level entry points for constructing containers."""

from typing import Iterable

from plinth.bean_builder import BeanBuilder
from plinth.container import Container, ContainerBuilder
from plinth.container_manifest import ContainerManifest, ContainerManifestBuilder
from plinth.definition_set import make_definition_set
from plinth.extensions import aggregate_extensions
from plinth.plugin import Plugin
from plinth.redefinitions import apply_redefinitions
from plinth.validator import validate_plugins

__all__ = ["make_manifest", "make_container"]


def make_manifest(plugins: Iterable[Plugin]) -> ContainerManifest:
    """Create a :class:`ContainerManifest` for the given plugins.

    The plugins are validated, their bean definitions collected, extension
    contributions aggregated and bean redefinitions expanded, before the
    resulting definitions are ordered for realisation. Nothing is realised.

    Args:
        plugins: The active plugins. List order decides which definition of a key
            wins, the order of aggregated contributions and the nesting of
            redefinitions.

    Returns:
        The resolved :class:`ContainerManifest`.

    Raises:
        DependencyError: If the plugins are inconsistent, or their beans are
            missing or cyclic.

    Example:
        >>> manifest = make_manifest([domain_plugin, storage_plugin])
        >>> print(manifest.build_order)
    """
    plugins = list(plugins)
    validate_plugins(plugins)

    definition_set = make_definition_set(plugins)
    definition_set = aggregate_extensions(plugins, definition_set)
    definition_set = apply_redefinitions(plugins, definition_set)

    return ContainerManifestBuilder().build(definition_set)


def make_container(plugins: Iterable[Plugin]) -> Container:
    """Construct and return a fully realised :class:`Container`.

    Args:
        plugins: The active plugins, in order.

    Returns:
        The realised :class:`Container`.

    Raises:
        DependencyError: If the plugins cannot be composed, or a factory fails.

    Example:
        >>> a = make_plugin(id="A", beans={"x": literal(1)})
        >>> b = make_plugin(id="B", deps=[a], beans={"y": call(add1, ref("A/x"))})
        >>> dict(make_container([a, b]))
        {Key(namespace='A', name='x'): 1, Key(namespace='B', name='y'): 2}
    """
    manifest = make_manifest(plugins)
    container_builder = ContainerBuilder(manifest, BeanBuilder())

    return container_builder.build()
