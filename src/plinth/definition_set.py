"""Helpers for collecting bean definitions from a list of plugins.

Definitions are gathered in plugin list order. A plugin may define a bean under a
key another plugin already defined; the later definition replaces the earlier
one, which is how an implementation plugin overrides an interface's default.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from plinth.domain import BeanSpec, Constructed, FunctionReference, InnerBean, Key
from plinth.errors import PluginDefinitionError
from plinth.plugin import Plugin

__all__ = [
    "BeanDefinition",
    "DefinitionSet",
    "make_definition_set",
    "bind_function_references",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeanDefinition:
    """A bean definition together with the plugin that supplied it."""

    key: Key
    spec: BeanSpec
    plugin_id: Optional[str]


@dataclass(frozen=True)
class DefinitionSet:
    """
    The raw material of a container build.

    Attributes:
        definitions: Bean definitions keyed by the key they bind, in insertion order.
        originals: For each redefined key, the keys preserving its earlier
            definitions, oldest first.
    """

    definitions: dict[Key, BeanDefinition]
    originals: dict[Key, tuple[Key, ...]] = field(default_factory=dict)

    def __contains__(self, key: Key) -> bool:
        return key in self.definitions

    def with_definitions(self, definitions: Iterable[BeanDefinition]) -> "DefinitionSet":
        updated = dict(self.definitions)
        for definition in definitions:
            updated[definition.key] = definition
        return DefinitionSet(updated, dict(self.originals))


def make_definition_set(plugins: Sequence[Plugin]) -> DefinitionSet:
    """
    Collect the bean definitions of the given plugins.

    Function references are bound to the function named after their key here,
    so a definition keeps calling the same function if it is later moved under
    another key by a redefinition.

    Args:
        plugins: Active plugins, in list order.

    Returns:
        A DefinitionSet with the last definition of each key.

    Raises:
        PluginDefinitionError: If a function reference names a missing function.
    """
    definitions: dict[Key, BeanDefinition] = {}

    for plugin in plugins:
        for key, spec in plugin.all_beans().items():
            previous = definitions.get(key)
            if previous is not None and previous.plugin_id != plugin.id:
                logger.debug(
                    "Bean '%s' from plugin '%s' overridden by plugin '%s'",
                    key,
                    previous.plugin_id,
                    plugin.id,
                )
            definitions[key] = BeanDefinition(
                key, bind_function_references(spec, key), plugin.id
            )

    return DefinitionSet(definitions)


def bind_function_references(spec: BeanSpec, key: Key) -> BeanSpec:
    """Replace every :class:`FunctionReference` in ``spec`` with the call it stands for.

    References nested in constructors, mutators or inner beans are named after
    the enclosing bean's ``key``.
    """
    if isinstance(spec, FunctionReference):
        try:
            spec = spec.bind(key)
        except AttributeError as e:
            raise PluginDefinitionError(
                f"Bean '{key}' refers to function '{key.name.replace('-', '_')}' "
                f"missing from {spec.source!r}"
            ) from e
    elif isinstance(spec, Constructed):
        return Constructed(
            bind_function_references(spec.constructor, key),
            tuple(bind_function_references(m, key) for m in spec.mutators),
            doc=spec.doc,
        )
    elif isinstance(spec, InnerBean):
        return InnerBean(bind_function_references(spec.spec, key), doc=spec.doc)

    def visit(argument):
        if isinstance(argument, InnerBean):
            return bind_function_references(argument, key)
        return argument

    return spec.map_arguments(visit)
