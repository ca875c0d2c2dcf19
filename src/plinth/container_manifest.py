"""Utilities for constructing container build manifests.

This module provides the dependency resolution logic of the framework. It
hoists inner beans into keys of their own, builds the graph of references
between bean definitions, rejects cycles and determines the order in which
beans must be realised.

The ContainerManifest serves as a blueprint for container construction: it holds
every definition to realise, in an order where each bean comes after all the
beans it references.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Iterator

from plinth.definition_set import BeanDefinition, DefinitionSet
from plinth.domain import BeanSpec, InnerBean, Key, Ref
from plinth.errors import CycleError, MissingBeanError

__all__ = ["INNER_MARKER", "ContainerManifest", "ContainerManifestBuilder"]

logger = logging.getLogger(__name__)

INNER_MARKER = "$inner"


@dataclass(frozen=True)
class ContainerManifest:
    """Description of how to build a :class:`~plinth.container.Container`."""

    definitions: dict[Key, BeanDefinition]
    """Definitions keyed by the key they bind, with inner beans hoisted."""

    dependencies: dict[Key, tuple[Key, ...]]
    """Keys each bean references directly."""

    build_order: list[Key]
    """Ordered list of beans to realise."""

    hidden: FrozenSet[Key]
    """Synthetic keys of hoisted inner beans, realised but not published."""

    originals: dict[Key, tuple[Key, ...]]
    """Keys preserving the earlier definitions of each redefined bean."""


class _DependencyGraph:
    """
    Internal helper to represent and traverse the graph of bean references.

    Each node corresponds to a bean, and each edge to a reference from one bean
    definition to another. Traversal is depth-first and tracks the current path,
    so a cycle is reported as the exact chain of keys that forms it.
    """

    def __init__(self):
        self._dependencies: dict[Key, list[Key]] = {}

    def add_dependencies(self, dependee: Key, dependencies: Iterable[Key]):
        """
        Add one or more dependencies to the graph for a given dependee node.

        Args:
            dependee: The bean whose references are being registered.
            dependencies: The keys this bean references.
        """
        self._dependencies.setdefault(dependee, []).extend(dependencies)

    def traverse(self) -> Iterator[Key]:
        """
        Perform a topological traversal of the dependency graph.

        Yields:
            Keys in an order where all dependencies of each node are yielded
            before the node itself.

        Raises:
            CycleError: If a node is reached again while still on the current path.
        """
        done: set[Key] = set()

        for root in self._dependencies:
            if root in done:
                continue

            path = [root]
            on_path = {root}
            stack = [(root, iter(self._dependencies[root]))]

            while stack:
                node, pending = stack[-1]
                for dependency in pending:
                    if dependency in done:
                        continue
                    if dependency in on_path:
                        raise CycleError(path[path.index(dependency):] + [dependency])
                    path.append(dependency)
                    on_path.add(dependency)
                    stack.append((dependency, iter(self._dependencies.get(dependency, ()))))
                    break
                else:
                    stack.pop()
                    path.pop()
                    on_path.discard(node)
                    done.add(node)
                    yield node


class ContainerManifestBuilder:
    """Resolve a definition set into a :class:`ContainerManifest`."""

    def build(self, definition_set: DefinitionSet) -> ContainerManifest:
        """Build a ContainerManifest from the final set of bean definitions.

        Args:
            definition_set: Definitions after extension aggregation and
                redefinition expansion.

        Returns:
            A ContainerManifest describing how to build the container.

        Raises:
            MissingBeanError: If a definition references a key nothing defines.
            CycleError: If definitions reference each other in a cycle.
        """
        definitions, hidden = self._hoist_inner_beans(definition_set.definitions)

        dependencies = {
            key: tuple(dict.fromkeys(definition.spec.references()))
            for key, definition in definitions.items()
        }
        self._validate_references(dependencies)

        build_order = list(self._build_dependency_graph(dependencies).traverse())
        logger.debug("Build order: %s", ", ".join(str(key) for key in build_order))

        return ContainerManifest(
            definitions,
            dependencies,
            build_order,
            frozenset(hidden),
            dict(definition_set.originals),
        )

    def _hoist_inner_beans(self, definitions):
        """Move every inner bean used as an argument under a synthetic key.

        Returns:
            The rewritten definitions, and the set of synthetic keys introduced.
        """
        hoisted: dict[Key, BeanDefinition] = {}
        hidden: set[Key] = set()

        def hoist(spec: BeanSpec, owner: BeanDefinition, key: Key) -> BeanSpec:
            counter = itertools.count(1)

            def visit(argument):
                if not isinstance(argument, InnerBean):
                    return argument
                synthetic = Key(key.namespace, f"{key.name}{INNER_MARKER}-{next(counter)}")
                while synthetic in definitions or synthetic in hoisted:
                    synthetic = Key(key.namespace, f"{key.name}{INNER_MARKER}-{next(counter)}")
                hidden.add(synthetic)
                hoisted[synthetic] = BeanDefinition(
                    synthetic,
                    hoist(_unwrap(argument), owner, synthetic),
                    owner.plugin_id,
                )
                return Ref(synthetic)

            return spec.map_arguments(visit)

        for key, definition in definitions.items():
            hoisted[key] = BeanDefinition(
                key, hoist(_unwrap(definition.spec), definition, key), definition.plugin_id
            )

        return hoisted, hidden

    def _validate_references(self, dependencies: dict[Key, tuple[Key, ...]]):
        for key, references in dependencies.items():
            for reference in references:
                if reference not in dependencies:
                    raise MissingBeanError(
                        f"Bean '{key}' depends on undefined bean '{reference}'"
                    )

    def _build_dependency_graph(self, dependencies) -> _DependencyGraph:
        """
        Construct a dependency graph where each bean maps to the keys it references.

        Returns:
            A dependency graph over every bean in the manifest.
        """
        dependency_graph = _DependencyGraph()
        for key, references in dependencies.items():
            dependency_graph.add_dependencies(key, references)
        return dependency_graph


def _unwrap(spec: BeanSpec) -> BeanSpec:
    while isinstance(spec, InnerBean):
        spec = spec.spec
    return spec
