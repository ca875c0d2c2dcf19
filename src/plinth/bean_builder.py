"""Utilities for realising bean definitions into MaterialisedBean objects.

This module provides the BeanBuilder class, which turns a single bean definition
into its value given the already-realised values of the beans it references.
"""

import functools
from typing import Any

from plinth.definition_set import BeanDefinition
from plinth.domain import (
    BeanSpec,
    Constructed,
    FactoryCall,
    FunctionReference,
    InnerBean,
    Key,
    Literal,
    MaterialisedBean,
    PartialApplication,
    Ref,
    Val,
)
from plinth.errors import BeanCreationError, DependencyError

__all__ = ["BeanBuilder"]


class BeanBuilder:
    """Build :class:`MaterialisedBean` instances from bean definitions."""

    def build(
        self, definition: BeanDefinition, dependencies: dict[Key, Any]
    ) -> MaterialisedBean:
        """Realise a definition.

        Args:
            definition: The definition being realised.
            dependencies: Mapping of every key the definition references to its value.

        Returns:
            The resulting :class:`MaterialisedBean`.

        Raises:
            BeanCreationError: If a factory, constructor or mutator raises.
        """
        try:
            value = self.realise(definition.spec, dependencies)
        except DependencyError:
            raise
        except Exception as e:
            raise BeanCreationError(definition.key) from e

        return MaterialisedBean(
            definition.key,
            value,
            tuple(dependencies.keys()),
            definition.plugin_id,
            definition.spec.doc,
        )

    def realise(self, spec: BeanSpec, dependencies: dict[Key, Any]) -> Any:
        if isinstance(spec, Literal):
            return spec.value
        if isinstance(spec, FactoryCall):
            return spec.fn(*self._arguments(spec.args, dependencies))
        if isinstance(spec, PartialApplication):
            return functools.partial(spec.fn, *self._arguments(spec.args, dependencies))
        if isinstance(spec, InnerBean):
            return self.realise(spec.spec, dependencies)
        if isinstance(spec, Constructed):
            value = self.realise(spec.constructor, dependencies)
            for mutator in spec.mutators:
                value = self.realise(mutator, dependencies)(value)
            return value
        if isinstance(spec, FunctionReference):
            raise DependencyError(
                f"Function reference to {spec.source!r} was never bound to a bean key"
            )
        raise DependencyError(f"Unsupported bean definition {spec!r}")

    def _arguments(self, arguments, dependencies) -> list[Any]:
        resolved = []
        for argument in arguments:
            if isinstance(argument, Ref):
                resolved.append(dependencies[argument.key])
            elif isinstance(argument, Val):
                resolved.append(argument.value)
            else:
                resolved.append(self.realise(argument, dependencies))
        return resolved
