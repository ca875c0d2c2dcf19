"""Aggregation of contributions into extension points.

Each extension point is declared by one plugin and bound to a bean whose value
combines every contribution made to it, in plugin list order, according to the
declaration's :class:`~plinth.domain.AggregationPolicy`.
"""

import logging
from collections import defaultdict
from typing import Any, Sequence

from plinth.definition_set import BeanDefinition, DefinitionSet
from plinth.domain import (
    AggregationPolicy,
    BeanSpec,
    ExtensionDecl,
    FactoryCall,
    Key,
    Literal,
    Val,
    as_argument,
)
from plinth.errors import ExtensionError
from plinth.plugin import Plugin

__all__ = ["aggregate_extensions", "aggregate"]

logger = logging.getLogger(__name__)


def aggregate_extensions(
    plugins: Sequence[Plugin], definition_set: DefinitionSet
) -> DefinitionSet:
    """Bind every declared extension point to the aggregate of its contributions.

    Args:
        plugins: Active plugins, in list order.
        definition_set: The bean definitions collected from the same plugins.

    Returns:
        A new DefinitionSet including one definition per extension point.

    Raises:
        ExtensionError: If an extension point is declared twice or clashes with a
            bean, or if a plugin contributes to an undeclared extension point.
    """
    declarations: dict[Key, tuple[ExtensionDecl, str]] = {}
    for plugin in plugins:
        for extension in plugin.extensions:
            if extension.key in declarations:
                raise ExtensionError(
                    f"Extension point '{extension.key}' declared by plugin "
                    f"'{plugin.id}' is already declared by plugin "
                    f"'{declarations[extension.key][1]}'"
                )
            if extension.key in definition_set:
                raise ExtensionError(
                    f"Extension point '{extension.key}' declared by plugin "
                    f"'{plugin.id}' is also defined as a bean"
                )
            declarations[extension.key] = (extension, plugin.id)

    contributions: dict[Key, list[Any]] = defaultdict(list)
    for plugin in plugins:
        for key, value in plugin.contributions.items():
            if key not in declarations:
                raise ExtensionError(
                    f"Plugin '{plugin.id}' contributes to undeclared extension point '{key}'"
                )
            contributions[key].append(value)

    aggregated = []
    for key, (extension, owner) in declarations.items():
        logger.debug(
            "Aggregating %d contribution(s) to '%s' with %s",
            len(contributions[key]),
            key,
            extension.handler.value,
        )
        aggregated.append(
            BeanDefinition(key, aggregate(extension, contributions[key]), owner)
        )

    return definition_set.with_definitions(aggregated)


def aggregate(extension: ExtensionDecl, contributions: Sequence[Any]) -> BeanSpec:
    """Build the bean definition for one extension point.

    Args:
        extension: The extension point declaration.
        contributions: The contributed values, in plugin list order.

    Returns:
        A definition which, once resolved, yields the aggregated value.
    """
    if extension.handler is AggregationPolicy.COLLECT_LAST:
        if not contributions:
            return Literal(extension.default, doc=_describe(extension))
        if isinstance(contributions[-1], (list, tuple)):
            return FactoryCall(
                _collect,
                tuple(as_argument(item) for item in contributions[-1]),
                doc=_describe(extension),
            )
        last = as_argument(contributions[-1])
        if isinstance(last, Val):
            return Literal(last.value, doc=_describe(extension))
        return FactoryCall(_identity, (last,), doc=_describe(extension))

    items = [item for contribution in contributions for item in _flatten(contribution)]

    if extension.handler is AggregationPolicy.COLLECT_DATA:
        return Literal(
            [item.value if isinstance(item, Val) else item for item in items],
            doc=_describe(extension),
        )

    return FactoryCall(
        _collect, tuple(as_argument(item) for item in items), doc=_describe(extension)
    )


def _flatten(contribution: Any) -> list[Any]:
    if isinstance(contribution, (list, tuple)):
        return list(contribution)
    return [contribution]


def _collect(*items: Any) -> list[Any]:
    return list(items)


def _identity(value: Any) -> Any:
    return value


def _describe(extension: ExtensionDecl) -> str:
    return f"Extension point aggregated with {extension.handler.value}"
