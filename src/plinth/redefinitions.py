"""Decorator-style redefinition of beans.

A plugin redefines a bean by supplying a new definition that refers to a
placeholder (``:orig`` unless stated otherwise). The bean's current definition is
moved, unchanged, under a freshly synthesized key containing ``ORIG``, and every
reference to the placeholder in the new definition is rewritten to point at it.

Redefinitions are applied in plugin list order. Since each one captures whatever
the target is bound to at that moment, several plugins redefining the same bean
form a chain in which later plugins wrap earlier ones:

    >>> # p1 redefines a/x as call(wrap1, ref(ORIG)), then p2 as call(wrap2, ref(ORIG))
    >>> # a/x         -> wrap2(a/x-ORIG-2)
    >>> # a/x-ORIG-2  -> wrap1(a/x-ORIG-1)
    >>> # a/x-ORIG-1  -> the original definition
"""

import itertools
import logging
from typing import Sequence

from plinth.definition_set import BeanDefinition, DefinitionSet, bind_function_references
from plinth.domain import BeanSpec, InnerBean, Key, Ref
from plinth.plugin import Plugin

__all__ = ["ORIG_MARKER", "apply_redefinitions", "substitute_placeholder"]

logger = logging.getLogger(__name__)

ORIG_MARKER = "ORIG"


def apply_redefinitions(
    plugins: Sequence[Plugin], definition_set: DefinitionSet
) -> DefinitionSet:
    """Expand every bean redefinition of the given plugins.

    Args:
        plugins: Active plugins, in list order.
        definition_set: Definitions after extension aggregation.

    Returns:
        A new DefinitionSet in which each redefined key is bound to its new
        definition, each preserved original is bound under its own key, and
        ``originals`` lists the preserved keys per redefined key, oldest first.
    """
    definitions = dict(definition_set.definitions)
    originals = {key: list(keys) for key, keys in definition_set.originals.items()}
    counter = itertools.count(1)

    for plugin in plugins:
        for target, redef in plugin.all_redefs().items():
            current = definitions.get(target)
            if current is None:
                logger.warning(
                    "Bean redefinition of '%s' by plugin '%s' skipped: "
                    "no original definition.",
                    target,
                    plugin.id,
                )
                continue

            preserved = _original_key(target, counter, definitions)
            definitions[preserved] = BeanDefinition(
                preserved, current.spec, current.plugin_id
            )
            spec = substitute_placeholder(redef.spec, redef.placeholder, preserved)
            definitions[target] = BeanDefinition(
                target, bind_function_references(spec, target), plugin.id
            )
            originals.setdefault(target, []).append(preserved)
            logger.debug(
                "Bean '%s' redefined by plugin '%s', original kept as '%s'",
                target,
                plugin.id,
                preserved,
            )

    return DefinitionSet(
        definitions, {key: tuple(keys) for key, keys in originals.items()}
    )


def substitute_placeholder(spec: BeanSpec, placeholder: Key, replacement: Key) -> BeanSpec:
    """Rewrite every reference to ``placeholder`` in ``spec`` into one to ``replacement``.

    The rewrite reaches arguments of constructors, mutators and inner beans at
    any depth. Literal values are never inspected.
    """

    def visit(argument):
        if isinstance(argument, Ref) and argument.key == placeholder:
            return Ref(replacement)
        if isinstance(argument, InnerBean):
            return substitute_placeholder(argument, placeholder, replacement)
        return argument

    return spec.map_arguments(visit)


def _original_key(target: Key, counter, definitions) -> Key:
    while True:
        candidate = Key(target.namespace, f"{target.name}-{ORIG_MARKER}-{next(counter)}")
        if candidate not in definitions:
            return candidate
