"""Validation of inter-plugin dependencies.

Before anything is resolved, every key a plugin uses from another namespace must
be owned by a plugin that it declares as a dependency, directly or transitively.
A missing declaration aborts the build with a :class:`ValidationError` whose
message names the plugin, the key and, where known, the plugin to depend on.
"""

from typing import Any, Iterator, Mapping, Optional, Sequence

from plinth.domain import BeanSpec, Key, Ref
from plinth.errors import ValidationError
from plinth.plugin import Plugin

__all__ = [
    "validate_plugins",
    "plugins_by_unique_id",
    "transitive_dependencies",
    "contribution_references",
]


def validate_plugins(plugins: Sequence[Plugin]) -> None:
    """Check that the plugins declare every dependency they rely on.

    Validates that:
      - Each plugin has a unique id.
      - Each declared dependency names a plugin in the list.
      - Each foreign key a plugin references (in its bean definitions,
        redefinitions or contributions) is owned by one of its transitive
        dependencies, unless the plugin defines that key itself.
      - Each bean a plugin defines in another plugin's namespace, overriding
        that plugin's bean, is backed by a dependency on it.

    Raises:
        ValidationError: On the first violation found, in plugin list order.
    """
    by_id = plugins_by_unique_id(plugins)
    _validate_declared_dependencies(plugins, by_id)
    owners = _owners_by_key(plugins)

    for plugin in plugins:
        allowed = transitive_dependencies(plugin.id, by_id)
        declared = plugin.declared_keys()

        for key, must_exist in _referenced_foreign_keys(plugin, owners):
            if key in declared:
                continue
            candidates = [owner for owner in owners.get(key, []) if owner != plugin.id]
            if not candidates and not must_exist:
                continue
            if not any(candidate in allowed for candidate in candidates):
                raise _missing_dependency(plugin, key, _preferred_owner(key, candidates))

        for key in plugin.all_beans():
            if key.namespace == plugin.namespace:
                continue
            namespace_owner = by_id.get(key.namespace)
            if (
                namespace_owner is not None
                and key in namespace_owner.declared_keys()
                and namespace_owner.id not in allowed
            ):
                raise _missing_dependency(plugin, key, namespace_owner.id)


def plugins_by_unique_id(plugins: Sequence[Plugin]) -> dict[str, Plugin]:
    by_id = {}
    for plugin in plugins:
        if plugin.id in by_id:
            raise ValidationError(
                f"Duplicate plugin id '{plugin.id}' "
                f"in plugins {[p.id for p in plugins]}",
                plugin_id=plugin.id,
            )
        by_id[plugin.id] = plugin
    return by_id


def transitive_dependencies(plugin_id: str, by_id: Mapping[str, Plugin]) -> set[str]:
    """Ids of every plugin reachable from ``plugin_id`` through ``deps``.

    The plugin itself is only included if it is part of a dependency cycle.
    """
    reachable: set[str] = set()
    pending = list(by_id[plugin_id].deps)
    while pending:
        dependency = pending.pop()
        if dependency in reachable or dependency not in by_id:
            continue
        reachable.add(dependency)
        pending.extend(by_id[dependency].deps)
    return reachable


def _validate_declared_dependencies(plugins, by_id) -> None:
    for plugin in plugins:
        for dependency in plugin.deps:
            if dependency not in by_id:
                raise ValidationError(
                    f"Plugin '{plugin.id}' depends on unknown plugin '{dependency}'.",
                    plugin_id=plugin.id,
                )


def _owners_by_key(plugins) -> dict[Key, list[str]]:
    owners: dict[Key, list[str]] = {}
    for plugin in plugins:
        for key in plugin.declared_keys():
            owners.setdefault(key, []).append(plugin.id)
    return owners


def _preferred_owner(key: Key, candidates: list[str]) -> Optional[str]:
    if key.namespace in candidates:
        return key.namespace
    return candidates[0] if candidates else None


def _missing_dependency(plugin: Plugin, key: Key, owner: Optional[str]) -> ValidationError:
    message = (
        f"Plugin '{plugin.id}' uses key '{key}' "
        "but does not depend on a plugin defining it."
    )
    if owner is not None:
        message += f" Add '{owner}' to its deps."
    return ValidationError(message, plugin_id=plugin.id, key=key, owner=owner)


def _referenced_foreign_keys(
    plugin: Plugin, owners: Mapping[Key, list[str]]
) -> Iterator[tuple[Key, bool]]:
    """Yield each foreign key the plugin uses, and whether it must be defined.

    Redefinition targets and extension keys may legitimately be undefined; the
    redefinition is then skipped and the contribution rejected later.
    The new definition of a target nothing defines is skipped along with it.
    """

    def foreign(keys, must_exist=True):
        return (
            (key, must_exist) for key in keys if key.namespace != plugin.namespace
        )

    for spec in plugin.all_beans().values():
        yield from foreign(spec.references())

    for target, redef in plugin.all_redefs().items():
        yield from foreign([target], must_exist=False)
        if target not in owners:
            continue
        yield from foreign(
            key for key in redef.spec.references() if key != redef.placeholder
        )

    for extension_key, value in plugin.contributions.items():
        yield from foreign([extension_key], must_exist=False)
        yield from foreign(contribution_references(value))


def contribution_references(value: Any) -> Iterator[Key]:
    """Keys referenced by a contributed value, looking one sequence level deep."""
    items = value if isinstance(value, (list, tuple)) else [value]
    for item in items:
        if isinstance(item, Ref):
            yield item.key
        elif isinstance(item, BeanSpec):
            yield from item.references()
