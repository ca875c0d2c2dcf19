"""The canonical plugin record and its normaliser.

A plugin is authored as loosely-typed data (strings for keys, plugin objects or
ids for dependencies, shorthand redefinitions) and normalised once, by
:func:`make_plugin`, into an immutable :class:`Plugin` that every build treats as
read-only input.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Union

from plinth.domain import (
    AggregationPolicy,
    BeanSpec,
    ExtensionDecl,
    Key,
    KeyLike,
    RedefSpec,
)
from plinth.errors import PluginDefinitionError

__all__ = ["Plugin", "make_plugin", "CONTRIBUTED_BEANS", "CONTRIBUTED_REDEFS"]


CONTRIBUTED_BEANS = "beans"
CONTRIBUTED_REDEFS = "bean-redefs"

_EMPTY: Mapping = MappingProxyType({})


@dataclass(frozen=True, eq=False)
class Plugin:
    """A named, declarative unit of beans, extensions and contributions.

    Attributes:
        id: The plugin id, which is also the namespace of the keys it owns.
        deps: Ids of the plugins whose beans and extensions this plugin may use.
        beans: Bean definitions keyed by qualified key.
        extensions: Extension points declared by this plugin.
        contributions: Values contributed to extension points, keyed by extension key.
        contribution_beans: Bean definitions supplied through ``contributions``.
        bean_redefs: Redefinitions of beans declared at top level.
        contribution_redefs: Redefinitions supplied through ``contributions``; these
            take precedence over ``bean_redefs`` for the same key.
        doc: Optional description of the plugin.

    Example:
        >>> make_plugin(
        ...     id="todo.disk",
        ...     deps=["todo.persistence"],
        ...     beans={"path": literal("todo.json")},
        ... )
    """

    id: str
    deps: tuple[str, ...] = ()
    beans: Mapping[Key, BeanSpec] = field(default_factory=lambda: _EMPTY)
    extensions: tuple[ExtensionDecl, ...] = ()
    contributions: Mapping[Key, Any] = field(default_factory=lambda: _EMPTY)
    contribution_beans: Mapping[Key, BeanSpec] = field(default_factory=lambda: _EMPTY)
    bean_redefs: Mapping[Key, RedefSpec] = field(default_factory=lambda: _EMPTY)
    contribution_redefs: Mapping[Key, RedefSpec] = field(default_factory=lambda: _EMPTY)
    doc: Optional[str] = field(default=None, compare=False)

    @property
    def namespace(self) -> str:
        return self.id

    def all_beans(self) -> dict[Key, BeanSpec]:
        """Top-level beans followed by contributed beans, the latter winning."""
        return {**self.beans, **self.contribution_beans}

    def all_redefs(self) -> dict[Key, RedefSpec]:
        """Redefinitions to apply, with the ``contributions`` form taking precedence."""
        return {**self.bean_redefs, **self.contribution_redefs}

    def declared_keys(self) -> set[Key]:
        """Keys this plugin defines, as beans or as extension points."""
        return (
            set(self.beans)
            | set(self.contribution_beans)
            | {extension.key for extension in self.extensions}
        )

    def __repr__(self) -> str:
        return f"Plugin({self.id!r})"


def make_plugin(
    id: Optional[str] = None,
    deps: Iterable[Union[str, Plugin]] = (),
    beans: Optional[Mapping[KeyLike, BeanSpec]] = None,
    extensions: Iterable[Union[ExtensionDecl, Mapping[str, Any]]] = (),
    contributions: Optional[Mapping[KeyLike, Any]] = None,
    bean_redefs: Optional[Mapping[KeyLike, Any]] = None,
    doc: Optional[str] = None,
) -> Plugin:
    """Normalise an authored plugin descriptor into a :class:`Plugin`.

    Keys may be given as ``"ns/name"`` strings or bare names, which are qualified
    with the plugin id. When ``id`` is omitted it is inferred from the single
    namespace shared by the plugin's beans and extensions.

    Args:
        id: The plugin id.
        deps: Plugins, or plugin ids, this plugin depends on.
        beans: Bean definitions.
        extensions: :class:`ExtensionDecl` objects or ``{key, handler, default}`` mappings.
        contributions: Extension contributions; the special entries ``"beans"`` and
            ``"bean-redefs"`` supply additional beans and redefinitions.
        bean_redefs: Redefinitions, each a :class:`RedefSpec`, a bare bean definition
            or a ``{spec, placeholder}`` mapping.
        doc: Optional description.

    Returns:
        The normalised plugin.

    Raises:
        PluginDefinitionError: If the descriptor is malformed or its id cannot be inferred.
    """
    contributions = dict(contributions or {})
    contributed_beans = contributions.pop(CONTRIBUTED_BEANS, None) or {}
    contributed_redefs = {
        **(contributions.pop("bean_redefs", None) or {}),
        **(contributions.pop(CONTRIBUTED_REDEFS, None) or {}),
    }

    plugin_id = id or _infer_id(beans or {}, contributed_beans, extensions)

    def parse_key(text: KeyLike) -> Key:
        try:
            return Key.parse(text, plugin_id)
        except ValueError as e:
            raise PluginDefinitionError(f"Plugin '{plugin_id}': {e}") from e

    return Plugin(
        id=plugin_id,
        deps=tuple(_dependency_id(dep) for dep in deps),
        beans=_parse_beans(beans or {}, parse_key, plugin_id),
        extensions=tuple(_parse_extension(e, parse_key) for e in extensions),
        contributions=MappingProxyType(
            {parse_key(key): value for key, value in contributions.items()}
        ),
        contribution_beans=_parse_beans(contributed_beans, parse_key, plugin_id),
        bean_redefs=_parse_redefs(bean_redefs or {}, parse_key, plugin_id),
        contribution_redefs=_parse_redefs(contributed_redefs, parse_key, plugin_id),
        doc=doc,
    )


def _dependency_id(dep: Union[str, Plugin]) -> str:
    if isinstance(dep, Plugin):
        return dep.id
    if isinstance(dep, str) and dep:
        return dep
    raise PluginDefinitionError(f"Invalid plugin dependency: {dep!r}")


def _infer_id(beans, contributed_beans, extensions) -> str:
    """Derive a plugin id from the namespaces of the keys it declares.

    Raises:
        PluginDefinitionError: If the declared keys do not share exactly one namespace.
    """
    texts = list(beans) + list(contributed_beans)
    for extension in extensions:
        texts.append(
            extension.key if isinstance(extension, ExtensionDecl) else extension.get("key")
        )

    namespaces = set()
    for text in texts:
        try:
            namespaces.add(Key.parse(text).namespace)
        except ValueError:
            raise PluginDefinitionError(
                f"Plugin without an id declares unqualified key {text!r}"
            ) from None

    if len(namespaces) != 1:
        raise PluginDefinitionError(
            f"Cannot infer plugin id from key namespaces {sorted(namespaces)}; "
            "give the plugin an explicit id"
        )
    return next(iter(namespaces))


def _parse_beans(beans, parse_key, plugin_id) -> Mapping[Key, BeanSpec]:
    parsed = {}
    for key, spec in beans.items():
        if not isinstance(spec, BeanSpec):
            raise PluginDefinitionError(
                f"Plugin '{plugin_id}': bean '{key}' is not a bean definition: {spec!r}"
            )
        parsed[parse_key(key)] = spec
    return MappingProxyType(parsed)


def _parse_redefs(redefs, parse_key, plugin_id) -> Mapping[Key, RedefSpec]:
    parsed = {}
    for key, redef in redefs.items():
        if isinstance(redef, BeanSpec):
            redef = RedefSpec(redef)
        elif isinstance(redef, Mapping):
            redef = RedefSpec(redef.get("spec"), parse_key(redef.get("placeholder", ":orig")))
        if not isinstance(redef, RedefSpec) or not isinstance(redef.spec, BeanSpec):
            raise PluginDefinitionError(
                f"Plugin '{plugin_id}': redefinition of '{key}' is not a bean definition: {redef!r}"
            )
        parsed[parse_key(key)] = redef
    return MappingProxyType(parsed)


def _parse_extension(extension, parse_key) -> ExtensionDecl:
    if isinstance(extension, ExtensionDecl):
        return ExtensionDecl(
            parse_key(extension.key), extension.handler, extension.default
        )
    try:
        return ExtensionDecl(
            parse_key(extension["key"]),
            AggregationPolicy.parse(extension.get("handler", "collect-all")),
            extension.get("default"),
        )
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise PluginDefinitionError(f"Invalid extension declaration {extension!r}") from e
