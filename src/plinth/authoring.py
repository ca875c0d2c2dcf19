"""Decorator-based authoring of plugins.

A :class:`PluginBuilder` collects bean definitions from decorated factory
functions. The beans a factory needs are read from its signature: a parameter
annotated ``Annotated[T, "ns/name"]`` receives that bean, and any other parameter
receives the bean of the same name in the plugin's own namespace.
"""

import inspect
from typing import (
    Annotated,
    Any,
    Callable,
    Iterable,
    Optional,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from plinth.domain import (
    AggregationPolicy,
    BeanSpec,
    ExtensionDecl,
    FactoryCall,
    Key,
    KeyLike,
    ORIG,
    PartialApplication,
    Ref,
    RedefSpec,
    literal,
)
from plinth.errors import PluginDefinitionError
from plinth.plugin import Plugin, make_plugin

__all__ = ["PluginBuilder", "inferred_name"]


def inferred_name(target: Any) -> str:
    """Derive a bean name from a class or function name.

    A ``make_`` prefix is removed and underscores become dashes.

    Example:
        >>> inferred_name(make_add_task)  # Returns "add-task"
        >>> inferred_name(TaskStore)      # Returns "TaskStore"
    """
    if inspect.isclass(target):
        return target.__name__

    name = target.__name__
    if name.startswith("make_"):
        name = name[5:]
    return name.replace("_", "-")


class PluginBuilder:
    """Collects the beans, extensions and contributions of one plugin.

    Example:
        >>> app = PluginBuilder("todo.app", deps=["todo.domain"])
        >>>
        >>> @app.bean()
        >>> def make_title() -> str:
        ...     return "Tasks"
        >>>
        >>> @app.bean(partial=True)
        >>> def render(add_task: Annotated[Callable, "todo.domain/add-task"], text):
        ...     return add_task(text)
        >>>
        >>> plugin = app.build()
    """

    def __init__(
        self, id: str, deps: Iterable[Union[str, Plugin]] = (), doc: Optional[str] = None
    ):
        self.id = id
        self._deps = list(deps)
        self._doc = doc
        self._beans: dict[Key, BeanSpec] = {}
        self._redefs: dict[Key, RedefSpec] = {}
        self._extensions: list[ExtensionDecl] = []
        self._contributions: dict[Key, list[Any]] = {}

    def bean(
        self, name: Optional[str] = None, doc: Optional[str] = None, partial: bool = False
    ) -> Callable:
        """Decorator registering a function (or class) as a bean factory.

        Args:
            name: Bean name; defaults to the function name with any ``make_``
                prefix removed and underscores replaced by dashes.
            doc: Bean documentation; defaults to the function's docstring.
            partial: When True the bean is the function with its leading
                annotated parameters bound, rather than the result of calling it.

        Returns:
            A decorator which registers the function and returns it unchanged.
        """

        def decorator(func):
            key = Key.parse(name or inferred_name(func), self.id)
            self._beans[key] = self._make_spec(func, partial, doc)
            return func

        return decorator

    def redefines(
        self,
        target: KeyLike,
        doc: Optional[str] = None,
        partial: bool = False,
        placeholder: KeyLike = ORIG,
    ) -> Callable:
        """Decorator registering a function as the redefinition of ``target``.

        A parameter annotated with the placeholder, ``Annotated[T, ":orig"]`` by
        default, receives the preserved original definition.

        Example:
            >>> @storage.redefines("todo.domain/add-task", partial=True)
            >>> def logged_add(orig: Annotated[Callable, ":orig"], text):
            ...     print("adding", text)
            ...     return orig(text)
        """

        def decorator(func):
            key = Key.parse(target, self.id)
            self._redefs[key] = RedefSpec(
                self._make_spec(func, partial, doc), Key.parse(placeholder)
            )
            return func

        return decorator

    def literal(self, name: str, value: Any, doc: Optional[str] = None) -> None:
        self._beans[Key.parse(name, self.id)] = literal(value, doc)

    def define(self, name: str, spec: BeanSpec) -> None:
        """Register an explicitly built bean definition under ``name``."""
        self._beans[Key.parse(name, self.id)] = spec

    def extension(
        self,
        name: str,
        handler: Union[AggregationPolicy, str] = AggregationPolicy.COLLECT_ALL,
        default: Any = None,
    ) -> Key:
        """Declare an extension point and return its key."""
        key = Key.parse(name, self.id)
        self._extensions.append(
            ExtensionDecl(key, AggregationPolicy.parse(handler), default)
        )
        return key

    def contribute(self, extension: KeyLike, *values: Any) -> None:
        """Contribute values to an extension point, possibly of another plugin."""
        key = Key.parse(extension, self.id)
        self._contributions.setdefault(key, []).extend(values)

    def build(self) -> Plugin:
        """Return the :class:`Plugin` assembled so far."""
        return make_plugin(
            id=self.id,
            deps=self._deps,
            beans=self._beans,
            extensions=self._extensions,
            contributions={
                key: values[0] if len(values) == 1 else list(values)
                for key, values in self._contributions.items()
            },
            bean_redefs=self._redefs,
            doc=self._doc,
        )

    def _make_spec(self, func: Callable, partial: bool, doc: Optional[str]) -> BeanSpec:
        if not callable(func):
            raise PluginDefinitionError(f"{func!r} is not a class or function")

        args = tuple(Ref(key) for key in _injected_keys(func, self.id, partial))
        doc = doc or inspect.getdoc(func)
        if partial:
            return PartialApplication(func, args, doc=doc)
        return FactoryCall(func, args, doc=doc)


def _injected_keys(func: Callable, namespace: str, partial: bool) -> list[Key]:
    """Work out the keys of the beans passed positionally to ``func``.

    Injection stops at the first parameter that cannot be injected: for partial
    beans that is the first parameter without a key annotation, otherwise the
    first one with a default value and no key annotation.

    Example:
        >>> def service(db, cache: Annotated[Cache, "infra/redis"], retries=3): ...
        >>> _injected_keys(service, "app", partial=False)
        >>> # [Key("app", "db"), Key("infra", "redis")]
    """
    try:
        signature = inspect.signature(func)
        hints = get_type_hints(
            func.__init__ if inspect.isclass(func) else func, include_extras=True
        )
    except (NameError, TypeError, ValueError) as e:
        raise PluginDefinitionError(f"Cannot inspect the signature of {func!r}: {e}") from e

    keys = []
    for name, parameter in signature.parameters.items():
        if parameter.kind not in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            break

        key = _annotated_key(hints.get(name), namespace)
        if key is None:
            if partial or parameter.default is not inspect.Parameter.empty:
                break
            key = Key(namespace, name.replace("_", "-"))
        keys.append(key)

    return keys


def _annotated_key(annotation, namespace: str) -> Optional[Key]:
    if annotation is None or get_origin(annotation) is not Annotated:
        return None

    _, *metadata = get_args(annotation)
    text = next((m for m in metadata if isinstance(m, (str, Key))), None)
    if text is None:
        return None
    try:
        return Key.parse(text, namespace)
    except ValueError as e:
        raise PluginDefinitionError(str(e)) from e
