"""Domain models used throughout the framework.

Bean definitions form a closed family of frozen dataclasses. Whether an argument
is a reference to another bean or a plain value is decided when the definition
is authored, never when it is resolved.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Union

__all__ = [
    "Key",
    "ORIG",
    "Ref",
    "Val",
    "Argument",
    "BeanSpec",
    "Literal",
    "FactoryCall",
    "PartialApplication",
    "FunctionReference",
    "InnerBean",
    "Constructed",
    "RedefSpec",
    "AggregationPolicy",
    "ExtensionDecl",
    "MaterialisedBean",
    "KeyLike",
    "ref",
    "val",
    "inner",
    "literal",
    "call",
    "partial",
    "function_ref",
    "constructed",
    "as_argument",
]


@dataclass(frozen=True, order=True)
class Key:
    """A qualified bean key, written ``namespace/name``.

    Attributes:
        namespace: The owning namespace; by convention the id of the plugin that
            defines the key.
        name: The name of the bean within its namespace.
    """

    namespace: str
    name: str

    @staticmethod
    def parse(text: "KeyLike", default_namespace: Optional[str] = None) -> "Key":
        """Parse ``ns/name`` text into a Key.

        Args:
            text: The key text, or a Key which is returned unchanged.
            default_namespace: Namespace used to qualify a bare ``name``.

        Returns:
            The parsed Key.

        Raises:
            ValueError: If the text is empty, or bare without a default namespace.

        Example:
            >>> Key.parse("todo.domain/add-task")   # Key("todo.domain", "add-task")
            >>> Key.parse("add-task", "todo.domain")  # Key("todo.domain", "add-task")
            >>> Key.parse(":orig")                   # ORIG
        """
        if isinstance(text, Key):
            return text
        if not isinstance(text, str) or not text:
            raise ValueError(f"Invalid key: {text!r}")
        if text.startswith(":") and "/" not in text:
            return Key("", text[1:])

        namespace, separator, name = text.rpartition("/")
        if separator and namespace and name:
            return Key(namespace, name)
        if separator:
            raise ValueError(f"Invalid key: {text!r}")
        if default_namespace is None:
            raise ValueError(f"Key {text!r} has no namespace")
        return Key(default_namespace, text)

    def __str__(self) -> str:
        if not self.namespace:
            return f":{self.name}"
        return f"{self.namespace}/{self.name}"


KeyLike = Union[Key, str]

ORIG = Key("", "orig")
"""Default placeholder standing for the preserved original in a bean redefinition."""


@dataclass(frozen=True)
class Ref:
    """An argument resolved to the container entry for ``key``."""

    key: Key


@dataclass(frozen=True)
class Val:
    """An argument passed to its function unchanged."""

    value: Any


class BeanSpec:
    """Base class of the closed family of bean definitions."""

    doc: Optional[str]

    def references(self) -> Iterator[Key]:
        """Yield every key this definition depends on, including nested beans."""
        return iter(())

    def map_arguments(self, visit: Callable[["Argument"], "Argument"]) -> "BeanSpec":
        """Return a copy with ``visit`` applied to every argument of this definition.

        Constructors and mutators are walked; nested inner beans are left for
        ``visit`` to descend into.
        """
        return self


@dataclass(frozen=True)
class Literal(BeanSpec):
    """A value injected as-is."""

    value: Any
    doc: Optional[str] = field(default=None, kw_only=True, compare=False)


def _argument_references(arguments: tuple["Argument", ...]) -> Iterator[Key]:
    for argument in arguments:
        if isinstance(argument, Ref):
            yield argument.key
        elif isinstance(argument, InnerBean):
            yield from argument.references()


@dataclass(frozen=True)
class FactoryCall(BeanSpec):
    """Invoke ``fn`` once, at build time, with the resolved arguments."""

    fn: Callable[..., Any]
    args: tuple["Argument", ...] = ()
    doc: Optional[str] = field(default=None, kw_only=True, compare=False)

    def references(self) -> Iterator[Key]:
        return _argument_references(self.args)

    def map_arguments(self, visit):
        return FactoryCall(self.fn, tuple(visit(a) for a in self.args), doc=self.doc)


@dataclass(frozen=True)
class PartialApplication(BeanSpec):
    """Bind the resolved arguments to ``fn`` without calling it.

    The realised bean is a callable which can be invoked any number of times
    with the remaining arguments.
    """

    fn: Callable[..., Any]
    args: tuple["Argument", ...] = ()
    doc: Optional[str] = field(default=None, kw_only=True, compare=False)

    def references(self) -> Iterator[Key]:
        return _argument_references(self.args)

    def map_arguments(self, visit):
        return PartialApplication(
            self.fn, tuple(visit(a) for a in self.args), doc=self.doc
        )


@dataclass(frozen=True)
class FunctionReference(BeanSpec):
    """Call the function of ``source`` named after the bean's own key.

    ``source`` is usually a module. Dashes in the key name map to underscores,
    so the bean ``todo.domain/add-task`` calls ``source.add_task``.
    """

    source: Any
    args: tuple["Argument", ...] = ()
    doc: Optional[str] = field(default=None, kw_only=True, compare=False)

    def references(self) -> Iterator[Key]:
        return _argument_references(self.args)

    def map_arguments(self, visit):
        return FunctionReference(
            self.source, tuple(visit(a) for a in self.args), doc=self.doc
        )

    def bind(self, key: Key) -> FactoryCall:
        """Look up the referenced function for ``key`` and return the equivalent call.

        Raises:
            AttributeError: If ``source`` has no function of that name.
        """
        function_name = key.name.replace("-", "_")
        fn = getattr(self.source, function_name)
        return FactoryCall(fn, self.args, doc=self.doc)


@dataclass(frozen=True)
class InnerBean(BeanSpec):
    """An anonymous bean definition nested at its point of use."""

    spec: BeanSpec
    doc: Optional[str] = field(default=None, kw_only=True, compare=False)

    def references(self) -> Iterator[Key]:
        return self.spec.references()

    def map_arguments(self, visit):
        return InnerBean(self.spec.map_arguments(visit), doc=self.doc)


@dataclass(frozen=True)
class Constructed(BeanSpec):
    """Build a value with ``constructor``, then thread it through ``mutators``.

    Each mutator is itself a bean definition whose realised value is a callable
    taking the running value and returning the next one.
    """

    constructor: BeanSpec
    mutators: tuple[BeanSpec, ...] = ()
    doc: Optional[str] = field(default=None, kw_only=True, compare=False)

    def references(self) -> Iterator[Key]:
        yield from self.constructor.references()
        for mutator in self.mutators:
            yield from mutator.references()

    def map_arguments(self, visit):
        return Constructed(
            self.constructor.map_arguments(visit),
            tuple(mutator.map_arguments(visit) for mutator in self.mutators),
            doc=self.doc,
        )


Argument = Union[Ref, Val, InnerBean]


@dataclass(frozen=True)
class RedefSpec:
    """Redefinition of an existing bean, keeping the original reachable.

    Attributes:
        spec: The new definition of the target bean.
        placeholder: The key which, wherever ``spec`` references it, is replaced by
            the key under which the original definition is preserved.
    """

    spec: BeanSpec
    placeholder: Key = ORIG


class AggregationPolicy(Enum):
    """How contributions to an extension point are combined."""

    COLLECT_ALL = "collect-all"
    COLLECT_LAST = "collect-last"
    COLLECT_DATA = "collect-data"

    @staticmethod
    def parse(value: Union["AggregationPolicy", str]) -> "AggregationPolicy":
        if isinstance(value, AggregationPolicy):
            return value
        return AggregationPolicy(value.replace("_", "-").lower())


@dataclass(frozen=True)
class ExtensionDecl:
    """An extension point other plugins can contribute to.

    Attributes:
        key: The key the aggregated contributions are bound to.
        handler: The aggregation policy.
        default: Value bound under ``COLLECT_LAST`` when nothing was contributed.
    """

    key: Key
    handler: AggregationPolicy = AggregationPolicy.COLLECT_ALL
    default: Any = None


@dataclass(frozen=True)
class MaterialisedBean:
    """
    Represents a realised container entry.

    Attributes:
        key: The bean key.
        value: The realised value.
        dependencies: Keys of the beans this one was built from.
        plugin_id: Id of the plugin that supplied the definition, if known.
        doc: Documentation declared on the definition.
    """

    key: Key
    value: Any
    dependencies: tuple[Key, ...]
    plugin_id: Optional[str]
    doc: Optional[str]


def ref(key: KeyLike) -> Ref:
    """Reference another bean by key, e.g. ``ref("todo.domain/add-task")``."""
    return Ref(Key.parse(key))


def val(value: Any) -> Val:
    return Val(value)


def inner(spec: BeanSpec, doc: Optional[str] = None) -> InnerBean:
    return InnerBean(spec, doc=doc)


def as_argument(argument: Any) -> Argument:
    """Wrap an authored argument: bean definitions become inner beans, other values plain."""
    if isinstance(argument, (Ref, Val, InnerBean)):
        return argument
    if isinstance(argument, BeanSpec):
        return InnerBean(argument)
    return Val(argument)


def literal(value: Any, doc: Optional[str] = None) -> Literal:
    return Literal(value, doc=doc)


def call(fn: Callable[..., Any], *args: Any, doc: Optional[str] = None) -> FactoryCall:
    """Define a bean as the result of ``fn(*args)``.

    Arguments that are :class:`Ref` resolve to other beans, bean definitions
    become inner beans, and anything else is passed as a plain value.
    """
    return FactoryCall(fn, tuple(as_argument(a) for a in args), doc=doc)


def partial(
    fn: Callable[..., Any], *args: Any, doc: Optional[str] = None
) -> PartialApplication:
    return PartialApplication(fn, tuple(as_argument(a) for a in args), doc=doc)


def function_ref(
    source: Any, *args: Any, doc: Optional[str] = None
) -> FunctionReference:
    return FunctionReference(source, tuple(as_argument(a) for a in args), doc=doc)


def constructed(
    constructor: BeanSpec, *mutators: BeanSpec, doc: Optional[str] = None
) -> Constructed:
    return Constructed(constructor, tuple(mutators), doc=doc)
