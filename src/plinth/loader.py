"""
Loading plugin descriptors from plain data and YAML files.

A descriptor is a mapping with the same fields as :func:`~plinth.plugin.make_plugin`.
Bean definitions are written as small mappings and functions are named as
``"module:attribute"`` text:

    id: todo.domain
    deps: [todo.persistence]
    doc: Task domain.
    beans:
      tasks: {value: []}
      add-task:
        partial: todo.tasks:add_task
        args: [{ref: todo.persistence/save-fn}]
    extensions:
      - {key: routes, handler: collect-all}
    contributions:
      todo.app/pages: [{ref: home}]

The recognised bean forms are ``value``, ``call``, ``partial``, ``function-of``
(a module whose function named after the bean is called), ``inner`` and
``constructor`` with optional ``mutators``. Each may carry a ``doc``. Arguments
are ``{ref: key}``, ``{inner: spec}`` or any other value, passed unchanged.
"""

import importlib
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

import yaml

from plinth.domain import (
    Argument,
    BeanSpec,
    Constructed,
    FactoryCall,
    FunctionReference,
    InnerBean,
    Key,
    Literal,
    PartialApplication,
    Ref,
    RedefSpec,
    Val,
)
from plinth.errors import PluginDefinitionError
from plinth.plugin import CONTRIBUTED_BEANS, CONTRIBUTED_REDEFS, Plugin, make_plugin

__all__ = [
    "load_plugin",
    "load_plugins",
    "load_plugins_file",
    "parse_bean_spec",
    "parse_argument",
    "resolve_object",
]

_PLUGIN_FIELDS = {"id", "deps", "doc", "beans", "extensions", "contributions", "bean-redefs"}
_SPEC_FORMS = ("value", "call", "partial", "function-of", "inner", "constructor")


def load_plugin(data: Mapping[str, Any]) -> Plugin:
    """Build a :class:`Plugin` from a descriptor mapping.

    Raises:
        PluginDefinitionError: If the descriptor is malformed or names a function
            that cannot be imported.
    """
    if not isinstance(data, Mapping):
        raise PluginDefinitionError(f"Plugin descriptor must be a mapping, got {data!r}")

    fields = {str(k).replace("_", "-"): v for k, v in data.items()}
    unknown = fields.keys() - _PLUGIN_FIELDS
    if unknown:
        raise PluginDefinitionError(f"Unknown plugin descriptor fields {sorted(unknown)}")

    namespace = fields.get("id")
    contributions = dict(fields.get("contributions") or {})
    contributed_beans = contributions.pop(CONTRIBUTED_BEANS, None)
    contributed_redefs = contributions.pop(CONTRIBUTED_REDEFS, None)

    parsed_contributions: dict[str, Any] = {
        key: _parse_contribution(value, namespace) for key, value in contributions.items()
    }
    if contributed_beans:
        parsed_contributions[CONTRIBUTED_BEANS] = _parse_beans(contributed_beans, namespace)
    if contributed_redefs:
        parsed_contributions[CONTRIBUTED_REDEFS] = _parse_redefs(contributed_redefs, namespace)

    return make_plugin(
        id=namespace,
        deps=fields.get("deps") or (),
        beans=_parse_beans(fields.get("beans") or {}, namespace),
        extensions=fields.get("extensions") or (),
        contributions=parsed_contributions,
        bean_redefs=_parse_redefs(fields.get("bean-redefs") or {}, namespace),
        doc=fields.get("doc"),
    )


def load_plugins(documents: Iterable[Mapping[str, Any]]) -> list[Plugin]:
    return [load_plugin(document) for document in documents]


def load_plugins_file(path: Union[str, Path]) -> list[Plugin]:
    """Load plugins from a YAML file.

    The file may hold a list of descriptors, a mapping with a ``plugins`` list,
    or one descriptor per YAML document.

    Raises:
        PluginDefinitionError: If the file cannot be read, parsed or understood.
    """
    path = Path(path)
    try:
        documents = [
            document
            for document in yaml.safe_load_all(path.read_text(encoding="utf-8"))
            if document is not None
        ]
    except (OSError, yaml.YAMLError) as e:
        raise PluginDefinitionError(f"Cannot load plugins from {path}: {e}") from e

    if len(documents) == 1:
        document = documents[0]
        if isinstance(document, list):
            documents = document
        elif isinstance(document, Mapping) and "plugins" in document:
            documents = document["plugins"] or []

    return load_plugins(documents)


def parse_bean_spec(data: Any, namespace: Optional[str] = None) -> BeanSpec:
    """Parse one bean definition from its mapping form.

    Bare keys in ``ref`` arguments are qualified with ``namespace``.

    Example:
        >>> parse_bean_spec({"call": "operator:add", "args": [{"ref": "A/x"}, 1]})
        >>> # FactoryCall(operator.add, (Ref(Key("A", "x")), Val(1)))
    """
    if isinstance(data, BeanSpec):
        return data
    if not isinstance(data, Mapping):
        raise PluginDefinitionError(f"Bean definition must be a mapping, got {data!r}")

    forms = [form for form in _SPEC_FORMS if form in data]
    if len(forms) != 1:
        raise PluginDefinitionError(
            f"Bean definition must have exactly one of {list(_SPEC_FORMS)}: {dict(data)!r}"
        )

    form = forms[0]
    doc = data.get("doc")
    args = tuple(parse_argument(arg, namespace) for arg in data.get("args") or ())

    if form == "value":
        return Literal(data["value"], doc=doc)
    if form == "call":
        return FactoryCall(_resolve_callable(data["call"]), args, doc=doc)
    if form == "partial":
        return PartialApplication(_resolve_callable(data["partial"]), args, doc=doc)
    if form == "function-of":
        return FunctionReference(resolve_object(data["function-of"]), args, doc=doc)
    if form == "inner":
        return InnerBean(parse_bean_spec(data["inner"], namespace), doc=doc)

    return Constructed(
        parse_bean_spec(data["constructor"], namespace),
        tuple(parse_bean_spec(mutator, namespace) for mutator in data.get("mutators") or ()),
        doc=doc,
    )


def parse_argument(data: Any, namespace: Optional[str] = None) -> Argument:
    """Parse an argument: ``{ref: key}``, ``{inner: spec}`` or a plain value."""
    if isinstance(data, (Ref, Val, InnerBean)):
        return data
    if isinstance(data, Mapping):
        if data.keys() == {"ref"}:
            try:
                return Ref(Key.parse(data["ref"], namespace))
            except ValueError as e:
                raise PluginDefinitionError(str(e)) from e
        if "inner" in data and data.keys() <= {"inner", "doc"}:
            return InnerBean(parse_bean_spec(data["inner"], namespace), doc=data.get("doc"))
    return Val(data)


def resolve_object(name: str) -> Any:
    """Import ``"package.module"`` or ``"package.module:attribute.path"``.

    Raises:
        PluginDefinitionError: If the module or attribute does not exist.
    """
    if not isinstance(name, str) or not name:
        raise PluginDefinitionError(f"Invalid object name: {name!r}")

    module_name, _, attribute_path = name.partition(":")
    try:
        target = importlib.import_module(module_name)
        for attribute in filter(None, attribute_path.split(".")):
            target = getattr(target, attribute)
    except (ImportError, AttributeError) as e:
        raise PluginDefinitionError(f"Cannot resolve '{name}': {e}") from e
    return target


def _resolve_callable(name: str) -> Any:
    target = resolve_object(name)
    if not callable(target):
        raise PluginDefinitionError(f"'{name}' is not callable")
    return target


def _parse_beans(beans: Mapping[str, Any], namespace) -> dict[str, BeanSpec]:
    return {key: parse_bean_spec(spec, namespace) for key, spec in beans.items()}


def _parse_redefs(redefs: Mapping[str, Any], namespace) -> dict[str, Any]:
    parsed = {}
    for key, redef in redefs.items():
        if isinstance(redef, Mapping) and "spec" in redef:
            parsed[key] = {
                "spec": parse_bean_spec(redef["spec"], namespace),
                "placeholder": redef.get("placeholder", ":orig"),
            }
        elif isinstance(redef, RedefSpec):
            parsed[key] = redef
        else:
            parsed[key] = parse_bean_spec(redef, namespace)
    return parsed


def _parse_contribution(value: Any, namespace) -> Any:
    if isinstance(value, list):
        return [parse_argument(item, namespace) for item in value]
    return parse_argument(value, namespace)
