import operator
import textwrap

import pytest

from plinth.builders import make_container
from plinth.domain import (
    ORIG,
    Constructed,
    FactoryCall,
    FunctionReference,
    InnerBean,
    Key,
    Literal,
    PartialApplication,
    Ref,
    Val,
)
from plinth.errors import PluginDefinitionError
from plinth.loader import (
    load_plugin,
    load_plugins,
    load_plugins_file,
    parse_argument,
    parse_bean_spec,
    resolve_object,
)

PLUGINS_YAML = """\
- id: maths
  doc: Arithmetic helpers.
  beans:
    one: {value: 1, doc: The number one.}
    two:
      call: operator:add
      args: [{ref: one}, 1]
    add: {function-of: operator, args: [{ref: two}, 3]}
  extensions:
    - {key: results, handler: collect-all}
- id: report
  deps: [maths]
  beans:
    sum:
      call: builtins:sum
      args: [{ref: maths/results}]
  contributions:
    maths/results: [{ref: maths/two}, {ref: maths/add}, 10]
- id: doubling
  deps: [maths]
  bean-redefs:
    maths/two:
      call: operator:mul
      args: [{ref: ":orig"}, 2]
"""


@pytest.fixture
def plugins_file(tmp_path):
    path = tmp_path / "plugins.yaml"
    path.write_text(PLUGINS_YAML)
    return path


def test_yaml_descriptors_build_working_container(plugins_file):
    plugins = load_plugins_file(plugins_file)

    container = make_container(plugins)

    assert [p.id for p in plugins] == ["maths", "report", "doubling"]
    assert container["maths/two"] == 4
    assert container["maths/add"] == 7
    assert container["maths/results"] == [4, 7, 10]
    assert container["report/sum"] == 21
    assert container.describe("maths/one").doc == "The number one."
    assert plugins[0].doc == "Arithmetic helpers."


def test_file_may_hold_plugins_mapping(tmp_path):
    path = tmp_path / "plugins.yaml"
    path.write_text(
        textwrap.dedent(
            """\
            plugins:
              - id: A
                beans: {x: {value: 1}}
            """
        )
    )

    assert [p.id for p in load_plugins_file(path)] == ["A"]


def test_file_may_hold_one_plugin_per_document(tmp_path):
    path = tmp_path / "plugins.yaml"
    path.write_text("id: A\n---\nid: B\ndeps: [A]\n")

    assert [p.deps for p in load_plugins_file(path)] == [(), ("A",)]


def test_unreadable_file_raises(tmp_path):
    with pytest.raises(PluginDefinitionError, match="Cannot load plugins"):
        load_plugins_file(tmp_path / "missing.yaml")


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "plugins.yaml"
    path.write_text("- id: [unterminated\n")

    with pytest.raises(PluginDefinitionError, match="Cannot load plugins"):
        load_plugins_file(path)


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"value": [1, 2]}, Literal([1, 2])),
        ({"call": "operator:add", "args": [1, 2]}, FactoryCall(operator.add, (Val(1), Val(2)))),
        ({"partial": "operator:add", "args": [1]}, PartialApplication(operator.add, (Val(1),))),
        ({"function-of": "operator"}, FunctionReference(operator)),
        ({"inner": {"value": 1}}, InnerBean(Literal(1))),
        (
            {"constructor": {"call": "builtins:list"}, "mutators": [{"partial": "operator:add"}]},
            Constructed(FactoryCall(list), (PartialApplication(operator.add),)),
        ),
    ],
)
def test_bean_forms(data, expected):
    assert parse_bean_spec(data) == expected


def test_mutators_from_descriptor():
    plugin = load_plugin(
        {
            "id": "A",
            "beans": {
                "items": {
                    "constructor": {"call": "builtins:list"},
                    "mutators": [
                        {"partial": "operator:add", "args": [[1]]},
                        {"partial": "operator:add", "args": [[2]]},
                    ],
                }
            },
        }
    )

    assert make_container([plugin])["A/items"] == [2, 1]


def test_arguments():
    assert parse_argument({"ref": "x"}, "A") == Ref(Key("A", "x"))
    assert parse_argument({"ref": ":orig"}, "A") == Ref(ORIG)
    assert parse_argument({"inner": {"value": 1}}) == InnerBean(Literal(1))
    assert parse_argument({"ref": "A/x", "other": 1}) == Val({"ref": "A/x", "other": 1})
    assert parse_argument("text") == Val("text")


def test_bean_definition_needs_exactly_one_form():
    with pytest.raises(PluginDefinitionError, match="exactly one of"):
        parse_bean_spec({"value": 1, "call": "operator:add"})

    with pytest.raises(PluginDefinitionError, match="must be a mapping"):
        parse_bean_spec(1)


def test_unknown_descriptor_field_raises():
    with pytest.raises(PluginDefinitionError, match=r"Unknown plugin descriptor fields \['bean'\]"):
        load_plugin({"id": "A", "bean": {}})


def test_redefinition_with_custom_placeholder():
    a = load_plugin({"id": "A", "beans": {"x": {"value": "x"}}})
    b = load_plugin(
        {
            "id": "B",
            "deps": ["A"],
            "bean_redefs": {
                "A/x": {
                    "spec": {"call": "builtins:str.upper", "args": [{"ref": "prev"}]},
                    "placeholder": "prev",
                }
            },
        }
    )

    assert make_container([a, b])["A/x"] == "X"


def test_collect_last_list_contribution_from_descriptors():
    plugins = load_plugins(
        [
            {"id": "ext", "extensions": [{"key": "items", "handler": "collect-last"}]},
            {"id": "P1", "deps": ["ext"], "contributions": {"ext/items": ["a", "b"]}},
        ]
    )

    assert make_container(plugins)["ext/items"] == ["a", "b"]


def test_resolve_object():
    assert resolve_object("operator") is operator
    assert resolve_object("operator:add") is operator.add
    assert resolve_object("builtins:str.upper") is str.upper


@pytest.mark.parametrize("name", ["no_such_module_here", "operator:no_such_function", ""])
def test_unresolvable_object_raises(name):
    with pytest.raises(PluginDefinitionError):
        resolve_object(name)


def test_non_callable_raises():
    with pytest.raises(PluginDefinitionError, match="is not callable"):
        parse_bean_spec({"call": "operator:__name__"})
