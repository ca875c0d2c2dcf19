import pytest

from plinth.domain import (
    ORIG,
    AggregationPolicy,
    ExtensionDecl,
    Key,
    RedefSpec,
    call,
    literal,
    ref,
)
from plinth.errors import PluginDefinitionError
from plinth.plugin import Plugin, make_plugin


def test_bare_keys_are_qualified_with_plugin_id():
    plugin = make_plugin(id="A", beans={"x": literal(1), "B/y": literal(2)})

    assert set(plugin.beans) == {Key("A", "x"), Key("B", "y")}


def test_dependencies_may_be_plugins_or_ids():
    a = make_plugin(id="A")

    plugin = make_plugin(id="B", deps=[a, "C"])

    assert plugin.deps == ("A", "C")


def test_id_is_inferred_from_shared_namespace():
    plugin = make_plugin(
        beans={"todo.app/title": literal("Tasks")},
        extensions=[{"key": "todo.app/pages"}],
    )

    assert plugin.id == "todo.app"


def test_id_cannot_be_inferred_from_several_namespaces():
    with pytest.raises(PluginDefinitionError, match="Cannot infer plugin id"):
        make_plugin(beans={"A/x": literal(1), "B/y": literal(2)})


def test_id_cannot_be_inferred_from_unqualified_keys():
    with pytest.raises(PluginDefinitionError, match="unqualified key 'x'"):
        make_plugin(beans={"x": literal(1)})


def test_bean_must_be_a_definition():
    with pytest.raises(PluginDefinitionError, match="bean 'x' is not a bean definition"):
        make_plugin(id="A", beans={"x": 1})


def test_contributed_beans_and_redefs_are_lifted_out():
    plugin = make_plugin(
        id="A",
        contributions={
            "beans": {"x": literal(1)},
            "bean-redefs": {"B/y": call(str, ref(":orig"))},
            "B/pages": "home",
        },
    )

    assert plugin.contribution_beans == {Key("A", "x"): literal(1)}
    assert plugin.contribution_redefs == {
        Key("B", "y"): RedefSpec(call(str, ref(ORIG)))
    }
    assert plugin.contributions == {Key("B", "pages"): "home"}


def test_contributed_redefs_take_precedence():
    plugin = make_plugin(
        id="A",
        beans={"x": literal(1)},
        bean_redefs={"x": call(str, ref(":orig"))},
        contributions={"bean-redefs": {"x": call(repr, ref(":orig"))}},
    )

    assert plugin.all_redefs()[Key("A", "x")].spec.fn is repr


def test_both_spellings_of_contributed_redefs_are_lifted():
    plugin = make_plugin(
        id="A",
        contributions={
            "bean-redefs": {"B/y": call(str, ref(":orig"))},
            "bean_redefs": {"B/z": call(repr, ref(":orig"))},
        },
    )

    assert set(plugin.contribution_redefs) == {Key("B", "y"), Key("B", "z")}
    assert plugin.contributions == {}


def test_redef_mapping_may_name_its_placeholder():
    plugin = make_plugin(
        id="A",
        bean_redefs={"B/y": {"spec": call(str, ref("A/prev")), "placeholder": "prev"}},
    )

    assert plugin.bean_redefs[Key("B", "y")].placeholder == Key("A", "prev")


def test_invalid_redefinition_raises():
    with pytest.raises(PluginDefinitionError, match="redefinition of 'x'"):
        make_plugin(id="A", bean_redefs={"x": "not a spec"})


def test_extension_declarations_are_normalised():
    plugin = make_plugin(
        id="A",
        extensions=[
            {"key": "routes", "handler": "collect-last", "default": "/"},
            ExtensionDecl("hooks"),
        ],
    )

    assert plugin.extensions == (
        ExtensionDecl(Key("A", "routes"), AggregationPolicy.COLLECT_LAST, "/"),
        ExtensionDecl(Key("A", "hooks")),
    )


def test_invalid_extension_declaration_raises():
    with pytest.raises(PluginDefinitionError, match="Invalid extension declaration"):
        make_plugin(id="A", extensions=[{"key": "routes", "handler": "collect-some"}])


def test_declared_keys_cover_beans_and_extensions():
    plugin = make_plugin(
        id="A",
        beans={"x": literal(1)},
        extensions=[{"key": "routes"}],
        contributions={"beans": {"y": literal(2)}},
    )

    assert plugin.declared_keys() == {Key("A", "x"), Key("A", "y"), Key("A", "routes")}


def test_plugin_record_defaults_to_empty_read_only_maps():
    plugin = Plugin(id="x")

    assert plugin.beans == {}
    assert plugin.contributions == {}
    assert plugin.all_redefs() == {}
    assert plugin.deps == ()
    with pytest.raises(TypeError):
        plugin.beans[Key("x", "y")] = literal(1)
