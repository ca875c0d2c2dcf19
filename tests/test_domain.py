import pytest

from plinth.domain import (
    ORIG,
    AggregationPolicy,
    FactoryCall,
    InnerBean,
    Key,
    Literal,
    Ref,
    Val,
    call,
    constructed,
    function_ref,
    inner,
    literal,
    partial,
    ref,
    val,
)


def test_key_parses_qualified_text():
    assert Key.parse("todo.domain/add-task") == Key("todo.domain", "add-task")


def test_key_namespace_is_everything_before_last_slash():
    assert Key.parse("a/b/c") == Key("a/b", "c")


def test_bare_key_is_qualified_with_default_namespace():
    assert Key.parse("add-task", "todo.domain") == Key("todo.domain", "add-task")


def test_bare_key_without_default_namespace_raises():
    with pytest.raises(ValueError, match="has no namespace"):
        Key.parse("add-task")


@pytest.mark.parametrize("text", ["", "/x", "a/", None])
def test_invalid_key_text_raises(text):
    with pytest.raises(ValueError, match="Invalid key"):
        Key.parse(text)


def test_placeholder_text_parses_to_orig():
    assert Key.parse(":orig") == ORIG
    assert str(ORIG) == ":orig"


def test_key_renders_as_text():
    assert str(Key("A", "x")) == "A/x"


def test_raw_arguments_are_wrapped_as_values():
    spec = call(max, 1, ref("A/x"), literal(3))

    assert spec.args == (Val(1), Ref(Key("A", "x")), InnerBean(Literal(3)))


def test_explicit_arguments_are_kept():
    spec = partial(max, val("A/x"), inner(literal(1)))

    assert spec.args == (Val("A/x"), InnerBean(Literal(1)))


def test_references_include_nested_beans():
    spec = constructed(
        call(dict, ref("A/x")),
        partial(setattr, inner(call(str, ref("B/y")))),
        call(lambda z: z, ref("C/z")),
    )

    assert list(spec.references()) == [Key("A", "x"), Key("B", "y"), Key("C", "z")]


def test_literal_has_no_references():
    assert list(literal(ref("A/x")).references()) == []


def test_map_arguments_rewrites_every_argument():
    spec = call(max, ref("A/x"), 2)

    rewritten = spec.map_arguments(
        lambda argument: Val(0) if isinstance(argument, Ref) else argument
    )

    assert rewritten == FactoryCall(max, (Val(0), Val(2)))


def test_function_reference_binds_to_function_named_after_key():
    import operator

    spec = function_ref(operator, 1, 2).bind(Key("maths", "add"))

    assert spec == FactoryCall(operator.add, (Val(1), Val(2)))


def test_function_reference_maps_dashes_to_underscores():
    class Source:
        @staticmethod
        def add_task(text):
            return text

    spec = function_ref(Source, "x").bind(Key("todo", "add-task"))

    assert spec.fn is Source.add_task


def test_doc_does_not_affect_equality():
    assert literal(1, doc="one") == literal(1)
    assert literal(1, doc="one").doc == "one"


@pytest.mark.parametrize(
    "text, policy",
    [
        ("collect-all", AggregationPolicy.COLLECT_ALL),
        ("collect_last", AggregationPolicy.COLLECT_LAST),
        ("COLLECT_DATA", AggregationPolicy.COLLECT_DATA),
        (AggregationPolicy.COLLECT_LAST, AggregationPolicy.COLLECT_LAST),
    ],
)
def test_aggregation_policy_parses_textual_forms(text, policy):
    assert AggregationPolicy.parse(text) is policy
