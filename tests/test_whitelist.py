from textwrap import dedent

import pytest

from sandex.sandex_compiler import Compiler
from sandex.sandex_datatypes import UnauthorizedIdentifier, UnauthorizedCall, WhitelistConfigError
from sandex.sandex_syntax import parse_expression
from sandex.sandex_whitelist import (
    Whitelist, constant, from_bindings, configure_whitelist, get_whitelist
)


def compile_with(whitelist, source):
    return Compiler(whitelist).compile(parse_expression(source))


@pytest.fixture
def whitelist():
    return Whitelist(
        objects={"user": constant({"name": "Ann"}), "text": from_bindings("text")},
        callees={
            "*.shout": lambda receiver: str(receiver).upper() + "!",
            "Str.len": len,
            "len": len,
        },
        custom_objects={"Str"},
    )


def test_validate_object_root(whitelist):
    accessor = whitelist.validate_object_root("user")
    assert accessor({}) == {"name": "Ann"}
    with pytest.raises(UnauthorizedIdentifier):
        whitelist.validate_object_root("window")


def test_rejection_is_independent_of_bindings(whitelist):
    # Binding the name at evaluation time cannot make it legal.
    with pytest.raises(UnauthorizedIdentifier):
        compile_with(whitelist, "forbidden.name")
    with pytest.raises(UnauthorizedIdentifier):
        compile_with(whitelist, "forbidden.name")


def test_bare_function_call(whitelist):
    assert compile_with(whitelist, "len('abc')")({}) == 3


def test_custom_object_call_needs_exact_signature(whitelist):
    assert compile_with(whitelist, "Str.len('ab')")({}) == 2
    with pytest.raises(UnauthorizedCall) as exc:
        compile_with(whitelist, "Str.other('ab')")
    assert exc.value.signature == "Str.other"


def test_prototype_method_receives_receiver(whitelist):
    assert compile_with(whitelist, "user.name.shout()")({}) == "ANN!"
    assert compile_with(whitelist, "'hey'.shout()")({}) == "HEY!"


def test_prototype_method_on_bare_identifier_is_gated(whitelist):
    assert compile_with(whitelist, "text.shout()")({"text": "yo"}) == "YO!"
    with pytest.raises(UnauthorizedIdentifier):
        compile_with(whitelist, "other.shout()")


def test_compound_member_roots_read_bindings_ungated(whitelist):
    # Only bare identifiers are gated as member roots; bound values stay reachable.
    bindings = {"secret": {"name": "s"}, "raw": "yo"}
    assert compile_with(whitelist, "(0 || secret).name")(bindings) == "s"
    assert compile_with(whitelist, "[secret][0].name")(bindings) == "s"
    assert compile_with(whitelist, "(0 || raw).shout()")(bindings) == "YO!"
    with pytest.raises(UnauthorizedIdentifier):
        compile_with(whitelist, "secret.name")


def test_unknown_prototype_method(whitelist):
    with pytest.raises(UnauthorizedCall) as exc:
        compile_with(whitelist, "user.name.constructor()")
    assert exc.value.signature == "*.constructor"


def test_computed_callee_is_rejected(whitelist):
    with pytest.raises(UnauthorizedCall):
        compile_with(whitelist, "user['shout']()")


def test_call_of_call_result_is_rejected(whitelist):
    with pytest.raises(UnauthorizedCall):
        compile_with(whitelist, "len('a')()")


def test_tables_are_read_only(whitelist):
    with pytest.raises(TypeError):
        whitelist.objects["window"] = constant(None)
    with pytest.raises(TypeError):
        whitelist.callees["eval"] = eval


def test_non_callable_entries_are_rejected():
    with pytest.raises(WhitelistConfigError):
        Whitelist(objects={"x": 1})
    with pytest.raises(WhitelistConfigError):
        Whitelist(callees={"f": "not a function"})


def test_merged_prefers_other(whitelist):
    merged = whitelist.merged(Whitelist(objects={"user": constant("other")}))
    assert merged.validate_object_root("user")({}) == "other"
    assert "text" in merged.objects
    assert merged.custom_objects == {"Str"}


# --- Configuration ---

def test_from_file(tmp_path):
    config = tmp_path / "whitelist.yaml"
    config.write_text(dedent("""
        objects:
          user: {binding: current_user}
          site: {value: {name: demo}}
          Math: {import: "sandex.sandex_builtins:MATH"}
        callees:
          Math.max:
            import: "sandex.sandex_builtins:math_max"
          "*.trim": "sandex.sandex_builtins:trim"
        custom_objects: [Math]
    """), encoding="utf-8")
    whitelist = Whitelist.from_file(str(config))

    fn = compile_with(whitelist, "Math.max(user.age, site.name.length) + Math.PI * 0")
    assert fn({"current_user": {"age": 2}}) == 4
    assert compile_with(whitelist, "site.name.trim()")({}) == "demo"


def test_from_config_with_builtins():
    whitelist = Whitelist.from_config({"include_builtins": True,
                                       "objects": {"n": {"binding": None}}})
    assert compile_with(whitelist, "Math.floor(n.v)")({"n": {"v": 2.7}}) == 2


@pytest.mark.parametrize("config", [
    [],
    {"unknown": 1},
    {"objects": {"x": {"binding": "x", "value": 1}}},
    {"objects": {"x": {"nope": 1}}},
    {"objects": {"x": "plain"}},
    {"callees": {"f": {"module": "x"}}},
    {"callees": {"f": "no_colon"}},
    {"callees": {"f": "sandex.sandex_builtins:missing_name"}},
    {"custom_objects": "Math"},
])
def test_bad_config(config):
    with pytest.raises(WhitelistConfigError):
        Whitelist.from_config(config)


def test_configure_whitelist_sets_process_default():
    try:
        assert get_whitelist().objects == {}
        configured = Whitelist(objects={"cfg": constant({"on": True})})
        configure_whitelist(configured)
        assert get_whitelist() is configured
        assert Compiler().compile(parse_expression("cfg.on"))({}) is True
    finally:
        configure_whitelist(None)
