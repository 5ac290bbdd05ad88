import pytest

from sandex.sandex_compiler import Compiler, Path, VISITORS
from sandex.sandex_datatypes import (
    Node, CompileError, UnknownOperator, UnauthorizedIdentifier, UnauthorizedCall
)
from sandex.sandex_syntax import parse_expression
from sandex.sandex_whitelist import Whitelist, constant, from_bindings


def boom():
    raise AssertionError("should not be evaluated")


@pytest.fixture(scope="module")
def whitelist():
    return Whitelist(
        objects={
            "user": constant({"name": "Ann", "tags": ["a", "b"]}),
            "scope": lambda bindings, *options: options[0] if options else None,
            "data": from_bindings("data"),
        },
        callees={
            "boom": boom,
            "double": lambda x: x * 2,
            "scope.get": lambda key: key,
        },
        custom_objects={"scope"},
    )


@pytest.fixture(scope="module")
def compiler(whitelist):
    return Compiler(whitelist)


def run(compiler, source, bindings=None, *options):
    return compiler.compile(parse_expression(source))(bindings or {}, *options)


# --- Node kinds ---

def test_conditional_selects_one_branch(compiler):
    assert run(compiler, "1 ? 2 : 3") == 2
    assert run(compiler, "0 ? boom() : 3") == 3
    assert run(compiler, "1 ? 2 : boom()") == 2


def test_binary_and_unary(compiler):
    assert run(compiler, "1 + 2 * 3") == 7
    assert run(compiler, "-x + 1", {"x": 4}) == -3
    assert run(compiler, "!(1 == '1')") is False


def test_short_circuit_never_calls_right_side(compiler):
    assert run(compiler, "0 && boom()") == 0
    assert run(compiler, "1 || boom()") == 1
    assert run(compiler, "null || 'fallback'") == "fallback"


def test_array_preserves_holes(compiler):
    assert run(compiler, "[1, , x]", {"x": "y"}) == [1, None, "y"]


def test_object_later_keys_win(compiler):
    assert run(compiler, "{a: 1, b: x, a: 3, 4: 'n'}", {"x": 2}) == {"a": 3, "b": 2, "4": "n"}


def test_identifier_reads_bindings_at_evaluation_time(compiler):
    fn = compiler.compile(parse_expression("count + 1"))
    assert fn({"count": 1}) == 2
    assert fn({"count": 41}) == 42


def test_unbound_identifier_fails_at_evaluation_not_compile(compiler):
    fn = compiler.compile(parse_expression("missing"))
    with pytest.raises(KeyError) as exc:
        fn({})
    assert exc.value.sandex_node.name == "missing"


def test_identifier_as_key_or_property_is_a_name(compiler):
    # `name` is never looked up in bindings here.
    assert run(compiler, "{name: 1}") == {"name": 1}
    assert run(compiler, "user.name") == "Ann"


def test_computed_member_evaluates_identifier(compiler):
    assert run(compiler, "user[key]", {"key": "name"}) == "Ann"
    assert run(compiler, "user.tags[1]") == "b"
    assert run(compiler, "user.tags.length") == 2


def test_member_on_compound_object(compiler):
    assert run(compiler, "[10, 20][1]") == 20
    assert run(compiler, "({a: {b: 5}}).a.b") == 5


def test_accessor_receives_call_time_options(compiler):
    fn = compiler.compile(parse_expression("scope.value + 1"))
    assert fn({}, {"value": 1}) == 2
    assert fn({}, {"value": 10}) == 11


def test_accessor_reading_bindings(compiler):
    assert run(compiler, "data.items[0]", {"data": {"items": ["first"]}}) == "first"


def test_calls(compiler):
    assert run(compiler, "double(x)", {"x": 21}) == 42
    assert run(compiler, "scope.get('k')") == "k"


def test_arguments_evaluate_left_to_right(whitelist):
    order = []

    def record(value):
        order.append(value)
        return value

    compiler = Compiler(whitelist.merged(Whitelist(callees={
        "record": record, "all": lambda *args: list(args),
    })))
    assert run(compiler, "all(record(1), record(2), record(3))") == [1, 2, 3]
    assert order == [1, 2, 3]


# --- Gate ---

def test_unlisted_member_root_fails_to_compile(compiler):
    with pytest.raises(UnauthorizedIdentifier) as exc:
        compiler.compile(parse_expression("forbidden.name"))
    assert exc.value.name == "forbidden"


def test_unlisted_member_root_inside_larger_expression(compiler):
    with pytest.raises(UnauthorizedIdentifier):
        compiler.compile(parse_expression("1 ? [forbidden.x] : 2"))


def test_unlisted_call_fails_to_compile(compiler):
    with pytest.raises(UnauthorizedCall) as exc:
        compiler.compile(parse_expression("eval('1')"))
    assert exc.value.signature == "eval"


# --- Dispatch faults ---

def test_unknown_binary_operator():
    node = Node("BinaryExpression", operator="**",
                left=Node("Literal", value=1), right=Node("Literal", value=2))
    with pytest.raises(UnknownOperator) as exc:
        Compiler(Whitelist()).compile(node)
    assert exc.value.operator == "**"


def test_unknown_unary_operator():
    node = Node("UnaryExpression", operator="typeof", argument=Node("Literal", value=1))
    with pytest.raises(UnknownOperator):
        Compiler(Whitelist()).compile(node)


def test_unknown_node_kind():
    with pytest.raises(CompileError):
        Compiler(Whitelist()).compile(Node("ArrowFunctionExpression"))


def test_visitor_table_covers_grammar_kinds():
    assert set(VISITORS) == {
        "ConditionalExpression", "BinaryExpression", "UnaryExpression", "ArrayExpression",
        "ObjectExpression", "Property", "Identifier", "Literal", "MemberExpression",
        "CallExpression",
    }


def test_path_is_checks_parent_slot(compiler):
    node = parse_expression("a.b")
    root = Path(node, compiler)
    child = Path(node.property, compiler, root, "property")
    assert root.is_("MemberExpression")
    assert child.is_("MemberExpression.property")
    assert not child.is_("Property.key")


# --- Idempotence ---

def test_compiling_twice_gives_equivalent_closures(compiler):
    tree = parse_expression("x > 1 ? user.name : [x, {k: x}]")
    first = compiler.compile(tree)
    second = compiler.compile(tree)
    assert first is not second
    for x in (0, 1, 2, "3"):
        assert first({"x": x}) == second({"x": x})
