"""
Compiles a syntax tree into nested closures.

Each visitor takes a Path (the node plus its parent and slot) and returns a
closure with the signature `(bindings, *options)`. Closures forward both
arguments to their children; member and call closures also hand them to the
accessors and invokers the capability gate returned, so those can depend on
per-evaluation context without recompiling.
"""
import logging
from typing import Any, Callable, Optional

from sandex.sandex_datatypes import Node, CompileError, UnknownOperator
from sandex.sandex_operators import (
    BINARY_OPERATION, LOGICAL_OPERATION, UNARY_OPERATION, is_truthy, get_member, to_string
)
from sandex.sandex_whitelist import Whitelist, get_whitelist

logger = logging.getLogger(__name__)

Closure = Callable[..., Any]


class Path:
    """A node together with where it sits in the tree."""
    __slots__ = ("node", "compiler", "parent", "slot")

    def __init__(self, node: Node, compiler: "Compiler",
                 parent: Optional["Path"] = None, slot: Optional[str] = None):
        self.node = node
        self.compiler = compiler
        self.parent = parent
        self.slot = slot

    def __repr__(self):
        parent = self.parent.node.kind if self.parent else None
        return f"<Path {self.node.kind} in {parent}.{self.slot}>"

    def is_(self, kind: str) -> bool:
        """`is_('Literal')` tests the node kind; `is_('Property.key')` tests the parent kind and slot."""
        parent_kind, _, slot = kind.partition(".")
        if not slot:
            return self.node.kind == parent_kind
        return self.parent is not None and self.parent.node.kind == parent_kind and self.slot == slot

    def traverse(self, child: Node, slot: Optional[str] = None) -> Closure:
        return self.compiler.visit(Path(child, self.compiler, self, slot))


def _locate(error: Exception, node: Node) -> None:
    # Innermost node wins.
    if getattr(error, "sandex_node", None) is None:
        try:
            error.sandex_node = node
        except AttributeError:
            pass


# =================================================================
# Visitors
# =================================================================

def conditional_expression(path: Path) -> Closure:
    node = path.node
    test = path.traverse(node.test, "test")
    consequent = path.traverse(node.consequent, "consequent")
    alternate = path.traverse(node.alternate, "alternate")

    def conditional(bindings, *options):
        if is_truthy(test(bindings, *options)):
            return consequent(bindings, *options)
        return alternate(bindings, *options)
    return conditional


def binary_expression(path: Path) -> Closure:
    node = path.node
    operator = node.operator

    if operator in LOGICAL_OPERATION:
        logical = LOGICAL_OPERATION[operator]
        left = path.traverse(node.left, "left")
        right = path.traverse(node.right, "right")

        def short_circuit(bindings, *options):
            return logical(left(bindings, *options), lambda: right(bindings, *options))
        return short_circuit

    operation = BINARY_OPERATION.get(operator)
    if operation is None:
        raise UnknownOperator(operator, node)
    left = path.traverse(node.left, "left")
    right = path.traverse(node.right, "right")

    def binary(bindings, *options):
        return operation(left(bindings, *options), right(bindings, *options))
    return binary


def unary_expression(path: Path) -> Closure:
    node = path.node
    operation = UNARY_OPERATION.get(node.operator)
    if operation is None:
        raise UnknownOperator(node.operator, node)
    argument = path.traverse(node.argument, "argument")

    def unary(bindings, *options):
        return operation(argument(bindings, *options))
    return unary


def array_expression(path: Path) -> Closure:
    elements = []
    for element in path.node.elements:
        if element is None:
            elements.append(lambda bindings, *options: None)
        else:
            elements.append(path.traverse(element, "elements"))

    def array(bindings, *options):
        return [element(bindings, *options) for element in elements]
    return array


def object_expression(path: Path) -> Closure:
    properties = [path.traverse(p, "properties") for p in path.node.properties]

    def obj(bindings, *options):
        result = {}
        for prop in properties:
            key, value = prop(bindings, *options)
            result[key if isinstance(key, str) else to_string(key)] = value
        return result
    return obj


def property_(path: Path) -> Closure:
    key = path.traverse(path.node.key, "key")
    value = path.traverse(path.node.value, "value")

    def prop(bindings, *options):
        return key(bindings, *options), value(bindings, *options)
    return prop


def identifier(path: Path) -> Closure:
    node = path.node
    name = node.name

    if path.is_("Property.key") or (
        path.is_("MemberExpression.property") and not path.parent.node.computed
    ):
        return lambda bindings, *options: name

    def lookup(bindings, *options):
        try:
            return bindings[name]
        except Exception as e:
            _locate(e, node)
            raise
    return lookup


def literal(path: Path) -> Closure:
    value = path.node.value
    return lambda bindings, *options: value


def member_expression(path: Path) -> Closure:
    node = path.node
    prop = path.traverse(node.property, "property")

    if node.object.kind == "Identifier":
        obj = path.compiler.whitelist.validate_object_root(node.object.name, node.object)
    else:
        obj = path.traverse(node.object, "object")

    def member(bindings, *options):
        target = obj(bindings, *options)
        try:
            return get_member(target, prop(bindings, *options))
        except Exception as e:
            _locate(e, node)
            raise
    return member


def call_expression(path: Path) -> Closure:
    node = path.node
    callee = path.compiler.whitelist.validate_callee(path)
    args = [path.traverse(arg, "arguments") for arg in node.arguments]

    def call(bindings, *options):
        fn = callee(bindings, *options)
        values = [arg(bindings, *options) for arg in args]
        try:
            return fn(*values)
        except Exception as e:
            _locate(e, node)
            raise
    return call


VISITORS = {
    "ConditionalExpression": conditional_expression,
    "BinaryExpression": binary_expression,
    "UnaryExpression": unary_expression,
    "ArrayExpression": array_expression,
    "ObjectExpression": object_expression,
    "Property": property_,
    "Identifier": identifier,
    "Literal": literal,
    "MemberExpression": member_expression,
    "CallExpression": call_expression,
}


class Compiler:
    """Drives the visitors over a tree, gating through `whitelist`."""

    def __init__(self, whitelist: Optional[Whitelist] = None):
        self.whitelist = whitelist if whitelist is not None else get_whitelist()

    def compile(self, node: Node) -> Closure:
        logger.debug("Compiling %s", node.kind)
        return self.visit(Path(node, self))

    def visit(self, path: Path) -> Closure:
        node = path.node
        if not isinstance(node, Node):
            raise CompileError(f"Expected a syntax node, got {type(node).__name__}")
        visitor = VISITORS.get(node.kind)
        if visitor is None:
            raise CompileError(f"No compiler for node kind '{node.kind}'", node)
        return visitor(path)
