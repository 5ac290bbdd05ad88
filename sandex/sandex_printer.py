"""
A pretty-printer for syntax trees and evaluated values.
"""
import collections.abc
import json

from sandex.sandex_datatypes import Node
from sandex.sandex_operators import BINARY_PRECEDENCE, format_number, is_number

CONDITIONAL_PRECEDENCE = 0
UNARY_PRECEDENCE = 7
POSTFIX_PRECEDENCE = 8


class Printer:
    """Formats syntax trees as canonical expression source and values as JS literals."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format a Node or a plain value."""
        if isinstance(obj, Node):
            return self._format_node(obj)
        return self.format_value(obj)

    def _create_handlers(self):
        return {
            "ConditionalExpression": self._pformat_conditional,
            "BinaryExpression": self._pformat_binary,
            "UnaryExpression": self._pformat_unary,
            "ArrayExpression": self._pformat_array,
            "ObjectExpression": self._pformat_object,
            "Property": self._pformat_property,
            "Identifier": lambda n: n.name,
            "Literal": self._pformat_literal,
            "MemberExpression": self._pformat_member,
            "CallExpression": self._pformat_call,
        }

    def _format_node(self, node: Node) -> str:
        handler = self._handlers.get(node.kind)
        if handler is None:
            return node.raw if node.raw is not None else repr(node)
        return handler(node)

    def _precedence(self, node: Node) -> int:
        match node.kind:
            case "ConditionalExpression":
                return CONDITIONAL_PRECEDENCE
            case "BinaryExpression":
                return BINARY_PRECEDENCE.get(node.operator, 0)
            case "UnaryExpression":
                return UNARY_PRECEDENCE
            case _:
                return POSTFIX_PRECEDENCE + 1

    def _operand(self, node: Node, minimum: int) -> str:
        text = self._format_node(node)
        if self._precedence(node) < minimum:
            return f"({text})"
        return text

    # --- Handlers ---

    def _pformat_conditional(self, node):
        test = self._operand(node.test, CONDITIONAL_PRECEDENCE + 1)
        return f"{test} ? {self._format_node(node.consequent)} : {self._format_node(node.alternate)}"

    def _pformat_binary(self, node):
        level = BINARY_PRECEDENCE.get(node.operator, 0)
        left = self._operand(node.left, level)
        # Left associative: an equal-precedence right operand needs parentheses.
        right = self._operand(node.right, level + 1)
        return f"{left} {node.operator} {right}"

    def _pformat_unary(self, node):
        argument = self._operand(node.argument, UNARY_PRECEDENCE)
        if node.argument.kind == "UnaryExpression" and node.operator in "+-":
            # Keep `- -x` from printing as `--x`.
            return f"{node.operator} {argument}"
        return f"{node.operator}{argument}"

    def _pformat_array(self, node):
        items = ["" if e is None else self._format_node(e) for e in node.elements]
        if node.elements and node.elements[-1] is None:
            items.append("")
        return "[" + ", ".join(items) + "]"

    def _pformat_object(self, node):
        if not node.properties:
            return "{}"
        return "{" + ", ".join(self._format_node(p) for p in node.properties) + "}"

    def _pformat_property(self, node):
        return f"{self._format_node(node.key)}: {self._format_node(node.value)}"

    def _pformat_literal(self, node):
        if node.raw is not None:
            return node.raw
        return self.format_value(node.value)

    def _pformat_member(self, node):
        obj = self._operand(node.object, POSTFIX_PRECEDENCE)
        if node.computed:
            return f"{obj}[{self._format_node(node.property)}]"
        return f"{obj}.{node.property.name}"

    def _pformat_call(self, node):
        callee = self._operand(node.callee, POSTFIX_PRECEDENCE)
        args = ", ".join(self._format_node(a) for a in node.arguments)
        return f"{callee}({args})"

    # --- Values ---

    def format_value(self, value) -> str:
        match value:
            case None:
                return "null"
            case bool():
                return "true" if value else "false"
            case str():
                return json.dumps(value, ensure_ascii=False)
        if is_number(value):
            return format_number(value)
        if isinstance(value, (list, tuple)):
            return "[" + ", ".join(self.format_value(v) for v in value) + "]"
        if isinstance(value, collections.abc.Mapping):
            items = (f"{json.dumps(str(k), ensure_ascii=False)}: {self.format_value(v)}"
                     for k, v in value.items())
            return "{" + ", ".join(items) + "}"
        if callable(value):
            return f"<function {getattr(value, '__name__', 'anonymous')}>"
        return repr(value)
