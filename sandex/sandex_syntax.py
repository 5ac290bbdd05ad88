"""
The expression grammar: a JavaScript-like expression subset built on the
combinator engine.

Registered kinds, outermost first: Expression, Unary, UnaryOperation,
Postfix, Primary and the literal kinds. Expression reads a flat
`operand (operator operand)* ('?' Expression ':' Expression)?` run and
folds it by BINARY_PRECEDENCE, so nesting depth in the source is the only
thing that deepens the matcher stack. The tree only contains the
ESTree-style node kinds the compiler knows (ConditionalExpression,
BinaryExpression, UnaryExpression, MemberExpression, CallExpression,
ArrayExpression, ObjectExpression, Property, Identifier, Literal).
"""
import re
from typing import Optional

from sandex.sandex_datatypes import Node, Range, NO_MATCH, ABSENT
from sandex.sandex_grammar import Grammar
from sandex.sandex_operators import BINARY_PRECEDENCE

RESERVED_WORDS = frozenset({
    "true", "false", "null", "new", "this", "typeof", "delete", "void",
    "function", "var", "let", "const", "return", "if", "else", "in", "instanceof",
})

NUMBER_PATTERN = r"0[xX][0-9a-fA-F]+|(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?"
STRING_PATTERN = r'"(?:[^"\\\n]|\\.)*"|\'(?:[^\'\\\n]|\\.)*\''
NAME_PATTERN = r"[A-Za-z_$][\w$]*"
KEYWORD_PATTERN = r"(?:true|false|null)(?![\w$])"

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0", "\n": ""}
_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|.)", re.S)
_KEYWORD_VALUES = {"true": True, "false": False, "null": None}


def decode_string(raw: str) -> str:
    """Strip the quotes from a string token and resolve its escapes."""
    def replace(m):
        esc = m.group(1)
        if len(esc) > 1:
            return chr(int(esc[1:], 16))
        return _ESCAPES.get(esc, esc)
    return _ESCAPE_RE.sub(replace, raw[1:-1])


def decode_number(raw: str):
    if raw[:2] in ("0x", "0X"):
        return int(raw, 16)
    if any(c in raw for c in ".eE"):
        return float(raw)
    return int(raw)


def _span(first: Node, last: Node) -> Range:
    return Range(first.range.start, last.range.end)


def _token(g: Grammar, matcher):
    """Skip leading whitespace, then run `matcher` and return its result."""
    seq = g.sequence([g.pattern(r"\s*"), matcher])

    def match_token(cursor):
        result = seq(cursor)
        if result is NO_MATCH:
            return NO_MATCH
        return result[1]

    return match_token


def _punct(g: Grammar, text: str):
    return _token(g, g.literal(text))


def _fold_binary(first: Node, rest) -> Node:
    """Build left-associative BinaryExpressions from `first (op operand)*` by precedence."""
    operands = [first]
    operators = []

    def reduce():
        right = operands.pop()
        left = operands.pop()
        operator = operators.pop()
        operands.append(Node("BinaryExpression", _span(left, right),
                             operator=operator, left=left, right=right))

    for token, right in rest:
        level = BINARY_PRECEDENCE[token.raw]
        while operators and BINARY_PRECEDENCE[operators[-1]] >= level:
            reduce()
        operators.append(token.raw)
        operands.append(right)
    while operators:
        reduce()
    return operands[0]


def build_expression_grammar(grammar: Optional[Grammar] = None) -> Grammar:
    """Register the expression rules on `grammar` (a new Grammar by default)."""
    g = grammar if grammar is not None else Grammar()
    ref = g.reference

    # --- Atoms ---

    def number(tok):
        return Node("Literal", tok.range, raw=tok.raw, value=decode_number(tok.raw))
    g.register("Number", _token(g, g.pattern(NUMBER_PATTERN)), on_match=number)

    def string(tok):
        return Node("Literal", tok.range, raw=tok.raw, value=decode_string(tok.raw))
    g.register("String", _token(g, g.pattern(STRING_PATTERN)), on_match=string)

    def keyword(tok):
        return Node("Literal", tok.range, raw=tok.raw, value=_KEYWORD_VALUES[tok.raw])
    g.register("Keyword", _token(g, g.pattern(KEYWORD_PATTERN)), on_match=keyword)

    def identifier(tok):
        if tok.raw in RESERVED_WORDS:
            return NO_MATCH
        return Node("Identifier", tok.range, name=tok.raw)
    g.register("Identifier", _token(g, g.pattern(NAME_PATTERN)), on_match=identifier)

    # Property names may be reserved words: `a.null`, `{true: 1}`.
    def identifier_name(tok):
        return Node("Identifier", tok.range, name=tok.raw)
    g.register("IdentifierName", _token(g, g.pattern(NAME_PATTERN)), on_match=identifier_name)

    # --- Array and object literals ---

    def array(open_, first, rest, close):
        elements = [first] + [item[1] for item in rest]
        if rest and elements[-1] is ABSENT:
            elements.pop()
        elif not rest and first is ABSENT:
            elements = []
        elements = [None if e is ABSENT else e for e in elements]
        return Node("ArrayExpression", _span(open_, close), elements=elements)

    g.register("ArrayExpression", [
        _punct(g, "["),
        g.optional(ref("Expression")),
        g.zero_or_more([_punct(g, ","), g.optional(ref("Expression"))]),
        _punct(g, "]"),
    ], on_match=array)

    g.register("PropertyKey", g.alternation([
        ref("IdentifierName"), ref("String"), ref("Number"),
    ]))

    def prop(key, colon, value):
        return Node("Property", _span(key, value), key=key, value=value)
    g.register("Property", [ref("PropertyKey"), _punct(g, ":"), ref("Expression")], on_match=prop)

    def obj(open_, body, close):
        properties = []
        if body is not ABSENT:
            first, rest, _trailing = body
            properties = [first] + [item[1] for item in rest]
        return Node("ObjectExpression", _span(open_, close), properties=properties)

    g.register("ObjectExpression", [
        _punct(g, "{"),
        g.optional([
            ref("Property"),
            g.zero_or_more([_punct(g, ","), ref("Property")]),
            g.optional(_punct(g, ",")),
        ]),
        _punct(g, "}"),
    ], on_match=obj)

    def paren(open_, inner, close):
        return inner
    g.register("Parenthesized", [_punct(g, "("), ref("Expression"), _punct(g, ")")], on_match=paren)

    g.register("Primary", g.alternation([
        ref("Number"), ref("String"), ref("Keyword"), ref("Identifier"),
        ref("ArrayExpression"), ref("ObjectExpression"), ref("Parenthesized"),
    ]))

    # --- Member access and calls ---

    def dot(_dot, name):
        return Node("DotSuffix", property=name)
    g.register("DotSuffix", [_punct(g, "."), ref("IdentifierName")], on_match=dot)

    def index(_open, expr, _close):
        return Node("IndexSuffix", property=expr)
    g.register("IndexSuffix", [_punct(g, "["), ref("Expression"), _punct(g, "]")], on_match=index)

    def arguments(_open, body, _close):
        args = []
        if body is not ABSENT:
            first, rest = body
            args = [first] + [item[1] for item in rest]
        return Node("Arguments", arguments=args)
    g.register("Arguments", [
        _punct(g, "("),
        g.optional([ref("Expression"), g.zero_or_more([_punct(g, ","), ref("Expression")])]),
        _punct(g, ")"),
    ], on_match=arguments)

    def postfix(base, suffixes):
        node = base
        for suffix in suffixes:
            rng = Range(node.range.start, suffix.range.end)
            if suffix.kind == "Arguments":
                node = Node("CallExpression", rng, callee=node, arguments=suffix.arguments)
            else:
                node = Node("MemberExpression", rng, object=node, property=suffix.property,
                            computed=suffix.kind == "IndexSuffix")
        return node

    g.register("Postfix", [
        ref("Primary"),
        g.zero_or_more(g.alternation([ref("DotSuffix"), ref("IndexSuffix"), ref("Arguments")])),
    ], on_match=postfix)

    # --- Operators ---

    def unary(operator, argument):
        return Node("UnaryExpression", Range(operator.range.start, argument.range.end),
                    operator=operator.raw, argument=argument)
    g.register("UnaryOperation", [
        _token(g, g.alternation([g.literal(o) for o in ("!", "~", "+", "-")])),
        ref("Unary"),
    ], on_match=unary)
    operand = g.alternation([ref("UnaryOperation"), ref("Postfix")])
    g.register("Unary", operand)

    # Longest operators first so `<=` is not read as `<`.
    binary_operator = _token(g, g.alternation([
        g.literal(o) for o in sorted(BINARY_PRECEDENCE, key=len, reverse=True)
    ]))

    def expression(first, rest, branches):
        test = _fold_binary(first, rest)
        if branches is ABSENT:
            return test
        _q, consequent, _colon, alternate = branches
        return Node("ConditionalExpression", _span(test, alternate),
                    test=test, consequent=consequent, alternate=alternate)

    g.register("Expression", [
        operand,
        g.zero_or_more([binary_operator, operand]),
        g.optional([_punct(g, "?"), ref("Expression"), _punct(g, ":"), ref("Expression")]),
    ], on_match=expression)
    return g


_DEFAULT_GRAMMAR: Optional[Grammar] = None


def default_grammar() -> Grammar:
    """The shared expression grammar. Derive from it rather than registering on it."""
    global _DEFAULT_GRAMMAR
    if _DEFAULT_GRAMMAR is None:
        _DEFAULT_GRAMMAR = build_expression_grammar()
    return _DEFAULT_GRAMMAR


def parse_expression(source: str, grammar: Optional[Grammar] = None) -> Node:
    return (grammar or default_grammar()).parse(source, "Expression")
