# sandex_runtime.py

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Literal, Mapping, Optional

from sandex.sandex_compiler import Compiler, Closure
from sandex.sandex_datatypes import (
    Node, ParseError, CompileError, Unauthorized, line_col
)
from sandex.sandex_grammar import Grammar
from sandex.sandex_printer import Printer
from sandex.sandex_syntax import default_grammar
from sandex.sandex_whitelist import Whitelist, get_whitelist

logger = logging.getLogger(__name__)

# ===================================================================
# Compiled expressions
# ===================================================================


class CompiledExpression:
    """A parsed and compiled expression, evaluated any number of times."""

    def __init__(self, source: str, tree: Node, closure: Closure):
        self.source = source
        self.tree = tree
        self.closure = closure

    def __call__(self, bindings: Optional[Mapping[str, Any]] = None, *options):
        return self.closure(bindings if bindings is not None else {}, *options)

    def __repr__(self):
        return f"<CompiledExpression {self.source!r}>"


# ===================================================================
# Execution
# ===================================================================

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The outcome of one `handle_expression` call."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    error_kind: Optional[str] = None

    def format_error(self) -> str:
        """`error_message` prefixed with its source position; empty on success."""
        if self.status != 'error':
            return ""
        message = self.error_message or "Unknown error"
        if not self.error_token:
            return message
        return f"Error on line {self.error_token['line']}, col {self.error_token['col']}: {message}"


class ExpressionRunner:
    """Parses, compiles, and evaluates expressions against a whitelist.

    Compiled expressions are cached per source string; the least recently
    used entry is dropped once `cache_size` sources are held.
    """

    def __init__(self, whitelist: Optional[Whitelist] = None, grammar: Optional[Grammar] = None,
                 cache_size: int = 256):
        self.whitelist = whitelist if whitelist is not None else get_whitelist()
        self.grammar = grammar if grammar is not None else default_grammar()
        self.compiler = Compiler(self.whitelist)
        self.printer = Printer()
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, CompiledExpression]" = OrderedDict()

    def parse(self, source: str) -> Node:
        return self.grammar.parse(source, "Expression")

    def compile(self, source: str) -> CompiledExpression:
        compiled = self._cache.get(source)
        if compiled is not None:
            self._cache.move_to_end(source)
            return compiled
        tree = self.parse(source)
        closure = self.compiler.compile(tree)
        compiled = CompiledExpression(source, tree, closure)
        if self.cache_size > 0:
            self._cache[source] = compiled
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        logger.debug("Compiled %r", source)
        return compiled

    def evaluate(self, source: str, bindings: Optional[Mapping[str, Any]] = None, *options):
        return self.compile(source)(bindings, *options)

    def handle_expression(self, source: str, bindings: Optional[Mapping[str, Any]] = None,
                          *options) -> ExecutionResult:
        """Evaluate `source` and report the outcome without raising."""
        try:
            value = self.evaluate(source, bindings, *options)
        except Exception as e:
            kind, msg, token = self._format_error(e, source)
            if kind == "InternalError":
                logger.exception("Internal error evaluating %r", source)
            return ExecutionResult(
                status='error',
                error_message=msg,
                error_token=token,
                error_kind=kind,
            )
        return ExecutionResult(status='success', value=value)

    # --- Error formatting ---

    def _format_error(self, e: Exception, source: str):
        node = getattr(e, 'node', None) or getattr(e, 'sandex_node', None)
        offset = None
        match e:
            case ParseError():
                kind = "ParseError"
                msg = f"ParseError: {e.message}"
                offset = e.position
            case Unauthorized():
                kind = type(e).__name__
                msg = f"{kind}: {e}"
            case CompileError():
                kind = type(e).__name__
                msg = f"{kind}: {e}"
            case KeyError(args=(key, *_)):
                kind = "PathNotFound"
                msg = f"PathNotFound: {key}"
            case TypeError() | AttributeError() | ValueError() | ZeroDivisionError():
                kind = "TypeError"
                msg = f"TypeError: {e}"
            case _:
                kind = "InternalError"
                msg = f"InternalError: {e}"

        if offset is None and isinstance(node, Node) and node.range is not None:
            offset = node.range.start
            msg = f"{msg}\nAt {self.printer.pformat(node)}"

        token = None
        if offset is not None:
            line, col = line_col(source, offset)
            token = {'line': line, 'col': col, 'offset': offset}
            msg = f"{msg}\n(line {line}, col {col})\n{self._source_context(source, line, col)}"
        return kind, msg, token

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines() or [""]
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            content = lines[i - 1]
            out.append(f"{prefix} {ln} | {content}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)
