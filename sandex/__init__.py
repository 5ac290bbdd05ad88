from sandex.sandex_datatypes import (
    Node, Range, NO_MATCH, ABSENT,
    GrammarError, ParseError, CompileError, UnknownOperator,
    Unauthorized, UnauthorizedIdentifier, UnauthorizedCall, WhitelistConfigError,
)
from sandex.sandex_cursor import Cursor
from sandex.sandex_grammar import Grammar, Descriptor
from sandex.sandex_syntax import build_expression_grammar, default_grammar, parse_expression
from sandex.sandex_compiler import Compiler, Path
from sandex.sandex_whitelist import (
    Whitelist, constant, from_bindings, configure_whitelist, get_whitelist
)
from sandex.sandex_builtins import default_whitelist
from sandex.sandex_printer import Printer
from sandex.sandex_runtime import ExpressionRunner, ExecutionResult, CompiledExpression
