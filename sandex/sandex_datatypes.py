"""
Defines the core data types shared by the grammar engine and the compiler.

This module provides the syntax Node produced by successful matches, the
Range it covers, the two matcher sentinels (NO_MATCH and ABSENT), and the
exception hierarchy raised while parsing and compiling expressions.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


# =================================================================
# Sentinels
# =================================================================

class _NoMatch:
    """A matcher did not match at the current position."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "NO_MATCH"


class _Absent:
    """An optional matcher succeeded without finding anything."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "ABSENT"


NO_MATCH = _NoMatch()
ABSENT = _Absent()


# =================================================================
# Syntax tree
# =================================================================

@dataclass(frozen=True)
class Range:
    start: int
    end: int

    def __len__(self):
        return self.end - self.start


class Node:
    """A typed match result.

    `kind` tags the node, `range` covers the consumed source span, `raw` holds
    the matched text for leaves and `children` the ordered sub-results for
    sequence matches. Kind specific payload (operator, test, left, ...) lives
    in `fields` and is readable as attributes.
    """
    __slots__ = ("kind", "range", "raw", "_children", "fields")

    def __init__(self, kind: Optional[str] = None, range: Optional[Range] = None,
                 raw: Optional[str] = None, children: Optional[List[Any]] = None,
                 **fields: Any):
        self.kind = kind
        self.range = range
        self.raw = raw
        self._children = children
        self.fields: Dict[str, Any] = fields

    def __getattr__(self, name: str):
        # Only reached when normal lookup fails.
        try:
            return object.__getattribute__(self, "fields")[name]
        except KeyError:
            raise AttributeError(f"{self.kind or 'Node'} has no field '{name}'") from None

    @property
    def children(self) -> Optional[List[Any]]:
        """Explicit children, or the Node-valued fields in declaration order."""
        if self._children is not None:
            return self._children
        if not self.fields:
            return None
        out = []
        for value in self.fields.values():
            if isinstance(value, Node):
                out.append(value)
            elif isinstance(value, list):
                out.extend(v for v in value if isinstance(v, Node))
        return out

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        return (self.kind == other.kind and self.raw == other.raw
                and self._children == other._children and self.fields == other.fields)

    def __hash__(self):
        return id(self)

    def __repr__(self):
        parts = [repr(self.kind)]
        if self.raw is not None:
            parts.append(f"raw={self.raw!r}")
        for key, value in self.fields.items():
            parts.append(f"{key}={value!r}")
        if self._children is not None:
            parts.append(f"children={self._children!r}")
        return f"Node({', '.join(parts)})"


# =================================================================
# Errors
# =================================================================

class GrammarError(Exception):
    """A grammar was used in a way that cannot work (e.g. an unknown rule)."""


class ParseError(Exception):
    def __init__(self, message: str, position: int, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.position = position
        self.source = source
        self.line, self.col = line_col(source, position) if source is not None else (None, None)

    def __str__(self):
        if self.line is not None:
            return f"{self.message} (line {self.line}, col {self.col})"
        return f"{self.message} (offset {self.position})"


class CompileError(Exception):
    """A syntax tree cannot be compiled (unknown node kind, bad shape)."""
    def __init__(self, message: str, node: Optional[Node] = None):
        super().__init__(message)
        self.node = node


class UnknownOperator(CompileError):
    def __init__(self, operator: str, node: Optional[Node] = None):
        super().__init__(f"Unknown operator: {operator!r}", node)
        self.operator = operator


class Unauthorized(Exception):
    """Base class for capability gate rejections."""
    def __init__(self, message: str, node: Optional[Node] = None):
        super().__init__(message)
        self.node = node


class UnauthorizedIdentifier(Unauthorized):
    def __init__(self, name: str, node: Optional[Node] = None):
        super().__init__(f"Identifier '{name}' is not an allowed object", node)
        self.name = name


class UnauthorizedCall(Unauthorized):
    def __init__(self, signature: str, node: Optional[Node] = None):
        super().__init__(f"Call to '{signature}' is not allowed", node)
        self.signature = signature


class WhitelistConfigError(ValueError):
    pass


def line_col(source: str, position: int):
    """1-based (line, col) for an offset into `source`."""
    position = max(0, min(position, len(source)))
    line = source.count("\n", 0, position) + 1
    last_nl = source.rfind("\n", 0, position)
    return line, position - last_nl
