"""
The combinator grammar engine.

A Grammar owns a table of named rules plus three per-instance caches
(compiled patterns, literals and rule references). Matchers are plain
callables taking a Cursor and returning a result or NO_MATCH; every
combinator restores the cursor to its own entry position before reporting
NO_MATCH, so alternation siblings and enclosing sequences always see a clean
cursor.

While a registered rule runs, the grammar that owns it is the active
grammar; `reference` matchers resolve rule names through it.
"""
import logging
import re
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from sandex.sandex_cursor import Cursor
from sandex.sandex_datatypes import (
    Node, NO_MATCH, ABSENT, GrammarError, ParseError
)

logger = logging.getLogger(__name__)

Matcher = Callable[[Cursor], Any]
Tests = Union[Matcher, Sequence[Matcher]]

_active_grammar: ContextVar[Optional["Grammar"]] = ContextVar("sandex_active_grammar", default=None)


@dataclass(frozen=True)
class Descriptor:
    kind: str
    rule: Tests
    on_match: Optional[Callable[..., Any]] = None
    fallback: Optional[Matcher] = None


@dataclass(frozen=True)
class Rule:
    descriptor: Descriptor
    test: Matcher


class Grammar:
    """A registry of named rules and the combinators used to build them.

    Passing an existing Grammar derives a new one from a snapshot of the
    parent's rules and caches; later registrations on either side stay
    invisible to the other. Inherited rules are rebuilt for the new
    instance, so their references see the new instance's overrides.
    """

    def __init__(self, parent: Optional["Grammar"] = None):
        self.caches: Dict[str, Dict[str, Matcher]] = {"pattern": {}, "literal": {}, "reference": {}}
        self.rules: Dict[str, Rule] = {}
        if parent is not None:
            self.caches["pattern"] = dict(parent.caches["pattern"])
            self.caches["literal"] = dict(parent.caches["literal"])
            for kind in parent.caches["reference"]:
                self.reference(kind)
            for kind, rule in parent.rules.items():
                self.rules[kind] = Rule(rule.descriptor, self._build_test(rule.descriptor))
            logger.debug("Derived grammar with %d rules", len(self.rules))

    def clone(self) -> "Grammar":
        return Grammar(self)

    def __contains__(self, kind: str) -> bool:
        return kind in self.rules

    # --- Rule registry ---

    def register(self, kind: Union[str, Descriptor], rule: Optional[Tests] = None,
                 on_match: Optional[Callable[..., Any]] = None,
                 fallback: Optional[Matcher] = None) -> Matcher:
        """Store a named rule and return its test."""
        if isinstance(kind, Descriptor):
            descriptor = kind
        else:
            if rule is None:
                raise GrammarError(f"Rule '{kind}' has no matcher")
            descriptor = Descriptor(kind, rule, on_match, fallback)

        test = self._build_test(descriptor)
        self.rules[descriptor.kind] = Rule(descriptor, test)
        logger.debug("Registered rule %s", descriptor.kind)
        return test

    def _build_test(self, descriptor: Descriptor) -> Matcher:
        matcher = self.sequence(descriptor.rule)
        kind_name = descriptor.kind
        transform = descriptor.on_match
        fallback_test = descriptor.fallback
        grammar = self

        def test(cursor: Cursor):
            token = _active_grammar.set(grammar)
            try:
                start = cursor.position
                result = matcher(cursor)

                if result is not NO_MATCH and transform is not None:
                    if isinstance(result, list):
                        result = transform(*result)
                    else:
                        result = transform(result)

                if result is NO_MATCH:
                    cursor.position = start
                    if fallback_test is not None:
                        return fallback_test(cursor)
                    return NO_MATCH
            finally:
                _active_grammar.reset(token)

            if result is None or result is ABSENT:
                return result

            if isinstance(result, list):
                return Node(kind_name, cursor.range_since(start), children=result)

            if isinstance(result, Node):
                if result.kind is None:
                    result.kind = kind_name
                if result.range is None:
                    result.range = cursor.range_since(start)
            return result

        return test

    def reference(self, kind: str) -> Matcher:
        """A matcher deferring to whatever is registered under `kind` when it runs.

        The name is looked up in the active grammar (the owner of the rule
        being run), falling back to this instance, so a derived grammar can
        override a rule that inherited rules refer to.
        """
        cache = self.caches["reference"]
        if kind not in cache:
            owner = self

            def deferred(cursor: Cursor):
                grammar = _active_grammar.get() or owner
                rule = grammar.rules.get(kind) or owner.rules.get(kind)
                if rule is None:
                    raise GrammarError(f"Unknown rule '{kind}'")
                return rule.test(cursor)

            deferred.__name__ = f"ref_{kind}"
            cache[kind] = deferred
        return cache[kind]

    # --- Leaf matchers ---

    def literal(self, text: str) -> Matcher:
        cache = self.caches["literal"]
        if text not in cache:
            def match_literal(cursor: Cursor):
                start = cursor.position
                if cursor.match_literal(text) is None:
                    return NO_MATCH
                return Node(raw=text, range=cursor.range_since(start))

            cache[text] = match_literal
        return cache[text]

    def pattern(self, pattern: str, flags: int = 0) -> Matcher:
        key = f"/{pattern}/{int(flags)}"
        cache = self.caches["pattern"]
        if key not in cache:
            regex = re.compile(pattern, flags)

            def match_pattern(cursor: Cursor):
                start = cursor.position
                m = cursor.match_pattern(regex)
                if m is None:
                    return NO_MATCH
                return Node(raw=m.group(0), range=cursor.range_since(start))

            cache[key] = match_pattern
        return cache[key]

    # --- Combinators ---

    # Each combinator rewinds inline, keeping nested rules shallow on the stack.

    def sequence(self, tests: Tests) -> Matcher:
        if not isinstance(tests, (list, tuple)):
            return tests
        tests = list(tests)

        def match_sequence(cursor: Cursor):
            start = cursor.position
            results = []
            for test in tests:
                result = test(cursor)
                if result is NO_MATCH:
                    cursor.position = start
                    return NO_MATCH
                results.append(result)
            return results

        return match_sequence

    def alternation(self, tests: Sequence[Tests]) -> Matcher:
        candidates = [self.sequence(t) for t in tests]

        def match_alternation(cursor: Cursor):
            start = cursor.position
            for test in candidates:
                result = test(cursor)
                if result is not NO_MATCH:
                    return result
                cursor.position = start
            return NO_MATCH

        return match_alternation

    def _repeat(self, tests: Tests, at_least: int) -> Matcher:
        test = self.sequence(tests)

        def match_repeat(cursor: Cursor):
            start = cursor.position
            results = []
            while not cursor.at_end():
                before = cursor.position
                result = test(cursor)
                if result is NO_MATCH:
                    cursor.position = before
                    break
                results.append(result)
                if cursor.position == before:
                    # A match that consumes nothing would repeat forever.
                    break
            if len(results) < at_least:
                cursor.position = start
                return NO_MATCH
            return results

        return match_repeat

    def zero_or_more(self, tests: Tests) -> Matcher:
        return self._repeat(tests, 0)

    def one_or_more(self, tests: Tests) -> Matcher:
        return self._repeat(tests, 1)

    def optional(self, tests: Tests) -> Matcher:
        test = self.sequence(tests)

        def match_optional(cursor: Cursor):
            start = cursor.position
            result = test(cursor)
            if result is NO_MATCH:
                cursor.position = start
                return ABSENT
            return result

        return match_optional

    # --- Entry point ---

    def parse(self, source: str, kind: str = "Expression") -> Any:
        """Match `kind` against the whole of `source`."""
        if kind not in self.rules:
            raise GrammarError(f"Unknown rule '{kind}'")
        cursor = Cursor(source)
        try:
            result = self.rules[kind].test(cursor)
        except RecursionError:
            logger.warning("Input nested too deeply at offset %d", cursor.furthest)
            raise ParseError("Expression nested too deeply", cursor.furthest, source) from None
        if result is not NO_MATCH:
            self.pattern(r"\s*")(cursor)
        if result is NO_MATCH or not cursor.at_end():
            position = cursor.furthest
            if position >= len(source):
                message = "Unexpected end of input"
            else:
                message = f"Unexpected {source[position]!r}"
            raise ParseError(message, position, source)
        return result
