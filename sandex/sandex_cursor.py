"""
Positional reader over source text, consumed by the grammar matchers.
"""
import re
from typing import Optional, Pattern

from sandex.sandex_datatypes import Range


class Cursor:
    """Tracks the current offset into `source`.

    Matching advances `position` only on success. `furthest` remembers the
    largest offset any attempt reached so parse errors can point at it.
    """

    def __init__(self, source: str, position: int = 0):
        self.source = source
        self.position = position
        self.furthest = position

    def __repr__(self):
        return f"<Cursor {self.position}/{len(self.source)}>"

    def _touch(self, offset: int):
        if offset > self.furthest:
            self.furthest = offset

    def match_literal(self, text: str) -> Optional[str]:
        if self.source.startswith(text, self.position):
            self.position += len(text)
            self._touch(self.position)
            return text
        self._touch(self.position)
        return None

    def match_pattern(self, regex: Pattern) -> Optional[re.Match]:
        m = regex.match(self.source, self.position)
        if m:
            self.position = m.end()
            self._touch(self.position)
            return m
        self._touch(self.position)
        return None

    def at_end(self) -> bool:
        return self.position >= len(self.source)

    def range_since(self, start: int) -> Range:
        return Range(start, self.position)

    def text(self, rng: Range) -> str:
        return self.source[rng.start:rng.end]
