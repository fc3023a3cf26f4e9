"""Incremental glob matching over a growing console buffer.

Only `*` is special: it matches any run of zero or more characters,
newlines included. Matching is unanchored (the pattern may occur anywhere
in the buffer) and case-sensitive.

A pattern is split into its literal segments. The earliest-ending match is
found by locating each segment leftmost after the previous one, so the
search position only ever moves forward: new output is scanned once, apart
from a `len(segment) - 1` overlap for segments straddling two reads.
"""

from typing import Optional


class GlobPattern:
    """Compiled glob pattern."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self.segments = tuple(s for s in pattern.split('*') if s)

    def matcher(self) -> 'IncrementalMatch':
        """Return fresh search state for one buffer."""
        return IncrementalMatch(self.segments)

    def search(self, text: str) -> Optional[tuple[int, int]]:
        """Return (start, end) of the earliest-ending match in text, or None."""
        match = self.matcher()
        if match.search(text) is None:
            return None
        return match.start, match.end

    def __repr__(self):
        return f"GlobPattern({self.pattern!r})"


class IncrementalMatch:
    """Search state for one pattern against one append-only buffer.

    Call search() again whenever the buffer has grown; positions are
    offsets into that buffer, so the caller must not trim it until a
    match completes.
    """

    def __init__(self, segments: tuple):
        self.segments = segments
        self.start: int = 0
        self.end: Optional[int] = None
        self._index = 0
        self._pos = 0

    def search(self, buffer: str) -> Optional[int]:
        """Advance over buffer; return the match end offset once complete."""
        if self.end is not None:
            return self.end

        while self._index < len(self.segments):
            segment = self.segments[self._index]
            found = buffer.find(segment, self._pos)
            if found < 0:
                # The segment may still complete across the next read
                self._pos = max(self._pos, len(buffer) - len(segment) + 1)
                return None
            if self._index == 0:
                self.start = found
            self._pos = found + len(segment)
            self._index += 1

        self.end = self._pos
        return self.end


def glob_match(pattern: str, text: str) -> bool:
    """True if `pattern` occurs anywhere in `text`."""
    return GlobPattern(pattern).search(text) is not None
