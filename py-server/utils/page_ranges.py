"""
Page-range expression parsing.

Turns user-supplied expressions such as ``"1,3,5-8"`` into a PageSelector of
0-based indices. Parsing is split in two phases so syntax can be checked
before a document is opened:

    >>> tokens = parse_expression("3, 1-2, 3")
    >>> resolve(tokens, total_pages=5).indices
    (2, 0, 1)

Out-of-bounds page numbers are dropped; malformed tokens raise
MalformedRangeError naming the token.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple, Iterable, Optional

from utils.validation import MalformedRangeError

_SINGLE_RE = re.compile(r"^\d+$")
_RANGE_RE = re.compile(r"^(\d*)\s*-\s*(\d*)$")

# (first, last) 1-based, inclusive; a single page is (n, n)
RangeToken = Tuple[int, int]


@dataclass(frozen=True)
class PageSelector:
    """Ordered, deduplicated 0-based page indices bound to a document length."""

    indices: Tuple[int, ...]
    total_pages: int

    @property
    def is_empty(self) -> bool:
        return not self.indices

    def __len__(self) -> int:
        return len(self.indices)

    def __iter__(self):
        return iter(self.indices)

    def __contains__(self, index: int) -> bool:
        return index in self.indices

    def ascending(self) -> List[int]:
        """Indices in natural reading order."""
        return sorted(self.indices)

    def complement(self) -> 'PageSelector':
        """Every page of the document not in this selector, ascending."""
        selected = set(self.indices)
        return PageSelector(
            indices=tuple(i for i in range(self.total_pages) if i not in selected),
            total_pages=self.total_pages,
        )

    def display(self, ascending: bool = False) -> str:
        """1-based page list as shown to users, e.g. ``"2, 4"``."""
        indices = self.ascending() if ascending else self.indices
        return ", ".join(str(i + 1) for i in indices)

    @classmethod
    def all_pages(cls, total_pages: int) -> 'PageSelector':
        return cls(indices=tuple(range(total_pages)), total_pages=total_pages)

    @classmethod
    def from_indices(cls, indices: Iterable[int], total_pages: int) -> 'PageSelector':
        """Build from raw 0-based indices, dropping out-of-range values and duplicates."""
        seen = set()
        ordered: List[int] = []
        for index in indices:
            if 0 <= index < total_pages and index not in seen:
                seen.add(index)
                ordered.append(index)
        return cls(indices=tuple(ordered), total_pages=total_pages)


def parse_expression(expression: Optional[str]) -> List[RangeToken]:
    """
    Check the syntax of a range expression without knowing the page count.

    Args:
        expression: Comma-separated tokens, each ``N`` or ``A-B``

    Returns:
        List of (first, last) 1-based inclusive pairs in token order

    Raises:
        MalformedRangeError: On the first token that is not a number or a valid range
    """
    if expression is None or not expression.strip():
        raise MalformedRangeError(expression or "", "expression is empty")

    tokens: List[RangeToken] = []
    for raw in expression.split(","):
        token = raw.strip()
        if not token:
            raise MalformedRangeError(raw, "empty token")

        if _SINGLE_RE.match(token):
            page = int(token)
            tokens.append((page, page))
            continue

        match = _RANGE_RE.match(token)
        if not match:
            raise MalformedRangeError(token)

        start_text, end_text = match.groups()
        if not start_text or not end_text:
            raise MalformedRangeError(token, "range is missing an operand")

        start, end = int(start_text), int(end_text)
        if start > end:
            raise MalformedRangeError(token, "range start is greater than its end")
        tokens.append((start, end))

    return tokens


def resolve(tokens: Iterable[RangeToken], total_pages: int) -> PageSelector:
    """
    Bind parsed tokens to a document of `total_pages` pages.

    Pages outside ``[1, total_pages]`` are dropped. Order follows the tokens;
    a page repeated by a later token keeps its first position.
    """
    indices = (
        page - 1
        for first, last in tokens
        for page in range(max(first, 1), min(last, total_pages) + 1)
    )
    return PageSelector.from_indices(indices, total_pages)


def parse(expression: str, total_pages: int) -> PageSelector:
    """Parse `expression` against a document of `total_pages` pages."""
    return resolve(parse_expression(expression), total_pages)


def clamp_range(start: int, end: int, total_pages: int) -> Tuple[int, int]:
    """
    Clamp a 1-based inclusive range to ``[1, total_pages]``.

    The result may be empty (first > last) when the range lies entirely
    outside the document.
    """
    return max(start, 1), min(end, total_pages)


__all__ = [
    'PageSelector',
    'RangeToken',
    'parse',
    'parse_expression',
    'resolve',
    'clamp_range',
]
