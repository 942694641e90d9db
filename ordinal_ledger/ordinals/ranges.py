"""Interval algebra for ordinal holdings.

An :class:`OrdinalRange` is a half-open interval ``[start, start + size)`` of
ordinal numbers. An :class:`OrdinalRangeSet` is the ordered list of ranges a
UTXO holds, where list order is acquisition order. Ranges are transferred
between sets with :meth:`OrdinalRangeSet.take`, which always consumes the
oldest ordinals first.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Tuple


class ConservationError(RuntimeError):
    """Raised when ordinals would be created, lost, or over-allocated."""


class RangeExhaustedError(ConservationError):
    """Raised when more ordinals are requested than a set holds."""


@dataclass
class OrdinalRange:
    """A contiguous block of ordinals starting at ``start``."""

    start: int
    size: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.size < 0:
            raise ValueError(f"invalid ordinal range ({self.start}, {self.size})")

    @property
    def end(self) -> int:
        return self.start + self.size

    def contains(self, ordinal: int) -> bool:
        return self.start <= ordinal < self.end

    def offset_of(self, ordinal: int) -> int:
        if not self.contains(ordinal):
            raise ValueError(f"ordinal {ordinal} is outside [{self.start}, {self.end})")
        return ordinal - self.start

    def take(self, n: int) -> "OrdinalRange":
        """Split ``min(n, size)`` ordinals off the front of this range.

        The returned range starts at the current ``start``; this range is
        advanced and shrunk in place by the same amount.
        """

        if n < 0:
            raise ValueError("cannot take a negative number of ordinals")
        taken = min(n, self.size)
        front = OrdinalRange(self.start, taken)
        self.start += taken
        self.size -= taken
        return front


class OrdinalRangeSet:
    """Ordered ranges held by one UTXO or one in-flight accumulation.

    The set owns its ranges. :meth:`concat` drains the other set and
    :meth:`take` hands ranges over to the returned set, so a range object is
    never reachable from two sets at once.
    """

    def __init__(self, ranges: Iterable[OrdinalRange] = ()) -> None:
        self._ranges: deque[OrdinalRange] = deque(ranges)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[int, int]]) -> "OrdinalRangeSet":
        return cls(OrdinalRange(start, size) for start, size in pairs)

    def __iter__(self) -> Iterator[OrdinalRange]:
        return iter(self._ranges)

    def __len__(self) -> int:
        return len(self._ranges)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OrdinalRangeSet):
            return NotImplemented
        return self.to_pairs() == other.to_pairs()

    def __repr__(self) -> str:
        return f"OrdinalRangeSet({self.to_pairs()!r})"

    @property
    def size(self) -> int:
        """Total number of ordinals held."""

        return sum(block.size for block in self._ranges)

    def to_pairs(self) -> List[Tuple[int, int]]:
        return [(block.start, block.size) for block in self._ranges]

    def copy(self) -> "OrdinalRangeSet":
        return OrdinalRangeSet(OrdinalRange(block.start, block.size) for block in self._ranges)

    def append(self, block: OrdinalRange) -> None:
        self._ranges.append(block)

    def concat(self, other: "OrdinalRangeSet") -> None:
        """Move every range of ``other`` onto the end of this set."""

        if other is self:
            raise ValueError("cannot concatenate a range set onto itself")
        self._ranges.extend(other._ranges)
        other._ranges.clear()

    def take(self, n: int) -> "OrdinalRangeSet":
        """Remove the ``n`` oldest ordinals and return them as a new set.

        Ranges are consumed in the order they were appended, and within a
        range from the lowest ordinal up. Asking for more ordinals than the
        set holds raises :class:`RangeExhaustedError` and leaves the set
        untouched.
        """

        if n < 0:
            raise ValueError("cannot take a negative number of ordinals")
        available = self.size
        if n > available:
            raise RangeExhaustedError(f"requested {n} ordinals but only {available} remain")

        taken = OrdinalRangeSet()
        remaining = n
        while remaining:
            head = self._ranges[0]
            if head.size <= remaining:
                self._ranges.popleft()
                remaining -= head.size
                if head.size:
                    taken.append(head)
            else:
                taken.append(head.take(remaining))
                remaining = 0
        return taken

    def get_nth(self, n: int) -> int:
        """Return the ordinal at position ``n`` without consuming anything."""

        if n < 0:
            raise ValueError("ordinal position must be non-negative")
        position = n
        for block in self._ranges:
            if position < block.size:
                return block.start + position
            position -= block.size
        raise RangeExhaustedError(f"position {n} is beyond the {self.size} ordinals held")

    def contains(self, ordinal: int) -> bool:
        return any(block.contains(ordinal) for block in self._ranges)

    def offset_of(self, ordinal: int) -> int:
        """Return the position of ``ordinal`` within the flattened set."""

        offset = 0
        for block in self._ranges:
            if block.contains(ordinal):
                return offset + block.offset_of(ordinal)
            offset += block.size
        raise ValueError(f"ordinal {ordinal} is not held by this set")


__all__ = ["ConservationError", "OrdinalRange", "OrdinalRangeSet", "RangeExhaustedError"]
