"""Order-preserving fixed-size partitioning."""

from __future__ import annotations

from typing import List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> List[Tuple[T, ...]]:
    """Split *items* into contiguous tuples of *size*; the last may be shorter."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [tuple(items[start:start + size]) for start in range(0, len(items), size)]
