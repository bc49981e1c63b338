"""
Batch splitting for identifier lists
"""
from typing import Iterator, List, Sequence, TypeVar

T = TypeVar('T')


def split(items: Sequence[T], chunk_size: int) -> Iterator[List[T]]:
    """Lazily split an ordered sequence into consecutive windows.

    Every window holds ``chunk_size`` items except possibly the last one, and
    the windows concatenated in order reproduce ``items`` exactly.

    Example:
        >>> [len(b) for b in split(list(range(450)), 200)]
        [200, 200, 50]
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    for start in range(0, len(items), chunk_size):
        yield list(items[start:start + chunk_size])
