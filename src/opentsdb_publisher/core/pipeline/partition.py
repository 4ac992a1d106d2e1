"""Splitting of meters into request-sized batches."""
from typing import Iterator, List, Sequence, TypeVar

T = TypeVar('T')


def partition(items: Sequence[T], batch_size: int) -> Iterator[List[T]]:
    """
    Split items into contiguous batches.

    Every batch holds ``batch_size`` items except possibly the last one,
    which holds the remainder. Concatenating the batches gives back the
    original sequence.

    Args:
        items: Items to split
        batch_size: Maximum number of items in a batch

    Returns:
        Iterator[List[T]]: Batches in order

    Raises:
        ValueError: If batch_size is not positive
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be a positive integer, got {batch_size}")
    return (list(items[start:start + batch_size]) for start in range(0, len(items), batch_size))
