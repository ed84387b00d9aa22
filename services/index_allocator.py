# services/index_allocator.py
from typing import Iterable

from utils.image_names import parse_name


def max_index(names: Iterable[str]) -> int:
    """Highest leading integer among valid image names; 0 when there are none."""
    highest = 0
    for n in names:
        parsed = parse_name(n)
        if parsed and parsed.index > highest:
            highest = parsed.index
    return highest


def next_index(store, namespace: str) -> int:
    """
    max + 1 over the namespace listing (1 for an empty collection).
    Not atomic by itself; callers hold the collection lock.
    """
    return max_index(store.list(namespace)) + 1
