"""
Priority reduction over ordered sources.

Two composites in the kernel share one shape: walk an ordered sequence of
candidates and keep the one with the highest priority, earliest wins on ties.

- Secrets: priority 1 for "found", 0 for "not found"; stop at the first hit.
- Health: priority is severity; worst-of-N, stop early once UNHEALTHY is seen.

Candidates may be a lazy iterable. When a ``ceiling`` is given the walk
stops as soon as a candidate reaches it, so later sources are never probed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")


def reduce_by_priority(
    candidates: Iterable[T],
    priority: Callable[[T], int],
    default: T,
    *,
    ceiling: int | None = None,
) -> T:
    """Return the highest-priority candidate, or *default* if none beats it.

    Args:
        candidates: Ordered (possibly lazy) candidates
        priority: Ranks a candidate; higher wins
        default: Result when *candidates* is empty or nothing outranks it
        ceiling: Stop consuming candidates once one reaches this priority

    Example:
        >>> reduce_by_priority([1, 3, 2], priority=lambda v: v, default=0)
        3
    """
    selected = default
    selected_rank = priority(default)
    if ceiling is not None and selected_rank >= ceiling:
        return selected

    for candidate in candidates:
        rank = priority(candidate)
        if rank > selected_rank:
            selected, selected_rank = candidate, rank
            if ceiling is not None and rank >= ceiling:
                break
    return selected


__all__ = ["reduce_by_priority"]
