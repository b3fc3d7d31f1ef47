# grantledger/services/round_robin.py
"""
Pure cursor arithmetic for balanced round-robin reviewer assignment.

For a pool of size P the k-th slot of an application goes to the reviewer
at position (cursor + k) mod P. After T slots have been consumed under the
same pool the cursor is T mod P, and every reviewer has received either
floor(T / P) or ceil(T / P) of those slots.
"""
from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from grantledger.core.errors import ParameterError


def cursor_for(total_assigned: int, pool_size: int) -> int:
    if pool_size <= 0:
        raise ParameterError("Reviewer pool must not be empty.")
    return total_assigned % pool_size


def slot_positions(cursor: int, pool_size: int, num_per_application: int) -> List[int]:
    if pool_size <= 0:
        raise ParameterError("Reviewer pool must not be empty.")
    return [(cursor + k) % pool_size for k in range(num_per_application)]


def advance(cursor: int, num_per_application: int, pool_size: int) -> int:
    return (cursor + num_per_application) % pool_size


def plan(
    pool: Sequence[str],
    *,
    cursor: int,
    num_per_application: int,
    num_applications: int,
) -> Tuple[List[List[str]], int]:
    """
    Reviewers for each of the next `num_applications` applications, and the
    cursor after them. The cursor carries over between applications.
    """
    batches: List[List[str]] = []
    for _ in range(num_applications):
        batches.append([pool[i] for i in slot_positions(cursor, len(pool), num_per_application)])
        cursor = advance(cursor, num_per_application, len(pool))
    return batches, cursor


def expected_counts(pool: Sequence[str], total_assigned: int) -> Dict[str, int]:
    """
    Per-position share of `total_assigned` slots, starting from cursor 0.
    Duplicated addresses accumulate.
    """
    size = len(pool)
    if size == 0:
        raise ParameterError("Reviewer pool must not be empty.")
    base, extra = divmod(total_assigned, size)
    counts: Dict[str, int] = {}
    for position, reviewer in enumerate(pool):
        counts[reviewer] = counts.get(reviewer, 0) + base + (1 if position < extra else 0)
    return counts
