# booking_engine/utils/intervals.py
"""
Half-open interval arithmetic on (start, end) datetime tuples.

Every interval is [start, end): two intervals that only touch do not
overlap.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

Interval = Tuple[datetime, datetime]


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """True if [a_start, a_end) overlaps [b_start, b_end)"""
    return a_start < b_end and b_start < a_end


def contains(outer: Interval, inner: Interval) -> bool:
    return outer[0] <= inner[0] and inner[1] <= outer[1]


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Merge overlapping or adjacent intervals, returned sorted by start"""
    ordered = sorted(i for i in intervals if i[0] < i[1])
    if not ordered:
        return []

    merged = [ordered[0]]
    for start, end in ordered[1:]:
        last_start, last_end = merged[-1]
        if start <= last_end:
            if end > last_end:
                merged[-1] = (last_start, end)
        else:
            merged.append((start, end))
    return merged


def subtract_interval(interval: Interval, block: Interval) -> List[Interval]:
    """
    Remove block from interval.

    Returns 0, 1 or 2 intervals:
    - no overlap -> [interval]
    - block covers interval -> []
    - block covers the head or the tail -> [remaining part]
    - block strictly inside -> [head, tail]
    """
    start, end = interval
    block_start, block_end = block

    if not overlaps(start, end, block_start, block_end):
        return [interval]

    remaining = []
    if block_start > start:
        remaining.append((start, block_start))
    if block_end < end:
        remaining.append((block_end, end))
    return remaining


def subtract_intervals(intervals: Iterable[Interval], blocks: Iterable[Interval]) -> List[Interval]:
    """Remove every block from every interval"""
    result = list(intervals)
    for block in blocks:
        next_result = []
        for interval in result:
            next_result.extend(subtract_interval(interval, block))
        result = next_result
    return sorted(result)


def clip_interval(interval: Interval, bounds: Interval) -> Optional[Interval]:
    """Intersection of interval with bounds, or None when they do not overlap"""
    start = max(interval[0], bounds[0])
    end = min(interval[1], bounds[1])
    if start >= end:
        return None
    return start, end
