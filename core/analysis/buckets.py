"""
Time-Bucket Chart Aggregation

Groups events into a sparse date -> {shift number -> value} matrix for the
per-shift charts (achievement quantity, OEE average, rejection quantity,
loss-time minutes). Same shape for every chart, only value_of changes.
"""

from typing import Any, Callable, Dict, Hashable, Iterable, List

import pandas as pd

Buckets = Dict[Hashable, Dict[int, float]]


def bucket_by_date_and_shift(
    events: Iterable[Any],
    date_of: Callable[[Any], Hashable],
    shift_of: Callable[[Any], int],
    value_of: Callable[[Any], float]
) -> Buckets:
    """
    Sum event values into (date, shift) cells.

    Args:
        events: Events to aggregate
        date_of: Returns the date key of an event
        shift_of: Returns the shift number of an event
        value_of: Returns the value to sum

    Returns:
        Nested dict {date: {shift_number: summed value}}, dates in first-seen order

    Example:
        >>> buckets = bucket_by_date_and_shift(plans, lambda p: p.plan_date, shift_number, lambda p: p.actual_qty)
        >>> buckets[date(2025, 3, 7)][1]
        420
    """
    buckets: Buckets = {}

    for event in events:
        shift_map = buckets.setdefault(date_of(event), {})
        shift_number = shift_of(event)
        shift_map[shift_number] = shift_map.get(shift_number, 0) + value_of(event)

    return buckets


def average_by_date_and_shift(
    events: Iterable[Any],
    date_of: Callable[[Any], Hashable],
    shift_of: Callable[[Any], int],
    value_of: Callable[[Any], float],
    decimals: int = 1
) -> Buckets:
    """
    Average event values per (date, shift) cell.

    Dates keep their first-seen order.

    Returns:
        Nested dict {date: {shift_number: average value}}
    """
    df = pd.DataFrame(
        [{'date': date_of(e), 'shift': shift_of(e), 'value': float(value_of(e))} for e in events],
        columns=['date', 'shift', 'value']
    )
    if df.empty:
        return {}

    means = df.groupby(['date', 'shift'], sort=False)['value'].mean().round(decimals)

    buckets: Buckets = {}
    for (date_key, shift_number), value in means.items():
        buckets.setdefault(date_key, {})[int(shift_number)] = float(value)
    return buckets


def to_chart_rows(buckets: Buckets, date_format: Callable[[Hashable], str] = str) -> List[Dict[str, Any]]:
    """
    Flatten buckets into chart rows.

    Returns:
        [{'date': '2025-03-07', 'shift1': 420, 'shift2': 380}, ...] in date order
    """
    rows = []
    for date_key in sorted(buckets, key=str):
        row = {'date': date_format(date_key)}
        for shift_number in sorted(buckets[date_key]):
            row[f'shift{shift_number}'] = buckets[date_key][shift_number]
        rows.append(row)
    return rows
