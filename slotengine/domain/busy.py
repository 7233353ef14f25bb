"""
Busy interval aggregation.

Internal bookings and any number of external calendars are folded into one
sorted, non-overlapping list of busy spans. Provenance is dropped on merge;
the slot generator only needs the spans.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .exceptions import FetchError
from .models import BusyInterval, TimeRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalBusyResult:
    """Outcome of fetching one external calendar: its intervals or its error."""
    source: str
    intervals: Tuple[BusyInterval, ...] = field(default_factory=tuple)
    error: Optional[FetchError] = None

    def __post_init__(self):
        object.__setattr__(self, "intervals", tuple(self.intervals))

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class BusySnapshot:
    """
    Merged busy time for one request.

    ``degraded`` is set when at least one external source failed and was
    treated as empty, so the intervals may understate real busy time.
    """
    intervals: Tuple[TimeRange, ...]
    degraded: bool = False
    failed_sources: Tuple[str, ...] = ()


def merge_busy_intervals(
    *sources: Iterable[Union[BusyInterval, TimeRange]]
) -> List[TimeRange]:
    """
    Merge overlapping or touching busy spans from any number of sources.

    Example: [10:00-11:00, 10:30-12:00, 12:00-12:30, 12:31-13:00]
          -> [10:00-12:30, 12:31-13:00]

    Returns:
        Ascending spans; no two overlap or touch.
    """
    spans = [
        interval.time_range if isinstance(interval, BusyInterval) else interval
        for source in sources
        for interval in source
    ]
    if not spans:
        return []

    spans.sort(key=lambda span: span.start)
    merged: List[TimeRange] = [spans[0]]

    for current in spans[1:]:
        last = merged[-1]

        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = TimeRange(start=last.start, end=current.end)
        else:
            merged.append(current)

    return merged


def aggregate_busy_sources(
    internal: Sequence[BusyInterval],
    external: Sequence[ExternalBusyResult] = (),
) -> BusySnapshot:
    """
    Combine internal bookings with per-calendar fetch results.

    A failed external source contributes nothing and marks the snapshot
    as degraded; it never aborts the aggregation.
    """
    failed = tuple(result.source for result in external if result.failed)
    for result in external:
        if result.failed:
            logger.debug("Busy source %s unavailable: %s", result.source, result.error)

    merged = merge_busy_intervals(
        internal,
        *(result.intervals for result in external if not result.failed),
    )

    return BusySnapshot(
        intervals=tuple(merged),
        degraded=bool(failed),
        failed_sources=failed,
    )
