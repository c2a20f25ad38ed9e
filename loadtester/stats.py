"""Summary statistics over a run's result entries."""

from typing import Sequence

from loadtester.models import ResultEntry, RunSummary


def summarize(entries: Sequence[ResultEntry]) -> RunSummary:
    """Recompute a RunSummary from the full list of entries.

    Only entries with a positive total time contribute to min/max and to the
    time sum. The average divides that sum by the success count, so timed
    failures still weigh on it; callers comparing runs against earlier
    reports rely on this arithmetic.

    Args:
        entries: Result entries in issuance order.

    Returns:
        The summary for those entries.
    """
    success = 0
    total_time = 0
    min_time = None
    max_time = 0

    for entry in entries:
        response = entry.response
        if response.ok:
            success += 1

        elapsed = response.timing.total_ms
        if elapsed > 0:
            total_time += elapsed
            min_time = elapsed if min_time is None else min(min_time, elapsed)
            max_time = max(max_time, elapsed)

    # half-up rounding; values are never negative
    avg = int(total_time / success + 0.5) if success > 0 else 0

    return RunSummary(
        total_requests=len(entries),
        success_count=success,
        failure_count=len(entries) - success,
        min_time_ms=min_time if min_time is not None else 0,
        max_time_ms=max_time,
        avg_time_ms=avg,
    )
