"""Human-readable and JSON renderings of run outcomes."""

from dataclasses import asdict
from typing import List

from loadtester.models import ResponseRecord, ResultEntry, RunOutcome, RunState, RunStatus


def build_narrative(outcome: RunOutcome) -> str:
    """Summarize a finished run the way the web tool's notifications did."""
    summary = outcome.summary
    lines = []
    if outcome.status == RunStatus.STOPPED:
        lines.append("Test Stopped")
        lines.append(
            f"Completed {summary.success_count}/{summary.total_requests} requests "
            f"successfully before stopping. Avg: {summary.avg_time_ms}ms"
        )
        lines.append(
            f"Test stopped early ({summary.total_requests}/{outcome.requested} "
            f"requests completed)"
        )
    else:
        lines.append("Repeated Test Completed")
        lines.append(
            f"Completed {summary.success_count}/{outcome.requested} requests "
            f"successfully. Avg: {summary.avg_time_ms}ms, "
            f"Min: {summary.min_time_ms}ms, Max: {summary.max_time_ms}ms"
        )

    failed = [e for e in outcome.state.entries if not e.response.ok]
    if failed:
        lines.append(f"Failures: {len(failed)}")
        statuses = sorted({e.response.status for e in failed})
        lines.append("  - statuses: " + ", ".join(str(s) for s in statuses))

    return "\n".join(lines)


def progress_line(state: RunState, requested: int) -> str:
    summary = state.summary
    percent = int(summary.total_requests * 100 / requested + 0.5) if requested else 100
    last = state.entries[-1].response if state.entries else None
    detail = f" last={last.status} {last.timing.total_ms}ms" if last else ""
    return (
        f"[{summary.total_requests}/{requested} {percent}%] "
        f"ok={summary.success_count} fail={summary.failure_count} "
        f"avg={summary.avg_time_ms}ms{detail}"
    )


def describe_response(response: ResponseRecord) -> List[str]:
    timing = response.timing
    return [
        f"Status: {response.status} {response.status_text}",
        (
            f"Time: {timing.total_ms}ms (ttfb {timing.ttfb_ms}ms, "
            f"download {timing.download_ms}ms, processing {timing.processing_ms}ms)"
        ),
    ]


def entry_to_dict(entry: ResultEntry) -> dict:
    request = asdict(entry.request)
    request["timestamp"] = entry.request.timestamp.isoformat()
    response = asdict(entry.response)
    response["timing"]["total_ms"] = entry.response.timing.total_ms
    return {"request": request, "response": response}


def outcome_to_dict(outcome: RunOutcome, include_entries: bool = True) -> dict:
    data = {
        "mode": outcome.state.mode,
        "status": outcome.status.value,
        "started_at": outcome.state.started_at.isoformat(),
        "requested": outcome.requested,
        "stopped_early": outcome.stopped_early,
        "summary": asdict(outcome.summary),
    }
    if include_entries:
        data["entries"] = [entry_to_dict(e) for e in outcome.state.entries]
    return data
