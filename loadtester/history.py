"""Append-only run history in JSONL format."""

import json
import os
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Optional

from loadtester.models import HistoryRecord, RequestTemplate, RunOutcome


def create_record(
    template: RequestTemplate,
    outcome: RunOutcome,
    warnings: Optional[List[str]] = None,
    label: Optional[str] = None,
) -> HistoryRecord:
    """Build a HistoryRecord for a finished run with the current UTC timestamp."""
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return HistoryRecord(
        ts=ts,
        url=template.url,
        method=template.method,
        status=outcome.status.value,
        requested=outcome.requested,
        summary=asdict(outcome.summary),
        warnings=list(warnings or []),
        label=label,
    )


def append_record(record: HistoryRecord, log_path: str) -> None:
    """Append a single record as a JSONL line.

    Creates the file (and parent directories) if it does not exist.
    Never overwrites existing entries.
    """
    parent = os.path.dirname(log_path)
    if parent and not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)

    with open(log_path, "a") as f:
        f.write(json.dumps(asdict(record)) + "\n")


def read_records(log_path: str) -> List[HistoryRecord]:
    """Read all records from a JSONL history log. Malformed lines are skipped."""
    if not os.path.isfile(log_path):
        return []

    records = []
    with open(log_path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(raw, dict):
                continue
            records.append(HistoryRecord(
                ts=raw.get("ts", ""),
                url=raw.get("url", ""),
                method=raw.get("method", ""),
                status=raw.get("status", ""),
                requested=raw.get("requested", 0),
                summary=raw.get("summary", {}),
                warnings=raw.get("warnings", []),
                label=raw.get("label"),
            ))
    return records
