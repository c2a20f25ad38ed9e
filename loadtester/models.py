"""Data models for request templates, run configuration, and run results."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class RequestTemplate:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""


@dataclass(frozen=True)
class ExecutionConfig:
    repetitions: int
    delay_ms: int  # pause between batches
    concurrency: int


@dataclass(frozen=True)
class TimingBreakdown:
    ttfb_ms: int = 0
    download_ms: int = 0
    processing_ms: int = 0

    @property
    def total_ms(self) -> int:
        return self.ttfb_ms + self.download_ms + self.processing_ms


@dataclass(frozen=True)
class ResponseRecord:
    status: int  # 0 when no HTTP exchange happened
    status_text: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    timing: TimingBreakdown = field(default_factory=TimingBreakdown)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class RequestSnapshot:
    id: str
    url: str
    method: str
    headers: Dict[str, str]
    body: str
    timestamp: datetime


@dataclass(frozen=True)
class ResultEntry:
    request: RequestSnapshot
    response: ResponseRecord


@dataclass(frozen=True)
class RunSummary:
    total_requests: int = 0
    success_count: int = 0
    failure_count: int = 0
    min_time_ms: int = 0
    max_time_ms: int = 0
    avg_time_ms: int = 0


@dataclass(frozen=True)
class RunState:
    started_at: datetime
    summary: RunSummary
    entries: Tuple[ResultEntry, ...] = ()
    mode: str = "repeated"


class RunStatus(enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RunOutcome:
    status: RunStatus  # COMPLETED or STOPPED
    state: RunState
    requested: int  # repetitions after clamping

    @property
    def summary(self) -> RunSummary:
        return self.state.summary

    @property
    def stopped_early(self) -> bool:
        return len(self.state.entries) < self.requested


@dataclass
class HistoryRecord:
    ts: str
    url: str
    method: str
    status: str
    requested: int
    summary: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    label: Optional[str] = None
