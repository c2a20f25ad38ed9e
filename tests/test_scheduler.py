"""Tests for batch scheduling, ordering and cooperative cancellation."""

import asyncio
import time

from loadtester.cancellation import CancellationController
from loadtester.models import (
    ExecutionConfig,
    RequestTemplate,
    ResponseRecord,
    RunStatus,
    TimingBreakdown,
)
from loadtester.scheduler import BatchScheduler


TEMPLATE = RequestTemplate(url="https://example.test/ok", method="GET")


class FakeExecutor:
    """Records call order and how many calls overlap."""

    def __init__(self, latencies=None, statuses=None):
        self.latencies = latencies or []
        self.statuses = statuses or []
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.started_at = []

    async def execute(self, template):
        index = self.calls
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started_at.append(time.perf_counter())
        latency = self.latencies[index] if index < len(self.latencies) else 0.01
        await asyncio.sleep(latency)
        self.in_flight -= 1
        status = self.statuses[index] if index < len(self.statuses) else 200
        return ResponseRecord(
            status=status,
            status_text=str(index),  # lets tests see which call produced an entry
            timing=TimingBreakdown(ttfb_ms=int(latency * 1000)),
        )


def _run(scheduler, exec_config, on_entry=None, cancellation=None):
    return asyncio.run(scheduler.run(TEMPLATE, exec_config, on_entry, cancellation))


class TestBatching:
    def test_scenario_a_five_batches_of_two(self):
        executor = FakeExecutor()
        scheduler = BatchScheduler(executor)
        outcome = _run(scheduler, ExecutionConfig(repetitions=10, delay_ms=0, concurrency=2))

        assert outcome.status == RunStatus.COMPLETED
        assert len(outcome.state.entries) == 10
        assert outcome.summary.total_requests == 10
        assert executor.max_in_flight == 2
        assert not outcome.stopped_early

    def test_effective_concurrency_limited_by_repetitions(self):
        # slow enough that the first call is still in flight when the third starts
        executor = FakeExecutor(latencies=[0.1] * 3)
        outcome = _run(BatchScheduler(executor), ExecutionConfig(repetitions=3, delay_ms=0, concurrency=5))
        assert executor.max_in_flight == 3
        assert len(outcome.state.entries) == 3

    def test_last_batch_may_be_smaller(self):
        executor = FakeExecutor()
        outcome = _run(BatchScheduler(executor), ExecutionConfig(repetitions=7, delay_ms=0, concurrency=3))
        assert executor.calls == 7
        assert len(outcome.state.entries) == 7

    def test_batches_do_not_overlap(self):
        # a slow first batch must finish before the second one starts
        executor = FakeExecutor(latencies=[0.15, 0.01, 0.01, 0.01])
        _run(BatchScheduler(executor), ExecutionConfig(repetitions=4, delay_ms=0, concurrency=2))
        assert executor.started_at[2] - executor.started_at[0] >= 0.14

    def test_inter_batch_delay_applied(self):
        executor = FakeExecutor(latencies=[0.0] * 4)
        start = time.perf_counter()
        _run(BatchScheduler(executor), ExecutionConfig(repetitions=4, delay_ms=100, concurrency=2))
        # one pause between the two batches, none after the last
        elapsed = time.perf_counter() - start
        assert elapsed >= 0.1
        assert executor.started_at[2] - executor.started_at[1] >= 0.09

    def test_requests_staggered_within_batch(self):
        executor = FakeExecutor(latencies=[0.05] * 3)
        _run(BatchScheduler(executor, stagger_ms=20), ExecutionConfig(repetitions=3, delay_ms=0, concurrency=3))
        assert executor.started_at[1] - executor.started_at[0] >= 0.015
        assert executor.started_at[2] - executor.started_at[1] >= 0.015


class TestOrderingAndEmission:
    def test_entries_follow_issuance_order(self):
        # first request of the batch answers last
        executor = FakeExecutor(latencies=[0.12, 0.01, 0.01])
        outcome = _run(BatchScheduler(executor), ExecutionConfig(repetitions=3, delay_ms=0, concurrency=3))
        assert [e.response.status_text for e in outcome.state.entries] == ["0", "1", "2"]

    def test_state_emitted_after_each_entry_and_at_end(self):
        states = []
        executor = FakeExecutor()
        _run(
            BatchScheduler(executor),
            ExecutionConfig(repetitions=4, delay_ms=0, concurrency=2),
            on_entry=states.append,
        )
        assert len(states) == 5
        assert [s.summary.total_requests for s in states] == [1, 2, 3, 4, 4]
        for state in states:
            assert state.summary.total_requests == len(state.entries)
            assert state.mode == "repeated"

    def test_emitted_snapshots_are_independent(self):
        states = []
        _run(
            BatchScheduler(FakeExecutor()),
            ExecutionConfig(repetitions=3, delay_ms=0, concurrency=1),
            on_entry=states.append,
        )
        assert len(states[0].entries) == 1
        assert isinstance(states[0].entries, tuple)

    def test_entries_have_unique_ids(self):
        outcome = _run(BatchScheduler(FakeExecutor()), ExecutionConfig(repetitions=5, delay_ms=0, concurrency=5))
        ids = {e.request.id for e in outcome.state.entries}
        assert len(ids) == 5
        assert all(e.request.url == TEMPLATE.url for e in outcome.state.entries)

    def test_failures_counted_and_run_continues(self):
        executor = FakeExecutor(statuses=[200, 0, 500, 200])
        outcome = _run(BatchScheduler(executor), ExecutionConfig(repetitions=4, delay_ms=0, concurrency=2))
        assert outcome.status == RunStatus.COMPLETED
        assert outcome.summary.success_count == 2
        assert outcome.summary.failure_count == 2
        for entry in outcome.state.entries:
            counted = 200 <= entry.response.status < 300
            assert counted == entry.response.ok

    def test_sink_errors_do_not_abort_run(self):
        def broken_sink(state):
            raise RuntimeError("render failed")

        outcome = _run(
            BatchScheduler(FakeExecutor()),
            ExecutionConfig(repetitions=3, delay_ms=0, concurrency=1),
            on_entry=broken_sink,
        )
        assert len(outcome.state.entries) == 3


class TestCancellation:
    def test_scenario_c_stop_after_first_batch(self):
        cancellation = CancellationController()

        def on_entry(state):
            if len(state.entries) == 2:
                cancellation.request_stop()

        executor = FakeExecutor()
        outcome = _run(
            BatchScheduler(executor),
            ExecutionConfig(repetitions=10, delay_ms=0, concurrency=2),
            on_entry=on_entry,
            cancellation=cancellation,
        )
        assert len(outcome.state.entries) == 2
        assert executor.calls == 2
        assert outcome.status == RunStatus.STOPPED
        assert outcome.summary.total_requests < outcome.requested
        assert outcome.stopped_early

    def test_stop_before_start_issues_nothing(self):
        cancellation = CancellationController()
        cancellation.request_stop()
        executor = FakeExecutor()
        outcome = _run(
            BatchScheduler(executor),
            ExecutionConfig(repetitions=4, delay_ms=0, concurrency=2),
            cancellation=cancellation,
        )
        assert executor.calls == 0
        assert outcome.summary.total_requests == 0
        assert outcome.status == RunStatus.STOPPED

    def test_in_flight_requests_finish_after_stop(self):
        cancellation = CancellationController()
        executor = FakeExecutor(latencies=[0.05, 0.2, 0.01, 0.01])

        def on_entry(state):
            if len(state.entries) == 1:
                cancellation.request_stop()

        outcome = _run(
            BatchScheduler(executor),
            ExecutionConfig(repetitions=4, delay_ms=0, concurrency=2),
            on_entry=on_entry,
            cancellation=cancellation,
        )
        # the second request was already dispatched, so its entry is kept
        assert len(outcome.state.entries) == 2
        assert outcome.status == RunStatus.STOPPED

    def test_stop_skips_inter_batch_delay(self):
        cancellation = CancellationController()

        def on_entry(state):
            if len(state.entries) == 1:
                cancellation.request_stop()

        start = time.perf_counter()
        outcome = _run(
            BatchScheduler(FakeExecutor()),
            ExecutionConfig(repetitions=3, delay_ms=1000, concurrency=1),
            on_entry=on_entry,
            cancellation=cancellation,
        )
        assert time.perf_counter() - start < 0.9
        assert len(outcome.state.entries) == 1


class TestCancellationController:
    def test_flag_lifecycle(self):
        controller = CancellationController()
        assert controller.is_stop_requested() is False
        controller.request_stop()
        assert controller.is_stop_requested() is True
        controller.reset()
        assert controller.is_stop_requested() is False
