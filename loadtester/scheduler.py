"""Concurrency-bounded batch scheduling of repeated requests."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from loadtester import config
from loadtester.cancellation import CancellationController
from loadtester.models import (
    ExecutionConfig,
    RequestSnapshot,
    RequestTemplate,
    ResultEntry,
    RunOutcome,
    RunState,
    RunStatus,
)
from loadtester.stats import summarize

logger = logging.getLogger(__name__)

StateSink = Callable[[RunState], None]


def snapshot_request(template: RequestTemplate) -> RequestSnapshot:
    return RequestSnapshot(
        id=str(uuid.uuid4()),
        url=template.url,
        method=template.method,
        headers=dict(template.headers),
        body=template.body,
        timestamp=datetime.now(timezone.utc),
    )


class BatchScheduler:
    """Drives a repeated run through consecutive batches of requests.

    A batch holds up to ``min(concurrency, repetitions)`` requests started a
    few milliseconds apart. The whole batch is awaited before the next one
    starts, and ``delay_ms`` separates batches. Cancellation is polled before
    each batch and before each request; in-flight requests always finish.
    """

    def __init__(
        self,
        executor,
        stagger_ms: int = config.STAGGER_DELAY_MS,
        pre_request_delay_ms: int = config.PRE_REQUEST_DELAY_MS,
    ):
        self.executor = executor
        self.stagger_ms = stagger_ms
        self.pre_request_delay_ms = pre_request_delay_ms

    async def run(
        self,
        template: RequestTemplate,
        exec_config: ExecutionConfig,
        on_entry: Optional[StateSink] = None,
        cancellation: Optional[CancellationController] = None,
    ) -> RunOutcome:
        """Execute an already clamped run.

        Args:
            template: The request to repeat.
            exec_config: Clamped repetitions, delay and concurrency.
            on_entry: Receives a RunState after every entry and once at the end.
            cancellation: Stop flag polled at the batch and request checkpoints.

        Returns:
            A RunOutcome, COMPLETED when every repetition produced an entry and
            STOPPED otherwise.
        """
        cancellation = cancellation or CancellationController()
        started_at = datetime.now(timezone.utc)
        entries: List[ResultEntry] = []
        total = exec_config.repetitions
        concurrency = max(1, min(exec_config.concurrency, total))

        def emit() -> RunState:
            state = RunState(
                started_at=started_at,
                summary=summarize(entries),
                entries=tuple(entries),
            )
            if on_entry is not None:
                try:
                    on_entry(state)
                except Exception:
                    logger.exception("Result sink raised; continuing run")
            return state

        async def process(index: int, previous: Optional[asyncio.Future], committed: asyncio.Future):
            try:
                await asyncio.sleep(self.pre_request_delay_ms / 1000)
                if cancellation.is_stop_requested():
                    return None

                snapshot = snapshot_request(template)
                response = await self.executor.execute(template)
                entry = ResultEntry(request=snapshot, response=response)

                # Commit in issuance order, whatever order responses arrive in.
                if previous is not None:
                    await previous
                entries.append(entry)
                logger.debug(
                    "Request %d/%d: %s in %sms",
                    index + 1, total, response.status, response.timing.total_ms,
                )
                emit()
                return entry
            finally:
                if not committed.done():
                    committed.set_result(None)

        logger.info(
            "Starting repeated run: %d requests to %s, concurrency %d, delay %dms",
            total, template.url, concurrency, exec_config.delay_ms,
        )
        loop = asyncio.get_running_loop()

        for batch_start in range(0, total, concurrency):
            if cancellation.is_stop_requested():
                break

            batch = []
            previous = None
            for j in range(min(concurrency, total - batch_start)):
                if j > 0:
                    await asyncio.sleep(self.stagger_ms / 1000)
                committed = loop.create_future()
                batch.append(asyncio.ensure_future(process(batch_start + j, previous, committed)))
                previous = committed

            results = await asyncio.gather(*batch)
            if any(result is None for result in results):
                break

            more_batches = batch_start + concurrency < total
            if more_batches and exec_config.delay_ms > 0 and not cancellation.is_stop_requested():
                await asyncio.sleep(exec_config.delay_ms / 1000)

        final_state = emit()
        status = RunStatus.STOPPED if len(entries) < total else RunStatus.COMPLETED
        logger.info(
            "Repeated run %s: %d/%d requests, %d succeeded",
            status.value, len(entries), total, final_state.summary.success_count,
        )
        return RunOutcome(status=status, state=final_state, requested=total)
