"""Run lifecycle: validation, execution, stop handling, single requests."""

import logging
from typing import Callable, List, Optional

from loadtester.cancellation import CancellationController
from loadtester.models import (
    ExecutionConfig,
    RequestTemplate,
    ResultEntry,
    RunOutcome,
    RunStatus,
)
from loadtester.safety import ClampedConfig, SafetyGuard, validate_request
from loadtester.scheduler import BatchScheduler, StateSink, snapshot_request

logger = logging.getLogger(__name__)


class RunnerBusyError(Exception):
    """Raised when a run is started while another one is in progress."""


class LoadTestRunner:
    """Owns one repeated run at a time.

    Status moves IDLE -> VALIDATING -> RUNNING -> COMPLETED or STOPPED.
    A rejected validation puts the runner back to IDLE and re-raises.
    """

    def __init__(
        self,
        executor,
        guard: Optional[SafetyGuard] = None,
        scheduler: Optional[BatchScheduler] = None,
    ):
        self.guard = guard or SafetyGuard()
        self.scheduler = scheduler or BatchScheduler(executor)
        self.cancellation = CancellationController()
        self.status = RunStatus.IDLE
        self.warnings: List[str] = []
        self.outcome: Optional[RunOutcome] = None

    @property
    def is_running(self) -> bool:
        return self.status in (RunStatus.VALIDATING, RunStatus.RUNNING)

    async def start(
        self,
        template: RequestTemplate,
        exec_config: ExecutionConfig,
        ethical_confirmation: bool,
        on_entry: Optional[StateSink] = None,
        on_start: Optional[Callable[[ClampedConfig], None]] = None,
    ) -> RunOutcome:
        """Validate, clamp and execute a repeated run.

        ``on_start`` sees the clamped config and its warnings before the
        first request goes out.

        Raises:
            RunnerBusyError: If a run is already in progress.
            ValidationError: If the safety guard rejects the run.
        """
        if self.is_running:
            raise RunnerBusyError("A test is already running")

        self.status = RunStatus.VALIDATING
        self.warnings = []
        try:
            clamped = self.guard.validate(template, exec_config, ethical_confirmation)
        except Exception:
            self.status = RunStatus.IDLE
            raise
        self.warnings = list(clamped.warnings)
        if on_start is not None:
            on_start(clamped)

        self.cancellation.reset()
        self.status = RunStatus.RUNNING
        try:
            outcome = await self.scheduler.run(
                template, clamped.config, on_entry, self.cancellation
            )
        except BaseException:
            self.status = RunStatus.IDLE
            raise
        finally:
            self.cancellation.reset()

        self.outcome = outcome
        self.status = outcome.status
        return outcome

    def stop(self) -> bool:
        """Ask the current run to stop after its in-flight batch.

        Returns:
            True if a run was in progress to receive the request.
        """
        if self.status != RunStatus.RUNNING:
            return False
        logger.info("Stopping test; it will stop after the current batch of requests completes")
        self.cancellation.request_stop()
        return True


async def send_once(executor, template: RequestTemplate) -> ResultEntry:
    """Send a single request without the repeated-run safeguards.

    Raises:
        ValidationError: On a blank URL or a non-JSON body for non-GET methods.
    """
    validate_request(template)
    snapshot = snapshot_request(template)
    response = await executor.execute(template)
    logger.info(
        "Request completed: %s %s (%sms)",
        response.status, response.status_text, response.timing.total_ms,
    )
    return ResultEntry(request=snapshot, response=response)
