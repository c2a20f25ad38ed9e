"""Ethical-usage validation and clamping for repeated runs."""

import json
import logging
from dataclasses import dataclass, field, replace
from typing import List

from loadtester import config
from loadtester.models import ExecutionConfig, RequestTemplate

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when a run must not start."""


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


@dataclass(frozen=True)
class ClampedConfig:
    config: ExecutionConfig
    warnings: List[str] = field(default_factory=list)


def validate_request(template: RequestTemplate) -> None:
    """Check the URL and, for non-GET methods, that the body is JSON.

    Raises:
        ValidationError: If the URL is blank or the body is not valid JSON.
    """
    if not template.url or not template.url.strip():
        raise ValidationError("Please enter a URL")

    if template.method.upper() != "GET" and template.body.strip():
        try:
            json.loads(template.body, parse_constant=_reject_constant)
        except ValueError as exc:
            raise ValidationError(f"Invalid JSON in request body: {exc}") from exc


class SafetyGuard:
    """Rejects unsafe runs and clamps configs to the ethical-usage limits."""

    def __init__(
        self,
        max_repetitions: int = config.MAX_REPETITIONS,
        max_concurrency: int = config.MAX_CONCURRENCY,
        min_delay_ms: int = config.MIN_DELAY_MS,
        delay_threshold: int = config.DELAY_ENFORCED_ABOVE_REPETITIONS,
    ):
        self.max_repetitions = max_repetitions
        self.max_concurrency = max_concurrency
        self.min_delay_ms = min_delay_ms
        self.delay_threshold = delay_threshold

    def validate(
        self,
        template: RequestTemplate,
        exec_config: ExecutionConfig,
        ethical_confirmation: bool,
    ) -> ClampedConfig:
        """Validate a run and return its clamped configuration.

        Each clamp is applied independently and adds a warning; none of them
        blocks the run. The caller's config is left untouched.

        Args:
            template: The request to repeat.
            exec_config: Requested repetitions, delay and concurrency.
            ethical_confirmation: Whether the user confirmed they may test
                this endpoint.

        Returns:
            A ClampedConfig with the adjusted config and any warnings.

        Raises:
            ValidationError: On a blank URL, a non-JSON body for a non-GET
                request, or a missing confirmation.
        """
        validate_request(template)
        if not ethical_confirmation:
            raise ValidationError(
                "Please confirm that you have permission to test this endpoint"
            )

        warnings: List[str] = []
        clamped = replace(
            exec_config,
            repetitions=max(1, exec_config.repetitions),
            concurrency=max(1, exec_config.concurrency),
            delay_ms=max(0, exec_config.delay_ms),
        )

        if clamped.repetitions > self.max_repetitions:
            warnings.append(
                f"For ethical reasons, repetitions have been limited to {self.max_repetitions}"
            )
        if clamped.concurrency > self.max_concurrency:
            warnings.append(
                f"For ethical reasons, concurrency has been limited to {self.max_concurrency}"
            )
        # Judged on the requested repetitions, before the cap above.
        needs_delay = (
            clamped.delay_ms < self.min_delay_ms
            and clamped.repetitions > self.delay_threshold
        )
        if needs_delay:
            warnings.append(
                f"For ethical reasons, delay has been increased to {self.min_delay_ms}ms"
            )

        clamped = replace(
            clamped,
            repetitions=min(clamped.repetitions, self.max_repetitions),
            concurrency=min(clamped.concurrency, self.max_concurrency),
            delay_ms=self.min_delay_ms if needs_delay else clamped.delay_ms,
        )

        for warning in warnings:
            logger.warning(warning)
        return ClampedConfig(config=clamped, warnings=warnings)
