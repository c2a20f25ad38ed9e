"""Engine defaults, safety limits and logging setup."""

import logging
import os

# Logging
LOG_LEVEL = os.environ.get("LOADTESTER_LOG_LEVEL", "WARNING").upper()
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# Ethical-usage limits
MAX_REPETITIONS = 50
MAX_CONCURRENCY = 5
MIN_DELAY_MS = 100
DELAY_ENFORCED_ABOVE_REPETITIONS = 10  # min delay only applies past this many reps

# Scheduler pacing
STAGGER_DELAY_MS = 5  # between requests of the same batch
PRE_REQUEST_DELAY_MS = 5

# Executor
REQUEST_TIMEOUT_SECONDS = float(os.environ.get("LOADTESTER_TIMEOUT_SECONDS", "30"))
CACHE_BUST_PARAM = "_cb"

# Profile defaults (match the web tool's form defaults)
DEFAULT_METHOD = "GET"
DEFAULT_REPETITIONS = 10
DEFAULT_DELAY_MS = 500
DEFAULT_CONCURRENCY = 1


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for command-line use."""
    level = logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT)
