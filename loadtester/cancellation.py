"""Cooperative stop signal shared between a run and whoever controls it."""

import asyncio


class CancellationController:
    """Stop flag polled by the scheduler. Setting it aborts nothing in flight."""

    def __init__(self):
        self._stop_event = asyncio.Event()

    def request_stop(self) -> None:
        self._stop_event.set()

    def is_stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def reset(self) -> None:
        self._stop_event.clear()
