"""
Timing spans for network activity.
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from utils.logger import logger


class Profiler:
    """
    Records nested timing spans tagged by activity (e.g. "network").

    Spans are kept on a stack so every ``start_recording`` must be paired
    with one ``stop_recording``; ``recording()`` guarantees the pairing.
    Each asyncio task sees its own stack, so concurrent requests sharing a
    profiler never close each other's spans.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.totals: dict[str, float] = defaultdict(float)
        self.counts: dict[str, int] = defaultdict(int)
        self._stack: ContextVar[tuple[tuple[str, float], ...]] = ContextVar(
            f"profiler_stack_{id(self)}", default=()
        )

    @property
    def depth(self) -> int:
        """Number of spans currently open in this task."""
        return len(self._stack.get())

    def start_recording(self, tag: str) -> None:
        self._stack.set(self._stack.get() + ((tag, time.perf_counter()),))

    def stop_recording(self) -> float:
        """
        Close the innermost open span.

        Returns:
            Duration of the closed span in seconds (0.0 if none was open)
        """
        stack = self._stack.get()
        if not stack:
            return 0.0

        tag, started = stack[-1]
        self._stack.set(stack[:-1])
        elapsed = time.perf_counter() - started
        if self.enabled:
            self.totals[tag] += elapsed
            self.counts[tag] += 1
            logger.debug(f"{tag} span finished", extra={"tag": tag, "duration": round(elapsed, 4)})
        return elapsed

    @contextmanager
    def recording(self, tag: str) -> Iterator[None]:
        self.start_recording(tag)
        try:
            yield
        finally:
            self.stop_recording()
