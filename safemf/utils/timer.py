#!filepath: safemf/utils/timer.py
import time
from contextlib import contextmanager
from typing import Dict, Iterator


class Timer:
    """
    Wall-clock timer for engine calls
    - start(name) / end(name) → seconds
    - measure(name) context manager records into ``durations``
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._start: Dict[str, float] = {}
        self.durations: Dict[str, float] = {}

    def start(self, name: str) -> None:
        if not self.enabled:
            return
        self._start[name] = time.perf_counter()

    def end(self, name: str) -> float:
        if not self.enabled or name not in self._start:
            return 0.0
        elapsed = time.perf_counter() - self._start.pop(name)
        self.durations[name] = elapsed
        return elapsed

    @contextmanager
    def measure(self, name: str) -> Iterator["Timer"]:
        self.start(name)
        try:
            yield self
        finally:
            self.end(name)
