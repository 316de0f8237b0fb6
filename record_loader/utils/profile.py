import time
from contextlib import contextmanager
from typing import Dict, List
from record_loader.utils.logger import get_logger

profile_logger = get_logger(__name__)


class Profile():
    """batch timing per loader, filled by BatchCoordinator in debug mode"""

    def __init__(self):
        self.timers: Dict[str, 'BatchTimer'] = {}

    def get_timer(self, name: str) -> 'BatchTimer':
        if name not in self.timers:
            self.timers[name] = BatchTimer(name)
        return self.timers[name]

    @contextmanager
    def measure(self, name: str, keys: int = 0):
        """
        with profile.measure(loader.name, keys=3):
            await loader.perform_batch()
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            self.get_timer(name).record((time.perf_counter() - start) * 1000, keys)

    def __repr__(self) -> str:
        if not self.timers:
            return ''

        longest = max(len(name) for name in self.timers)
        return '\n'.join(
            f'{name.ljust(longest)}: {timer}'
            for name, timer in sorted(self.timers.items()))

    def report(self):
        if self.timers:
            profile_logger.info('\n' + repr(self))


class BatchTimer():
    """durations (ms) and key counts of the batches one loader ran"""

    def __init__(self, name: str):
        self.name = name
        self.durations: List[float] = []
        self.keys = 0

    def record(self, ms: float, keys: int = 0):
        self.durations.append(ms)
        self.keys += keys

    @property
    def count(self):
        return len(self.durations)

    @property
    def average(self):
        return sum(self.durations) / self.count if self.durations else 0

    @property
    def max(self):
        return max(self.durations, default=0)

    @property
    def min(self):
        return min(self.durations, default=0)

    def __repr__(self) -> str:
        return (f'batches: {self.count}, keys: {self.keys}, '
                f'avg: {self.average:.1f}ms, max: {self.max:.1f}ms, min: {self.min:.1f}ms')
