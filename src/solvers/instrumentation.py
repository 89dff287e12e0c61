"""Wall-clock timers for the stages of a time step."""

import time
from collections import OrderedDict
from contextlib import contextmanager

import pandas as pd

STAGES = ("initialize", "RHSVelocity", "solveVelocity", "RHSPoisson", "solvePoisson", "projectionStep")


class StageTimers:
    """Accumulate elapsed time and call counts per named stage."""

    def __init__(self, enabled=True):
        self.enabled = enabled
        self.totals = OrderedDict((name, 0.0) for name in STAGES)
        self.calls = OrderedDict((name, 0) for name in STAGES)

    @contextmanager
    def stage(self, name):
        if not self.enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            self.totals[name] = self.totals.get(name, 0.0) + time.perf_counter() - start
            self.calls[name] = self.calls.get(name, 0) + 1

    @property
    def total(self):
        return sum(self.totals.values())

    def to_dataframe(self) -> pd.DataFrame:
        total = self.total or 1.0
        return pd.DataFrame(
            {
                "stage": list(self.totals),
                "calls": [self.calls[k] for k in self.totals],
                "seconds": list(self.totals.values()),
                "percent": [100.0 * v / total for v in self.totals.values()],
            }
        )
