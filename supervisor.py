# supervisor.py
"""
Tick loop that keeps one probe in flight per target and records its history.

Each tick:
  1. render the current history
  2. launch a probe for every idle target
  3. sleep one tick interval (the only blocking call)
  4. reap every child that has already finished, classify it, mark its target idle
  5. append Pending for every target whose probe is still running

Every target gains exactly one symbol per tick. Any anomaly in process
control (spawn failure, waitpid error, signalled child) raises a
SupervisorError and stops the loop; probe-reported failures are just symbols.
"""
from __future__ import annotations

import time
from collections import deque
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from probe import (
    HealthSymbol,
    ProbeLauncher,
    ProbeRun,
    SupervisorError,
    Target,
    classify,
)

HISTORY_SLACK = 16


# -------------------------
# History ledger
# -------------------------

class History:
    """Append-only symbol history for one target, retaining at most `capacity` entries."""

    def __init__(self, capacity: Optional[int] = None) -> None:
        self._items: deque = deque(maxlen=capacity)
        self.total = 0

    def append(self, symbol: HealthSymbol) -> None:
        self._items.append(symbol)
        self.total += 1

    def recent(self, n: int) -> List[HealthSymbol]:
        if n <= 0:
            return []
        items = list(self._items)
        return items[-n:]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)


# -------------------------
# Supervisor
# -------------------------

class Supervisor:
    def __init__(
        self,
        targets: Sequence[Target],
        launcher: ProbeLauncher,
        interval: float = 1.0,
        render: Optional[Callable[["Supervisor"], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        history_capacity: Optional[int] = None,
    ) -> None:
        if not targets:
            raise ValueError("At least one target is required")
        if len(set(targets)) != len(targets):
            raise ValueError("Duplicate targets in registry")
        self.targets: Tuple[Target, ...] = tuple(targets)
        self.launcher = launcher
        self.control = launcher.control
        self.interval = interval
        self.render = render
        self.sleep = sleep
        self.runs: Dict[Target, Optional[ProbeRun]] = {t: None for t in self.targets}
        self.history: Dict[Target, History] = {t: History(history_capacity) for t in self.targets}
        self.ticks = 0

    def is_running(self, target: Target) -> bool:
        return self.runs[target] is not None

    def idle_targets(self) -> List[Target]:
        return [t for t in self.targets if self.runs[t] is None]

    def snapshot(self, width: int) -> List[Tuple[Target, List[HealthSymbol]]]:
        return [(t, self.history[t].recent(width)) for t in self.targets]

    def launch(self, target: Target) -> ProbeRun:
        if self.is_running(target):
            raise SupervisorError(f"{target.label} already has probe {self.runs[target].pid} outstanding")
        run = self.launcher.launch(target)
        self.runs[target] = run
        return run

    def launch_idle(self) -> None:
        for target in self.idle_targets():
            self.launch(target)

    def reap(self) -> List[Target]:
        """Drain every finished child; return the targets credited this tick."""
        by_pid = {run.pid: t for t, run in self.runs.items() if run is not None}
        finished: List[Target] = []
        while True:
            reaped = self.control.poll_any()
            if reaped is None:
                break
            target = by_pid.pop(reaped.pid, None)
            if target is None:
                # not one of ours
                continue
            run = self.runs[target]
            self.runs[target] = None
            self.history[target].append(classify(reaped.exit_status, run.failure_code))
            finished.append(target)
        return finished

    def mark_pending(self) -> None:
        # targets reaped this tick are already idle
        for target in self.targets:
            if self.is_running(target):
                self.history[target].append(HealthSymbol.PENDING)

    def tick(self) -> None:
        if self.render is not None:
            self.render(self)
        self.launch_idle()
        self.sleep(self.interval)
        self.reap()
        self.mark_pending()
        self.ticks += 1

    def run(self, max_ticks: Optional[int] = None) -> None:
        while max_ticks is None or self.ticks < max_ticks:
            self.tick()


