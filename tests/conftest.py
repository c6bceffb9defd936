# tests/conftest.py
from typing import Dict, List, Optional, Tuple

import pytest

from probe import AbnormalExitError, LaunchError, ProbeSettings, Reaped


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def sleep(self, secs: float) -> None:
        self.now += secs


class FakeProcessControl:
    """
    behaviors: address -> (duration, exit_status).
    duration None means the probe never finishes; exit_status "signal" makes
    the reap raise AbnormalExitError. Unknown addresses exit 0 immediately.
    """

    def __init__(self, clock: FakeClock, behaviors: Optional[Dict[str, Tuple]] = None, missing: Tuple[str, ...] = ()):
        self.clock = clock
        self.behaviors = behaviors or {}
        self.missing = missing
        self.spawned: List[List[str]] = []
        self._next_pid = 100
        # pid -> (address, finish_time, exit_status)
        self.live: Dict[int, Tuple[str, Optional[float], object]] = {}
        self.strays: List[Reaped] = []

    def spawn(self, argv: List[str]) -> int:
        if argv[0] in self.missing:
            raise LaunchError(f"cannot start {argv[0]}: No such file or directory")
        address = argv[-1]
        assert address not in {a for a, _, _ in self.live.values()}, "two probes outstanding for one target"
        duration, status = self.behaviors.get(address, (0.0, 0))
        pid = self._next_pid
        self._next_pid += 1
        finish = None if duration is None else self.clock.now + duration
        self.live[pid] = (address, finish, status)
        self.spawned.append(list(argv))
        return pid

    def poll_any(self) -> Optional[Reaped]:
        if self.strays:
            return self.strays.pop()
        for pid, (_address, finish, status) in list(self.live.items()):
            if finish is not None and finish <= self.clock.now:
                del self.live[pid]
                if status == "signal":
                    raise AbnormalExitError(f"process {pid} did not terminate normally")
                return Reaped(pid=pid, exit_status=status)
        return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def linux_settings():
    return ProbeSettings(platform="linux")
