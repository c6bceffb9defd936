# probe.py
"""
Probe side of netdiag: what to test and how to start one test.

Features:
- Loads YAML config of targets, tick interval and probe binaries
- Built-in default target table when no config is supplied
- Builds the argument vector for a reachability (ping) or name-resolution (host) probe
- Spawns probes detached from the terminal (stdin/stdout/stderr on the null device)
- Non-blocking reap of any finished child via waitpid(WNOHANG)
- Classifies exit status into a health symbol (never parses probe output)

Requirements (see pyproject.toml):
  PyYAML

Stdlib only otherwise (os, sys, enum, dataclasses)
"""
from __future__ import annotations

import dataclasses
import enum
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import yaml


# -------------------------
# Errors
# -------------------------

class SupervisorError(RuntimeError):
    """Fatal: the process-supervision contract is broken."""


class LaunchError(SupervisorError):
    pass


class ReapError(SupervisorError):
    pass


class AbnormalExitError(SupervisorError):
    pass


# -------------------------
# Target registry
# -------------------------

class ProbeKind(enum.Enum):
    REACHABILITY = "ping"
    NAME_RESOLUTION = "dns"

    @property
    def label(self) -> str:
        return "Ping" if self is ProbeKind.REACHABILITY else "DNS"


KIND_ALIASES = {
    "ping": ProbeKind.REACHABILITY,
    "reachability": ProbeKind.REACHABILITY,
    "dns": ProbeKind.NAME_RESOLUTION,
    "name-resolution": ProbeKind.NAME_RESOLUTION,
}


@dataclass(frozen=True)
class Target:
    kind: ProbeKind
    address: str  # IP for ping, DNS server for dns

    @property
    def label(self) -> str:
        return f"{self.kind.label} {self.address}"


DEFAULT_TARGETS: Tuple[Target, ...] = (
    # Local router
    Target(ProbeKind.REACHABILITY, "192.168.1.1"),
    # Public resolvers
    Target(ProbeKind.REACHABILITY, "8.8.8.8"),
    Target(ProbeKind.REACHABILITY, "8.8.4.4"),
    Target(ProbeKind.REACHABILITY, "1.1.1.1"),
    # Lookups through explicit servers
    Target(ProbeKind.NAME_RESOLUTION, "8.8.8.8"),
    Target(ProbeKind.NAME_RESOLUTION, "8.8.4.4"),
    Target(ProbeKind.NAME_RESOLUTION, "1.1.1.1"),
    Target(ProbeKind.NAME_RESOLUTION, "192.168.1.1"),
)


# -------------------------
# Config models
# -------------------------

# platform -> (ping binary, ping timeout flag, ping failure exit code)
PING_PLATFORMS: Dict[str, Tuple[str, str, int]] = {
    "linux": ("/bin/ping", "-W", 1),
    "darwin": ("/sbin/ping", "-t", 2),
}


def detect_platform(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    if platform.startswith("linux"):
        return "linux"
    return platform


@dataclass
class ProbeSettings:
    platform: str = dataclasses.field(default_factory=detect_platform)
    ping_binary: Optional[str] = None
    ping_timeout_secs: int = 5
    ping_failure_code: Optional[int] = None
    ping_timeout_flag: Optional[str] = None
    host_binary: str = "/usr/bin/host"
    dns_query_host: str = "example.com"
    dns_failure_code: int = 1

    def __post_init__(self) -> None:
        defaults = PING_PLATFORMS.get(self.platform)
        if defaults is None:
            if self.ping_binary is None or self.ping_failure_code is None:
                raise ValueError(
                    f"Unknown platform '{self.platform}': set probes.ping_binary and probes.ping_failure_code"
                )
            if self.ping_timeout_flag is None:
                raise ValueError(
                    f"Unknown platform '{self.platform}': set probes.ping_timeout_flag"
                )
            return
        if self.ping_binary is None:
            self.ping_binary = defaults[0]
        if self.ping_failure_code is None:
            self.ping_failure_code = defaults[2]
        if self.ping_timeout_flag is None:
            # BSD ping bounds the whole run with -t; Linux bounds the reply wait with -W
            self.ping_timeout_flag = defaults[1]


@dataclass
class Config:
    tick_interval_secs: float = 1.0
    display_width: int = 75
    probes: ProbeSettings = dataclasses.field(default_factory=ProbeSettings)
    targets: List[Target] = dataclasses.field(default_factory=lambda: list(DEFAULT_TARGETS))


def parse_target(raw) -> Target:
    if not isinstance(raw, dict):
        raise ValueError(f"Target entry must be a mapping with kind and address: {raw!r}")
    for k in ("kind", "address"):
        if k not in raw:
            raise ValueError(f"Target missing key {k}: {raw}")
    kind = KIND_ALIASES.get(str(raw["kind"]).lower())
    if kind is None:
        raise ValueError(f"Invalid kind '{raw['kind']}' for target {raw['address']}")
    address = str(raw["address"]).strip()
    if not address:
        raise ValueError(f"Empty address for target: {raw}")
    return Target(kind=kind, address=address)


def load_config(path: Optional[str], platform: Optional[str] = None) -> Config:
    """Load a Config from YAML; with no path, return the built-in defaults."""
    if not path:
        return Config(probes=ProbeSettings(platform=detect_platform(platform)))

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping: {path}")

    targets_raw = raw.get("targets") or []
    if not isinstance(targets_raw, list):
        raise ValueError("Config key 'targets' must be a list")
    targets = [parse_target(t) for t in targets_raw]
    if "targets" in raw and not targets:
        raise ValueError("Config key 'targets' is empty")
    seen = set()
    for t in targets:
        if t in seen:
            raise ValueError(f"Duplicate target: kind {t.kind.value}, address {t.address}")
        seen.add(t)

    probes_raw = raw.get("probes") or {}
    if not isinstance(probes_raw, dict):
        raise ValueError("Config key 'probes' must be a mapping")
    probes = ProbeSettings(
        platform=detect_platform(probes_raw.get("platform", platform)),
        ping_binary=probes_raw.get("ping_binary"),
        ping_timeout_secs=int(probes_raw.get("ping_timeout_secs", 5)),
        ping_failure_code=_optional_int(probes_raw.get("ping_failure_code")),
        ping_timeout_flag=probes_raw.get("ping_timeout_flag"),
        host_binary=probes_raw.get("host_binary", "/usr/bin/host"),
        dns_query_host=probes_raw.get("dns_query_host", "example.com"),
        dns_failure_code=int(probes_raw.get("dns_failure_code", 1)),
    )

    cfg = Config(
        tick_interval_secs=float(raw.get("tick_interval_secs", 1.0)),
        display_width=int(raw.get("display_width", 75)),
        probes=probes,
        targets=targets or list(DEFAULT_TARGETS),
    )
    if cfg.tick_interval_secs <= 0:
        raise ValueError("tick_interval_secs must be positive")
    return cfg


def _optional_int(value) -> Optional[int]:
    return None if value is None else int(value)


# -------------------------
# Command builders
# -------------------------

def build_command(target: Target, settings: ProbeSettings) -> List[str]:
    if target.kind is ProbeKind.REACHABILITY:
        return [
            settings.ping_binary, "-n", "-c", "1", "-q",
            settings.ping_timeout_flag, str(settings.ping_timeout_secs),
            target.address,
        ]
    return [settings.host_binary, "-t", "a", settings.dns_query_host, target.address]


def failure_code_for(kind: ProbeKind, settings: ProbeSettings) -> int:
    if kind is ProbeKind.REACHABILITY:
        return settings.ping_failure_code
    return settings.dns_failure_code


# -------------------------
# Health symbols
# -------------------------

class HealthSymbol(enum.Enum):
    SUCCESS = "*"
    FAILURE = "X"
    UNKNOWN = "?"
    PENDING = "."


def classify(exit_status: int, failure_code: int) -> HealthSymbol:
    if exit_status == 0:
        return HealthSymbol.SUCCESS
    if exit_status == failure_code:
        return HealthSymbol.FAILURE
    return HealthSymbol.UNKNOWN


# -------------------------
# OS process control
# -------------------------

@dataclass(frozen=True)
class Reaped:
    pid: int
    exit_status: int


class OsProcessControl:
    """Spawn probes and poll for any finished child without blocking."""

    def spawn(self, argv: List[str]) -> int:
        file_actions = [
            (os.POSIX_SPAWN_OPEN, 0, os.devnull, os.O_RDONLY, 0),
            (os.POSIX_SPAWN_OPEN, 1, os.devnull, os.O_WRONLY, 0),
            (os.POSIX_SPAWN_OPEN, 2, os.devnull, os.O_WRONLY, 0),
        ]
        try:
            return os.posix_spawnp(argv[0], argv, os.environ, file_actions=file_actions)
        except OSError as e:
            raise LaunchError(f"cannot start {argv[0]}: {e.strerror or e}") from e

    def poll_any(self) -> Optional[Reaped]:
        """Return one finished child, or None when nothing is ready (or no children exist)."""
        try:
            pid, status = os.waitpid(-1, os.WNOHANG)
        except ChildProcessError:
            return None
        except OSError as e:
            raise ReapError(f"waitpid failed: {e}") from e
        if pid == 0:
            return None
        if not os.WIFEXITED(status):
            raise AbnormalExitError(f"process {pid} did not terminate normally (status {status:#x})")
        return Reaped(pid=pid, exit_status=os.WEXITSTATUS(status))


# -------------------------
# Probe launcher
# -------------------------

@dataclass
class ProbeRun:
    pid: int
    failure_code: int


class ProbeLauncher:
    def __init__(self, settings: ProbeSettings, control) -> None:
        self.settings = settings
        self.control = control

    def launch(self, target: Target) -> ProbeRun:
        argv = build_command(target, self.settings)
        pid = self.control.spawn(argv)
        return ProbeRun(pid=pid, failure_code=failure_code_for(target.kind, self.settings))
