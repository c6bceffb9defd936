# tui.py
"""
netdiag TUI — live terminal table of per-target probe history.

Features:
- One row per target: "<kind> <address>: " padded to a common column
- Rolling history of the most recent symbols that fit the display width
  (* success, X failure, ? unknown exit, . still running)
- Colorized symbols (green success, red failure/unknown, dim pending)
- Each frame overwrites the previous one in place (cursor moved up by the row count)
- Ctrl-C restores the cursor below the table and exits

Requirements:
  rich
  typer
  PyYAML (via probe.py)

Usage:
  netdiag run --config ./config.yaml --interval 1.0
  netdiag check --config ./config.yaml
  netdiag targets
"""
from __future__ import annotations

import os
import shlex
import shutil
from typing import List, Optional, Sequence, Tuple

import typer
from rich.console import Console
from rich.control import Control
from rich.text import Text

from probe import (
    Config,
    HealthSymbol,
    OsProcessControl,
    ProbeLauncher,
    SupervisorError,
    Target,
    build_command,
    failure_code_for,
    load_config,
)
from supervisor import HISTORY_SLACK, Supervisor

app = typer.Typer(add_completion=False, help="Live network reachability and DNS dashboard")
console = Console()

SYMBOL_STYLES = {
    HealthSymbol.SUCCESS: "bold green",
    HealthSymbol.FAILURE: "bold red",
    HealthSymbol.UNKNOWN: "red",
    HealthSymbol.PENDING: "dim",
}


# --------------------
# Rendering
# --------------------

def prefix_width(targets: Sequence[Target]) -> int:
    # label, colon and trailing space
    return max(len(t.label) for t in targets) + 2


def format_row(target: Target, symbols: Sequence[HealthSymbol], label_width: int) -> Text:
    row = Text(f"{target.label}: ".ljust(label_width), style="bold")
    for symbol in symbols:
        row.append(symbol.value, style=SYMBOL_STYLES[symbol])
    return row


class Renderer:
    def __init__(self, targets: Sequence[Target], display_width: int = 75, out: Optional[Console] = None) -> None:
        self.out = out or console
        self.label_width = prefix_width(targets)
        self.window = max(1, display_width - self.label_width)
        self._lines = 0

    def build_frame(self, rows: Sequence[Tuple[Target, Sequence[HealthSymbol]]]) -> List[Text]:
        return [format_row(t, symbols, self.label_width) for t, symbols in rows]

    def draw(self, supervisor: Supervisor) -> None:
        frame = self.build_frame(supervisor.snapshot(self.window))
        for line in frame:
            self.out.print(line, no_wrap=True, crop=True, highlight=False)
        # Next frame starts on the first row of this one
        self.out.control(Control.move(0, -len(frame)))
        self._lines = len(frame)

    def finish(self) -> None:
        if self._lines:
            self.out.line(self._lines)
            self._lines = 0


# --------------------
# Commands
# --------------------

def _load(config: Optional[str]) -> Config:
    try:
        return load_config(config)
    except (OSError, ValueError) as e:
        typer.secho(f"Config error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def binary_present(path: str) -> bool:
    if os.sep in path:
        return os.path.isfile(path) and os.access(path, os.X_OK)
    return shutil.which(path) is not None


@app.command()
def run(config: Optional[str] = typer.Option(None, help="Path to config.yaml (defaults to the built-in targets)"),
        interval: Optional[float] = typer.Option(None, help="Tick interval seconds"),
        width: Optional[int] = typer.Option(None, help="Display width in columns"),
        ticks: Optional[int] = typer.Option(None, help="Stop after this many ticks (default: run until interrupted)")):
    """Run the live dashboard."""
    cfg = _load(config)
    if interval is not None:
        if interval <= 0:
            typer.secho("Interval must be positive", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        cfg.tick_interval_secs = interval
    if width is not None:
        cfg.display_width = width

    renderer = Renderer(cfg.targets, cfg.display_width)
    launcher = ProbeLauncher(cfg.probes, OsProcessControl())
    supervisor = Supervisor(
        cfg.targets,
        launcher,
        interval=cfg.tick_interval_secs,
        render=renderer.draw,
        history_capacity=renderer.window + HISTORY_SLACK,
    )

    console.show_cursor(False)
    try:
        supervisor.run(max_ticks=ticks)
        renderer.draw(supervisor)
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except SupervisorError as e:
        renderer.finish()
        typer.secho(f"Fatal: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    finally:
        renderer.finish()
        console.show_cursor(True)


@app.command()
def check(config: Optional[str] = typer.Option(None, help="Path to config.yaml")):
    """Check presence of the probe binaries and print a config summary."""
    cfg = _load(config)
    probes = cfg.probes
    ping_ok = binary_present(probes.ping_binary)
    host_ok = binary_present(probes.host_binary)
    typer.echo(f"platform: {probes.platform}")
    typer.secho(f"{probes.ping_binary} present: {'yes' if ping_ok else 'NO'}",
                fg=typer.colors.GREEN if ping_ok else typer.colors.RED)
    typer.secho(f"{probes.host_binary} present: {'yes' if host_ok else 'NO'}",
                fg=typer.colors.GREEN if host_ok else typer.colors.RED)
    typer.echo(f"Targets: {len(cfg.targets)} | tick interval: {cfg.tick_interval_secs}s | width: {cfg.display_width}")
    if not (ping_ok and host_ok):
        raise typer.Exit(1)


@app.command()
def targets(config: Optional[str] = typer.Option(None, help="Path to config.yaml")):
    """List targets with the command spawned for each."""
    cfg = _load(config)
    label_width = prefix_width(cfg.targets)
    for t in cfg.targets:
        argv = build_command(t, cfg.probes)
        code = failure_code_for(t.kind, cfg.probes)
        typer.echo(f"{t.label}: ".ljust(label_width) + f"{shlex.join(argv)}  (failure exit {code})")


if __name__ == "__main__":
    app()
