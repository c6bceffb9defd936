# tests/test_tui.py
from io import StringIO

from rich.console import Console
from typer.testing import CliRunner

import tui
from probe import HealthSymbol, ProbeKind, ProbeLauncher, ProbeSettings, Target
from supervisor import Supervisor

from conftest import FakeClock, FakeProcessControl

runner = CliRunner()

PING = Target(ProbeKind.REACHABILITY, "8.8.8.8")
DNS = Target(ProbeKind.NAME_RESOLUTION, "192.168.1.1")


def capture_console(width: int = 120) -> Console:
    return Console(file=StringIO(), width=width, force_terminal=True, color_system=None)


def test_prefix_width_uses_widest_label():
    # "DNS 192.168.1.1: " is 17 characters
    assert tui.prefix_width([PING, DNS]) == 17


def test_format_row_pads_label_and_appends_symbols():
    row = tui.format_row(PING, [HealthSymbol.SUCCESS, HealthSymbol.FAILURE, HealthSymbol.PENDING], 17)
    assert row.plain == "Ping 8.8.8.8:" + " " * 4 + "*X."


def test_renderer_window_and_cursor_reposition():
    out = capture_console()
    renderer = tui.Renderer([PING, DNS], display_width=20, out=out)
    assert renderer.window == 3

    clock = FakeClock()
    control = FakeProcessControl(clock, {"192.168.1.1": (None, 0)})
    sup = Supervisor([PING, DNS], ProbeLauncher(ProbeSettings(platform="linux"), control), sleep=clock.sleep)
    sup.run(max_ticks=5)
    renderer.draw(sup)

    text = out.file.getvalue()
    assert "Ping 8.8.8.8:" + " " * 4 + "***" in text
    assert "DNS 192.168.1.1: ..." in text
    assert "****" not in text
    assert text.endswith("\x1b[2A")

    renderer.finish()
    assert out.file.getvalue().endswith("\x1b[2A\n\n")


def test_targets_command_lists_commands(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "probes: {platform: linux, dns_query_host: plunk.org}\n"
        "targets:\n"
        "  - {kind: ping, address: 8.8.8.8}\n"
        "  - {kind: dns, address: 192.168.1.1}\n",
        encoding="utf-8",
    )
    result = runner.invoke(tui.app, ["targets", "--config", str(path)])
    assert result.exit_code == 0
    assert "Ping 8.8.8.8:" + " " * 4 + "/bin/ping -n -c 1 -q -W 5 8.8.8.8  (failure exit 1)" in result.output
    assert "/usr/bin/host -t a plunk.org 192.168.1.1" in result.output


def test_bad_config_exits_with_error(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("targets:\n  - {kind: bogus, address: 1.2.3.4}\n", encoding="utf-8")
    result = runner.invoke(tui.app, ["targets", "--config", str(path)])
    assert result.exit_code == 1


def test_check_reports_missing_binary(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "probes:\n"
        "  platform: linux\n"
        f"  ping_binary: {tmp_path / 'no-such-ping'}\n"
        f"  host_binary: {tmp_path / 'no-such-host'}\n",
        encoding="utf-8",
    )
    result = runner.invoke(tui.app, ["check", "--config", str(path)])
    assert result.exit_code == 1
    assert "present: NO" in result.output


def test_run_bounded_ticks(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(
        "probes: {platform: linux}\n"
        "targets:\n"
        "  - {kind: ping, address: 8.8.8.8}\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(tui, "OsProcessControl", lambda: FakeProcessControl(FakeClock()))
    result = runner.invoke(tui.app, ["run", "--config", str(path), "--interval", "0.01", "--ticks", "2"])
    assert result.exit_code == 0
    assert "Ping 8.8.8.8: " in result.output


def test_run_reports_fatal_error(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(
        "probes: {platform: linux}\n"
        "targets:\n"
        "  - {kind: ping, address: 8.8.8.8}\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(tui, "OsProcessControl", lambda: FakeProcessControl(FakeClock(), missing=("/bin/ping",)))
    result = runner.invoke(tui.app, ["run", "--config", str(path), "--interval", "0.01", "--ticks", "1"])
    assert result.exit_code == 1


def test_malformed_yaml_is_a_config_error(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("targets: [\n", encoding="utf-8")
    result = runner.invoke(tui.app, ["check", "--config", str(path)])
    assert result.exit_code == 1
    assert "Config error" in result.output
    assert "Invalid YAML" in result.output


def test_duplicate_targets_rejected_before_run(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(
        "probes: {platform: linux}\n"
        "targets:\n"
        "  - {kind: ping, address: 8.8.8.8}\n"
        "  - {kind: ping, address: 8.8.8.8}\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(tui, "OsProcessControl", lambda: FakeProcessControl(FakeClock()))
    result = runner.invoke(tui.app, ["run", "--config", str(path), "--ticks", "1"])
    assert result.exit_code == 1
    assert "Config error" in result.output
    assert "Duplicate target" in result.output
