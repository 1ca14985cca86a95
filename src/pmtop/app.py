"""pmtop - Main Textual application."""

import logging
import signal
import sys
from collections.abc import Sequence

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.css.query import NoMatches
from textual.widgets import Footer, Sparkline, Static

from pmtop.config import configure_logging, parse_config
from pmtop.errors import PmtopError
from pmtop.models import CoreMetric, DashboardSnapshot, PowerFigures
from pmtop.monitor import POLL_INTERVAL, TelemetryMonitor
from pmtop.probes import detect_device_info

logger = logging.getLogger(__name__)

PALETTE = [
    "default",
    "red",
    "green",
    "yellow",
    "blue",
    "magenta",
    "cyan",
    "white",
    "bright_magenta",
]

BAR_WIDTH = 20


def palette_color(index: int) -> str:
    """Rich color name for a ``--color`` index; unknown indexes map to green."""
    if 0 <= index < len(PALETTE):
        return PALETTE[index]
    return "green"


def format_rate(mbps: float) -> str:
    """Format a MiB/s rate with a readable unit."""
    value = max(mbps, 0.0)
    if value >= 1024:
        return f"{value / 1024:.2f} GB/s"
    if value >= 1:
        return f"{value:.2f} MB/s"
    if value >= 0.01:
        return f"{value * 1024:.1f} KB/s"
    return f"{round(value * 1024 * 1024):.0f} B/s"


def usage_bar(percent: float, color: str, width: int = BAR_WIDTH) -> str:
    """Rich markup bar filled to ``percent`` of ``width`` cells."""
    filled = min(max(int(percent * width / 100), 0), width)
    return f"[{color}]" + "█" * filled + f"[/{color}]" + "[dim]░[/dim]" * (width - filled)


def history_levels(history: Sequence[float], peak: float) -> list[float]:
    """Scale power history to percentages of the package peak."""
    limit = max(peak, 0.1)
    return [round(value / limit * 100) for value in history]


def format_power_line(label: str, power: PowerFigures) -> str:
    return (
        f"{label}: {power.current:.2f}W ({power.percent_of_ceiling:.0f}% TDP) "
        f"avg {power.average:.2f}W peak {power.peak:.2f}W"
    )


def format_core_line(prefix: str, core: CoreMetric, color: str) -> str:
    # Escaped bracket keeps Rich from parsing the bar container as markup
    bar = usage_bar(core.active_pct, color, width=10)
    return f"{prefix}{core.core_id + 1:02} \\[{bar}] {min(core.active_pct, 999):>3}% {core.freq_mhz:>4}MHz"


class ProcessorPanel(Static):
    """CPU cluster, GPU and ANE usage gauges, with optional per-core rows."""

    DEFAULT_CSS = """
    ProcessorPanel {
        height: auto;
        border: solid $primary;
        padding: 0 1;
    }
    """

    def update_snapshot(self, snapshot: DashboardSnapshot) -> None:
        device = snapshot.device
        self.border_title = (
            f"{device.name} (cores: {device.efficiency_core_count}E+"
            f"{device.performance_core_count}P+{device.gpu_core_count}GPU)"
        )
        self.update(self.render_snapshot(snapshot))

    @staticmethod
    def render_snapshot(snapshot: DashboardSnapshot) -> str:
        color = palette_color(snapshot.palette)
        cpu = snapshot.metrics
        lines = [
            f"E-CPU Usage: {cpu.e_cluster_active_pct}% @ {cpu.e_cluster_freq_mhz} MHz",
            f"\\[{usage_bar(cpu.e_cluster_active_pct, color)}]",
            f"P-CPU Usage: {cpu.p_cluster_active_pct}% @ {cpu.p_cluster_freq_mhz} MHz",
            f"\\[{usage_bar(cpu.p_cluster_active_pct, color)}]",
            f"GPU Usage: {cpu.gpu_active_pct}% @ {cpu.gpu_freq_mhz} MHz",
            f"\\[{usage_bar(cpu.gpu_active_pct, color)}]",
            f"ANE Usage: {snapshot.ane_percent}% @ {snapshot.ane_watts:.1f} W",
            f"\\[{usage_bar(snapshot.ane_percent, color)}]",
        ]
        if snapshot.show_per_core:
            lines.extend(format_core_line("E", core, color) for core in cpu.e_cores)
            lines.extend(format_core_line("P", core, color) for core in cpu.p_cores)
        return "\n".join(lines)


class MemoryPanel(Static):
    """RAM and swap usage."""

    DEFAULT_CSS = """
    MemoryPanel {
        height: auto;
        border: solid $primary;
        padding: 0 1;
    }
    """

    def update_snapshot(self, snapshot: DashboardSnapshot) -> None:
        self.border_title = "Memory"
        self.update(self.render_snapshot(snapshot))

    @staticmethod
    def render_snapshot(snapshot: DashboardSnapshot) -> str:
        memory = snapshot.memory
        if memory.has_swap:
            swap = f"swap {memory.swap_used_gb:.1f}/{memory.swap_total_gb:.1f} GB"
        else:
            swap = "swap inactive"
        bar = usage_bar(memory.used_percent, palette_color(snapshot.palette))
        return (
            f"RAM Usage: {memory.used_gb:.1f}/{memory.total_gb:.1f} GB - {swap}\n"
            f"\\[{bar}] {memory.used_percent}%"
        )


class IoPanel(Static):
    """Network and disk throughput."""

    DEFAULT_CSS = """
    IoPanel {
        height: auto;
        border: solid $primary;
        padding: 0 1;
    }
    """

    def update_snapshot(self, snapshot: DashboardSnapshot) -> None:
        self.border_title = "I/O"
        self.update(self.render_snapshot(snapshot))

    @staticmethod
    def render_snapshot(snapshot: DashboardSnapshot) -> str:
        io = snapshot.io
        return (
            f"Net  in {format_rate(io.net_in_mbps):>12}   out   {format_rate(io.net_out_mbps):>12}\n"
            f"Disk rd {format_rate(io.disk_read_mbps):>12}   write {format_rate(io.disk_write_mbps):>12}"
        )


class PowerPanel(Container):
    """Power summary and combined CPU+GPU power sparkline."""

    DEFAULT_CSS = """
    PowerPanel {
        height: 1fr;
        min-height: 6;
        border: solid $primary;
        padding: 0 1;
    }

    PowerPanel Sparkline {
        height: 1fr;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("Waiting for power data...", id="power-summary")
        yield Sparkline([], summary_function=max, id="power-history")

    def update_snapshot(self, snapshot: DashboardSnapshot) -> None:
        package = snapshot.package_power
        self.border_title = (
            f"CPU+GPU+ANE Power: {package.current:.2f}W "
            f"(avg {package.average:.2f}W peak {package.peak:.2f}W) "
            f"throttle: {'yes' if snapshot.thermal_throttle else 'no'}"
        )
        try:
            summary = self.query_one("#power-summary", Static)
            sparkline = self.query_one("#power-history", Sparkline)
        except NoMatches:
            return  # Widget not mounted yet
        summary.update(
            format_power_line("CPU", snapshot.cpu_power)
            + "\n"
            + format_power_line("GPU", snapshot.gpu_power)
        )
        sparkline.data = history_levels(snapshot.power_history, package.peak)


class PmtopApp(App):
    """Main pmtop application."""

    TITLE = "pmtop"
    SUB_TITLE = "Apple Silicon Power Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        Binding("ctrl+c", "quit", "Quit", priority=True),
        ("escape", "quit", "Quit"),
    ]

    def __init__(self, monitor: TelemetryMonitor) -> None:
        """Initialize the PmtopApp with a started monitor."""
        super().__init__()
        self._monitor = monitor

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield ProcessorPanel(id="processor")
        yield MemoryPanel(id="memory")
        yield IoPanel(id="io")
        yield PowerPanel(id="power")
        yield Footer()

    def on_mount(self) -> None:
        """Draw the first frame and start polling powermetrics output."""
        self._update_ui(self._monitor.snapshot())
        self.set_interval(POLL_INTERVAL, self._poll_telemetry)

    def _poll_telemetry(self) -> None:
        """Poll the monitor once and redraw if a new sample arrived."""
        try:
            changed = self._monitor.tick()
        except PmtopError as exc:
            logger.error("Sampling failed: %s", exc)
            self.exit(return_code=1, message=str(exc))
            return
        if changed:
            self._update_ui(self._monitor.snapshot())

    def _update_ui(self, snapshot: DashboardSnapshot) -> None:
        """Push a snapshot to every panel."""
        for panel_type in (ProcessorPanel, MemoryPanel, IoPanel, PowerPanel):
            try:
                self.query_one(panel_type).update_snapshot(snapshot)
            except NoMatches:
                # A half-mounted panel will be drawn on the next sample
                pass


def _raise_system_exit(signum, frame) -> None:
    raise SystemExit(128 + signum)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for pmtop application."""
    config, args = parse_config(argv)
    configure_logging(args.log_level, args.log_file)
    # SIGTERM unwinds through the monitor's context manager like Ctrl-C does
    signal.signal(signal.SIGTERM, _raise_system_exit)

    print("\npmtop - Apple Silicon power and utilization monitor built on powermetrics\n")
    print("[1/3] Detecting device and preparing powermetrics\n")
    device = detect_device_info()

    try:
        with TelemetryMonitor(config, device) as monitor:
            print("[2/3] Starting powermetrics process\n")
            print("[3/3] Waiting for first reading...\n")
            monitor.start()
            app = PmtopApp(monitor)
            app.run()
            return app.return_code or 0
    except PmtopError as exc:
        print(f"pmtop: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
