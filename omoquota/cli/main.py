"""
omo-quota CLI entry point.

Usage:
    omo-quota init
    omo-quota status
    omo-quota switch economical
    omo-quota update github-copilot-premium 150
    omo-quota reset all
    omo-quota watch --interval 300 --threshold 20 --auto-switch
"""

import functools
import signal
import sys
import time
from datetime import datetime
from typing import Callable, Optional

import click
from rich.console import Console
from rich.table import Table

from omoquota import __version__
from omoquota.core.config import get_settings, load_app_config
from omoquota.core.errors import OmoQuotaError, SaveError, StrategySwitchError
from omoquota.core.logging import get_logger, setup_logging
from omoquota.core.quota import EXPIRED, QuotaEstimate, WarningThresholds, estimate_all
from omoquota.core.timeutil import now_utc
from omoquota.domain.alerts import AlertSeverity, WarningLevel
from omoquota.domain.providers import HourlyResetProvider, UnknownProvider
from omoquota.domain.tracker import provider_display_name
from omoquota.services.catalog import StrategyCatalog
from omoquota.services.monitor import MonitorScheduler, QuotaMonitor, TickResult
from omoquota.services.switcher import SwitchResult, create_strategy_switcher
from omoquota.services.tracker_store import create_tracker_store
from omoquota.services.usage_sync import UsageSynchronizer

console = Console()
logger = get_logger("cli")

LEVEL_STYLE = {
    WarningLevel.OK: "green",
    WarningLevel.WARNING: "yellow",
    WarningLevel.CRITICAL: "red",
    WarningLevel.UNKNOWN: "dim",
}

SEVERITY_STYLE = {
    AlertSeverity.INFO.value: ("cyan", "ℹ️"),
    AlertSeverity.MILD.value: ("yellow", "🟡"),
    AlertSeverity.ELEVATED.value: ("dark_orange", "🟠"),
    AlertSeverity.CRITICAL.value: ("red", "🔴"),
}

# Hourly providers resetting sooner than this are worth using first
RESET_SOON_MINUTES = 30


def exits_on_error(func: Callable) -> Callable:
    """Print OmoQuotaError details and exit with the error's exit code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except StrategySwitchError as e:
            display_switch_error(e)
            sys.exit(e.exit_code)
        except OmoQuotaError as e:
            console.print(f"[red]✗ {e.message}[/red]")
            if isinstance(e, SaveError):
                console.print(f"[red]  Tracker file: {e.path}[/red]")
            sys.exit(e.exit_code)

    return wrapper


def display_switch_error(e: StrategySwitchError) -> None:
    console.print(f"[red]✗ Switch failed during {e.stage}: {e.message}[/red]")
    if e.cause is not None:
        console.print(f"[red]  Cause: {e.cause}[/red]")
    if e.config_intact:
        console.print("[yellow]  Active configuration is intact.[/yellow]")
    else:
        console.print(
            "[bold red]  Active configuration may be damaged; "
            "restore it from the backup manually.[/bold red]"
        )
    if e.stage == "recording":
        console.print(
            "[yellow]  The new strategy is active but the tracker still records "
            "the old one. Re-run the switch once the tracker is writable.[/yellow]"
        )
    available = e.details.get("available")
    if available:
        console.print(f"[yellow]  Available strategies: {', '.join(available)}[/yellow]")


def format_remaining(est: QuotaEstimate) -> str:
    if est.error is not None:
        return "[dim]-[/dim]"
    if est.expired:
        return "[red]expired[/red]"
    if est.remaining_pct is None:
        return "[dim]n/a[/dim]"
    style = LEVEL_STYLE[est.level]
    return f"[{style}]{est.remaining_pct:.1f}%[/{style}]"


def build_suggestions(statuses: dict, now: Optional[datetime] = None) -> list[str]:
    """Hints for hourly providers about to reset or already past reset."""
    now = now or now_utc()
    suggestions = []
    for provider, status in statuses.items():
        if not isinstance(status, HourlyResetProvider):
            continue
        name = provider_display_name(provider)
        minutes_left = (status.next_reset - now).total_seconds() / 60
        if minutes_left <= 0:
            suggestions.append(f"{name} has reset; run 'omo-quota reset {provider}'")
        elif minutes_left < RESET_SOON_MINUTES:
            suggestions.append(f"{name} resets in {int(minutes_left)}m, use it first")
    return suggestions


@click.group()
@click.version_option(__version__, prog_name="omo-quota")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def main(verbose: bool) -> None:
    """omo-quota - quota tracking and strategy switching for Oh-My-OpenCode"""
    log_level = "DEBUG" if verbose else get_settings().log_level
    setup_logging(log_level=log_level)


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing tracker")
@exits_on_error
def init(force: bool) -> None:
    """Initialize the quota tracker file."""
    store = create_tracker_store()
    if store.initialize(force=force):
        console.print(f"[green]✓ Tracker initialized: {store.path}[/green]")
    else:
        console.print(f"[yellow]Tracker already exists: {store.path} (use --force)[/yellow]")


@main.command("list")
def list_strategies() -> None:
    """List available strategies."""
    catalog = StrategyCatalog.from_config()
    current = create_tracker_store().load().current_strategy

    table = Table(title="Strategies")
    table.add_column("", width=1)
    table.add_column("Strategy", style="cyan")
    table.add_column("Name")
    table.add_column("Use case", style="dim")
    table.add_column("File")

    for entry in catalog:
        path = catalog.path_for(entry.name)
        file_state = f"[green]{entry.file}[/green]" if path.is_file() else f"[red]{entry.file} (missing)[/red]"
        marker = "[bold green]*[/bold green]" if entry.name == current else ""
        table.add_row(marker, entry.name, entry.display_name, entry.use_case, file_state)

    console.print(table)
    console.print(f"[dim]Strategies directory: {catalog.strategies_dir}[/dim]")


@main.command()
def status() -> None:
    """Show remaining quota for every provider."""
    config = load_app_config()
    store = create_tracker_store()
    result = store.load_result()
    doc = result.document
    catalog = StrategyCatalog.from_config(config)

    if result.corrupted:
        console.print(f"[yellow]⚠ {result.diagnostic.message}[/yellow]")
    elif not result.exists:
        console.print("[yellow]No tracker yet. Run 'omo-quota init' to start tracking.[/yellow]")

    console.print(
        f"\n[bold cyan]Current strategy: {doc.current_strategy} "
        f"({catalog.display_name(doc.current_strategy)})[/bold cyan]\n"
    )

    statuses = doc.statuses()
    estimates = estimate_all(
        statuses,
        thresholds=WarningThresholds.from_config(config),
        initial_balance=config.get("quota", {}).get("initial_balance"),
    )

    table = Table(title="Provider Quota")
    table.add_column("Provider", style="cyan")
    table.add_column("Type")
    table.add_column("Remaining", justify="right")
    table.add_column("Resets in")
    table.add_column("Level")

    for est in estimates:
        resets_in = est.resets_in or "-"
        if resets_in == EXPIRED:
            resets_in = f"[red]{resets_in}[/red]"
        style = LEVEL_STYLE[est.level]
        table.add_row(
            provider_display_name(est.provider),
            est.kind.value,
            format_remaining(est),
            resets_in,
            f"[{style}]{est.level.value}[/{style}]",
        )

    console.print(table)

    for est in estimates:
        if est.error is not None:
            console.print(f"[yellow]⚠ {est.provider}: {est.error}[/yellow]")

    suggestions = build_suggestions(statuses)
    if suggestions:
        console.print("\n[bold green]Suggestions:[/bold green]")
        for suggestion in suggestions:
            console.print(f"  • {suggestion}")


def display_switch(result: SwitchResult, catalog: Optional[StrategyCatalog] = None) -> None:
    catalog = catalog or StrategyCatalog.from_config()
    if result.backup_path is not None:
        console.print(f"[green]✓ Backed up current configuration to: {result.backup_path}[/green]")
    console.print(f"[green]✓ Applied strategy: {result.strategy}[/green]")
    console.print(
        f"\n[bold green]✓ Switched to {result.strategy} "
        f"({catalog.display_name(result.strategy)})[/bold green]"
    )
    if result.restart_required:
        console.print("[dim]Restart OpenCode for the change to take effect.[/dim]")


@main.command()
@click.argument("strategy")
@exits_on_error
def switch(strategy: str) -> None:
    """Switch the active configuration to STRATEGY."""
    switcher = create_strategy_switcher()
    console.print("[cyan]Switching strategy...[/cyan]")
    result = switcher.switch(strategy)
    display_switch(result, switcher.catalog)


@main.command()
@click.argument("provider")
@exits_on_error
def reset(provider: str) -> None:
    """Mark an hourly PROVIDER (or 'all') as just reset."""
    store = create_tracker_store()
    reset_ids = store.reset(provider)
    if provider == "all":
        console.print(f"[green]✓ Reset {len(reset_ids)} hourly providers[/green]")
    else:
        console.print(f"[green]✓ Marked {provider} as reset[/green]")


@main.command()
@click.argument("provider")
@click.argument("usage", type=float)
@exits_on_error
def update(provider: str, usage: float) -> None:
    """Set PROVIDER usage (monthly: requests used; hourly: percent used)."""
    store = create_tracker_store()
    status = store.update_usage(provider, usage)
    console.print(f"[green]✓ Updated {provider} ({status.kind.value}) usage to {usage:g}[/green]")


@main.command()
@exits_on_error
def sync() -> None:
    """Sync usage from OpenCode message storage."""
    started = time.monotonic()
    synchronizer = UsageSynchronizer()
    console.print(f"[cyan]Scanning: {synchronizer.storage_path}[/cyan]")

    usage = synchronizer.collect()
    if not usage:
        console.print("[yellow]No messages found. Make sure oh-my-opencode has been used.[/yellow]")
        return

    store = create_tracker_store()
    summary = store.sync(usage)

    table = Table(title="Synced Usage")
    table.add_column("Provider", style="cyan")
    table.add_column("Tokens", justify="right")
    table.add_column("Requests", justify="right")
    table.add_column("Recorded", justify="right")

    for provider, counts in sorted(usage.items()):
        recorded = summary.updated.get(provider)
        table.add_row(
            provider,
            f"{counts.tokens:,}",
            str(counts.messages),
            str(recorded) if recorded is not None else "[dim]untracked[/dim]",
        )
    console.print(table)

    elapsed_ms = (time.monotonic() - started) * 1000
    console.print(f"[green]✓ Sync completed in {elapsed_ms:.0f}ms[/green]")
    console.print(f"[dim]Updated: {store.path}[/dim]")


def display_tick(result: TickResult) -> None:
    console.print(f"[dim][{time.strftime('%H:%M:%S')}] Checked quota[/dim]")
    for alert in result.alerts:
        style, icon = SEVERITY_STYLE.get(alert.severity, ("yellow", "⚠️"))
        console.print(f"[{style}]{icon} {alert.message}[/{style}]")
    for provider, reason in result.warnings.items():
        console.print(f"[yellow]⚠ {provider}: {reason}[/yellow]")
    if result.all_clear:
        console.print("[green]✅ All quotas healthy[/green]")


@main.command()
@click.option("--interval", type=click.IntRange(min=1), default=None, help="Seconds between checks")
@click.option(
    "--threshold",
    type=click.FloatRange(0, 100, min_open=True),
    default=None,
    help="Alert when remaining < N%",
)
@click.option("--auto-switch", is_flag=True, help="Switch to the economical strategy when critical")
@click.option("--no-sync", is_flag=True, help="Do not scan message storage each tick")
def watch(
    interval: Optional[int],
    threshold: Optional[float],
    auto_switch: bool,
    no_sync: bool,
) -> None:
    """Monitor quota and alert when it runs low."""
    settings = get_settings()
    if interval is None:
        interval = settings.watch_interval_seconds
    if threshold is None:
        threshold = settings.watch_threshold

    store = create_tracker_store()
    monitor = QuotaMonitor(
        store,
        None if no_sync else UsageSynchronizer(),
        create_strategy_switcher(store=store),
        threshold=threshold,
        auto_switch=auto_switch,
        on_tick=display_tick,
        on_switch=display_switch,
    )
    scheduler = MonitorScheduler(monitor, interval)

    console.print("[bold blue]🔍 Starting quota monitor...[/bold blue]")
    console.print(f"[dim]   Interval: {interval}s[/dim]")
    console.print(f"[dim]   Threshold: {threshold:g}%[/dim]")
    console.print(f"[dim]   Auto-switch: {'on' if auto_switch else 'off'}[/dim]")
    console.print("[dim]   Press Ctrl+C to stop[/dim]\n")

    scheduler.start()

    # Handle shutdown; stop() waits for a tick that is mid-save
    def shutdown(signum, frame):
        console.print("\n[blue]🛑 Monitor stopped[/blue]")
        scheduler.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    while True:
        if scheduler.failed is not None:
            scheduler.stop()
            console.print(f"[red]✗ {scheduler.failed}[/red]")
            sys.exit(SaveError.exit_code)
        time.sleep(1)


@main.command()
def doctor() -> None:
    """Check the tracker, active configuration and strategy files."""
    settings = get_settings()
    catalog = StrategyCatalog.from_config()
    result = create_tracker_store().load_result()
    problems = 0

    table = Table(title="omo-quota doctor")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    if result.corrupted:
        problems += 1
        table.add_row("Tracker", "[red]✗ corrupt[/red]", str(settings.tracker_path))
    elif result.exists:
        table.add_row("Tracker", "[green]✓ ok[/green]", str(settings.tracker_path))
    else:
        problems += 1
        table.add_row("Tracker", "[yellow]○ missing[/yellow]", "run 'omo-quota init'")

    current = result.document.current_strategy
    if current in catalog:
        table.add_row("Current strategy", f"[green]✓ {current}[/green]", "")
    else:
        problems += 1
        table.add_row("Current strategy", f"[yellow]? {current}[/yellow]", "not in catalog")

    for provider, status in result.document.statuses().items():
        if isinstance(status, UnknownProvider):
            problems += 1
            table.add_row(f"Provider {provider}", "[yellow]⚠ malformed[/yellow]", status.reason)

    if settings.active_config_path.is_file():
        table.add_row("Active config", "[green]✓ ok[/green]", str(settings.active_config_path))
    else:
        problems += 1
        table.add_row("Active config", "[red]✗ missing[/red]", str(settings.active_config_path))

    for entry in catalog:
        path = catalog.path_for(entry.name)
        if path.is_file():
            table.add_row(f"Strategy {entry.name}", "[green]✓ ok[/green]", str(path))
        else:
            problems += 1
            table.add_row(f"Strategy {entry.name}", "[red]✗ missing[/red]", str(path))

    console.print(table)
    if problems:
        console.print(f"[yellow]{problems} problem(s) found[/yellow]")
        sys.exit(1)
    console.print("[green]✓ All checks passed[/green]")


if __name__ == "__main__":
    main()
