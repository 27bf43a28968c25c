"""zonewalker CLI — terminal interface built with Typer + Rich.

Discovered names are written to standard output, one per line.  Everything
else (banner, diagnostics, summary) goes to standard error.
"""

from __future__ import annotations

import asyncio
import signal
from typing import List, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from zonewalker import __version__
from zonewalker.core.config import Config, load_config
from zonewalker.core.errors import InvalidNameError
from zonewalker.core.names import DomainName, normalize
from zonewalker.core.partition import MAX_PARALLELISM, PartitionPlanner, plan_partitions
from zonewalker.core.retry import RetryPolicy
from zonewalker.core.walker import WalkOutcome
from zonewalker.utils.dns_resolver import AsyncDNSResolver
from zonewalker.utils.helpers import is_valid_ip
from zonewalker.utils.logger import configure_logging, get_logger
from zonewalker.utils.nameservers import discover_nameservers
from zonewalker.utils.secure_resolver import SecureResolver

app = typer.Typer(
    name="zonewalker",
    help="[bold cyan]zonewalker[/] — enumerate DNSSEC zones by walking their NSEC chain",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)

EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _print_banner() -> None:
    """Print the zonewalker banner on standard error."""
    err_console.print(
        Panel(
            Text("zonewalker", style="bold cyan", justify="center"),
            subtitle=f"[dim]v{__version__} — NSEC zone walker[/]",
            border_style="cyan",
            expand=False,
        )
    )


def _load_config(config_file: Optional[str]) -> Config:
    try:
        return load_config(config_file)
    except (ValidationError, yaml.YAMLError) as exc:
        err_console.print(f"[red]Invalid configuration:[/] {exc}")
        raise typer.Exit(EXIT_USAGE) from exc


def _emit(name: str) -> None:
    typer.echo(name)


# ---------------------------------------------------------------------------
# walk command
# ---------------------------------------------------------------------------


@app.command()
def walk(
    zone: str = typer.Argument(..., help='Zone to traverse, e.g. "arpa."'),
    parallel: Optional[int] = typer.Option(
        None, "--parallel", "-P", help=f"Concurrent partitions (1-{MAX_PARALLELISM})"
    ),
    rps: Optional[float] = typer.Option(None, "--rps", help="Queries per second per partition"),
    start: Optional[str] = typer.Option(None, "--start", help="Resume after this name"),
    resolvers: Optional[List[str]] = typer.Option(
        None, "--resolver", "-r", help="Upstream server IP (repeatable, implies stub mode)"
    ),
    discover: Optional[bool] = typer.Option(
        None, "--discover/--no-discover", help="Query the zone's authoritative servers"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-query timeout in seconds"),
    tcp: bool = typer.Option(False, "--tcp", help="Query over TCP only"),
    doh: bool = typer.Option(False, "--doh", help="Query over DNS-over-HTTPS"),
    silent: bool = typer.Option(False, "--silent", help="Only print discovered names"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose diagnostics"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write diagnostics to a file"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Custom config file"),
) -> None:
    """[bold]Walk a DNSSEC zone and print every name it contains.[/]

    Examples:

        zonewalker walk arpa.

        zonewalker walk arpa. --parallel 10 --rps 20

        zonewalker walk example.com --start www.example.com
    """
    cfg = _load_config(config_file)
    if parallel is not None:
        cfg.walk.parallel = parallel
    if rps is not None:
        cfg.walk.rps = rps
    if start is not None:
        cfg.walk.start = start
    if resolvers:
        cfg.dns.resolvers = list(resolvers)
    if discover is not None:
        cfg.dns.discover_nameservers = discover
    if timeout is not None:
        cfg.dns.timeout = timeout
    if tcp:
        cfg.dns.transport = "tcp"
    if doh:
        cfg.dns.doh_enabled = True
    if verbose:
        cfg.general.verbose = True
    if log_file:
        cfg.general.log_file = log_file

    configure_logging(verbose=cfg.general.verbose, log_file=cfg.general.log_file, silent=silent)

    if not 1 <= cfg.walk.parallel <= MAX_PARALLELISM:
        err_console.print(f"[red]--parallel must be between 1 and {MAX_PARALLELISM}[/]")
        raise typer.Exit(EXIT_USAGE)
    if cfg.walk.start and cfg.walk.parallel > 1:
        err_console.print("[red]--start cannot be combined with --parallel > 1[/]")
        raise typer.Exit(EXIT_USAGE)
    if cfg.walk.rps <= 0:
        err_console.print("[red]--rps must be positive[/]")
        raise typer.Exit(EXIT_USAGE)
    bad = [ip for ip in cfg.dns.resolvers if not is_valid_ip(ip)]
    if bad:
        err_console.print(f"[red]Not an IP address: {', '.join(bad)}[/]")
        raise typer.Exit(EXIT_USAGE)

    try:
        zone_name = normalize(zone)
        plan_partitions(zone_name, cfg.walk.parallel, cfg.walk.start)
    except InvalidNameError as exc:
        err_console.print(f"[red]Invalid name: {exc}[/]")
        raise typer.Exit(EXIT_USAGE)

    if not silent:
        _print_banner()
        err_console.print(
            f"[bold green]►[/] Walking [bold]{zone_name.to_text()}[/] "
            f"(parallel={cfg.walk.parallel}, rps={cfg.walk.rps:g})"
        )

    try:
        outcomes = asyncio.run(_run_walk(zone_name, cfg))
    except InvalidNameError as exc:
        err_console.print(f"[red]Invalid name: {exc}[/]")
        raise typer.Exit(EXIT_USAGE)
    except KeyboardInterrupt:
        outcomes = None

    if outcomes is None:
        err_console.print("\n[yellow]Walk interrupted.[/]")
        raise typer.Exit(EXIT_INTERRUPTED)
    if not silent:
        _display_summary(zone_name, outcomes)


async def _resolve_upstreams(zone: DomainName, cfg: Config) -> List[str]:
    """Pick upstream servers: explicit ones, else the zone's own, else none."""
    if cfg.dns.resolvers:
        return list(cfg.dns.resolvers)
    if not cfg.dns.discover_nameservers or cfg.dns.doh_enabled:
        return []
    async with AsyncDNSResolver(timeout=max(cfg.dns.timeout, 2.0)) as lookup:
        found = await discover_nameservers(zone, lookup)
    if found:
        logger.info("querying %d authoritative server(s) of %s", len(found), zone.to_text())
    return found


async def _run_walk(zone: DomainName, cfg: Config) -> Optional[List[WalkOutcome]]:
    """Internal async wrapper: set up the resolver, walk, and tear down.

    Returns ``None`` when the walk was interrupted by a signal.
    """
    shutdown = asyncio.Event()
    upstreams = await _resolve_upstreams(zone, cfg)
    mode = "stub" if upstreams else cfg.dns.mode
    if mode == "stub" and not upstreams and not cfg.dns.doh_enabled:
        logger.warning("stub mode without upstreams, falling back to recursive resolution")
        mode = "recursive"

    def _retry_policy() -> RetryPolicy:
        return RetryPolicy(
            initial_delay=cfg.retry.initial_delay,
            max_delay=cfg.retry.max_delay,
            backoff_factor=cfg.retry.backoff_factor,
            shutdown=shutdown,
        )

    async with SecureResolver(
        nameservers=upstreams,
        mode=mode,
        timeout=cfg.dns.timeout,
        transport=cfg.dns.transport,
        port=cfg.dns.port,
        concurrency=cfg.dns.concurrency,
        require_ad=cfg.dns.require_ad,
        doh_enabled=cfg.dns.doh_enabled,
        doh_server=cfg.dns.doh_server,
    ) as resolver:
        planner = PartitionPlanner(
            resolver,
            zone,
            parallelism=cfg.walk.parallel,
            start=cfg.walk.start,
            rps=cfg.walk.rps,
            retry_policy_factory=_retry_policy,
        )
        task = asyncio.ensure_future(planner.run(_emit))

        def _stop() -> None:
            logger.warning("shutdown requested, stopping walkers")
            shutdown.set()
            task.cancel()

        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _stop)
                installed.append(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not available on this platform or outside the main thread
                pass
        try:
            return await task
        except asyncio.CancelledError:
            if shutdown.is_set():
                return None
            raise
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)


def _display_summary(zone: DomainName, outcomes: List[WalkOutcome]) -> None:
    """Render a Rich summary table of the walk on standard error."""
    table = Table(
        title=f"Walk summary — {zone.to_text()}",
        show_header=True,
        header_style="bold magenta",
        border_style="dim",
    )
    table.add_column("Partition", style="cyan", justify="right")
    table.add_column("Names", justify="right", style="bold")
    table.add_column("Queries", justify="right")
    table.add_column("Ended", justify="center")
    table.add_column("Time", justify="right")

    for outcome in outcomes:
        reason = outcome.reason.value if outcome.reason else "-"
        style = "green" if reason in ("wrapped", "boundary") else "red"
        table.add_row(
            str(outcome.partition),
            str(outcome.names_found),
            str(outcome.steps),
            f"[{style}]{reason}[/]",
            f"{outcome.duration:.1f}s",
        )

    err_console.print()
    err_console.print(table)
    total = sum(outcome.names_found for outcome in outcomes)
    err_console.print(f"\n[bold]Names:[/] {total}  [bold]Partitions:[/] {len(outcomes)}")


# ---------------------------------------------------------------------------
# config command
# ---------------------------------------------------------------------------


@app.command()
def config(
    config_file: Optional[str] = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """[bold]Show the effective configuration.[/]"""
    cfg = _load_config(config_file)
    console.print_json(cfg.model_dump_json(indent=2))


# ---------------------------------------------------------------------------
# version command
# ---------------------------------------------------------------------------


@app.command()
def version() -> None:
    """[bold]Show zonewalker version information.[/]"""
    console.print(f"[bold cyan]zonewalker[/] version [bold]{__version__}[/]")


def main() -> None:
    """Entry point registered in pyproject.toml."""
    app()


if __name__ == "__main__":
    main()
