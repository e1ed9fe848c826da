"""Synchronizer and domain registry commands.

Commands:
    harborlist-trust sync run [--dry-run]
    harborlist-trust sync rotate-secret
    harborlist-trust sync bootstrap
    harborlist-trust sync status
    harborlist-trust domains check [--path /api/admin/users]
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from harborlist.trust.audit import AuditLogger
from harborlist.trust.auth import DomainRegistry, RegistryError
from harborlist.trust.config import settings
from harborlist.trust.edge import CloudflareRangeSource
from harborlist.trust.errors import FetchFailed, TrustSyncError
from harborlist.trust.models import SyncOutcome, SyncReport
from harborlist.trust.publisher import build_publisher
from harborlist.trust.store import build_store
from harborlist.trust.sync import OriginTrustSynchronizer, compute_transition_plan

logger = logging.getLogger(__name__)

sync_app = typer.Typer(
    name="sync",
    help="Origin trust synchronizer commands",
    add_completion=False,
)

domains_app = typer.Typer(
    name="domains",
    help="Identity domain registry commands",
    add_completion=False,
)

_FAILED = {SyncOutcome.FETCH_FAILED, SyncOutcome.PARTIAL, SyncOutcome.LEASE_LOST}


def _configure_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet down http and AWS clients
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)


def _build_synchronizer() -> OriginTrustSynchronizer:
    return OriginTrustSynchronizer.from_settings(
        settings,
        build_store(settings),
        build_publisher(settings),
        audit=AuditLogger(enabled=settings.audit_enabled),
    )


def _print_report(report: SyncReport) -> None:
    color = typer.colors.RED if report.outcome in _FAILED else typer.colors.GREEN
    typer.secho(f"Outcome: {report.outcome.value}", fg=color)
    typer.echo(f"Version: {report.version_before} -> {report.version_after}")
    typer.echo(f"States: {' -> '.join(s.value for s in report.states)}")
    for origin, ok in report.origin_results.items():
        typer.echo(f"  {'ok ' if ok else 'ERR'} {origin}")
    if report.error:
        typer.secho(f"Error: {report.error}", fg=typer.colors.YELLOW)


VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose output"),
]


@sync_app.command("run")
def run(
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Fetch and show the plan without publishing"),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Run one synchronizer tick.

    Example:
        harborlist-trust sync run --dry-run
    """
    _configure_logging(verbose)
    synchronizer = _build_synchronizer()

    if dry_run:
        try:
            plan = asyncio.run(_async_plan(synchronizer))
        except FetchFailed as e:
            typer.secho(f"Fetch failed: {e}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        typer.echo(plan)
        typer.secho("\n[DRY RUN] No changes applied", fg=typer.colors.YELLOW)
        return

    report = asyncio.run(synchronizer.run_once())
    _print_report(report)
    if report.outcome in _FAILED:
        raise typer.Exit(1)


async def _async_plan(synchronizer: OriginTrustSynchronizer) -> str:
    source = CloudflareRangeSource(
        ipv4_url=settings.edge_ipv4_url,
        ipv6_url=settings.edge_ipv6_url,
        timeout=settings.sync_step_timeout_seconds,
        source_name=settings.edge_source_name,
    )
    committed = await asyncio.to_thread(synchronizer.store.get_range_set)
    fetched = await source.fetch()
    return compute_transition_plan(committed, fetched).summary()


@sync_app.command("rotate-secret")
def rotate_secret(verbose: VerboseOption = False) -> None:
    """Rotate the edge secret (waits out the grace period)."""
    _configure_logging(verbose)
    report = asyncio.run(_build_synchronizer().rotate_secret())
    _print_report(report)
    if report.outcome is not SyncOutcome.ROTATED:
        raise typer.Exit(1)


@sync_app.command("bootstrap")
def bootstrap(
    show_secret: Annotated[
        bool,
        typer.Option("--show-secret/--hide-secret", help="Print the edge secret once"),
    ] = True,
    verbose: VerboseOption = False,
) -> None:
    """Provision the first edge secret and range set.

    Prints the secret so it can be configured on the edge provider.
    """
    _configure_logging(verbose)
    synchronizer = _build_synchronizer()
    try:
        report = asyncio.run(synchronizer.bootstrap())
    except TrustSyncError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    _print_report(report)

    state = synchronizer.store.get_secret_state()
    if state.active is not None:
        typer.echo(f"\nEdge secret version {state.active.version}")
        typer.echo(f"Stored at: {synchronizer.store.location('secret')}")
        if show_secret:
            typer.secho(f"Secret: {state.active.value}", fg=typer.colors.CYAN)
            typer.echo("Configure it as the X-Auth-Secret / Referer header on the edge.")

    if report.outcome not in (SyncOutcome.BOOTSTRAPPED, SyncOutcome.UNCHANGED):
        raise typer.Exit(1)


@sync_app.command("status")
def status() -> None:
    """Show committed trust state as JSON."""
    response = asyncio.run(_build_synchronizer().describe())
    typer.echo(response.model_dump_json(indent=2))
    if response.stalled:
        raise typer.Exit(1)


@domains_app.command("check")
def check(
    domains_file: Path = typer.Argument(
        help="Path to identity domain YAML file",
        exists=True,
        dir_okay=False,
        readable=True,
        default=Path("config/domains.yaml"),
    ),
    path: Annotated[
        Optional[list[str]],
        typer.Option("--path", "-p", help="Resolve a request path (repeatable)"),
    ] = None,
) -> None:
    """Validate the registry (mutually exclusive prefixes) and show the rules."""
    try:
        registry = DomainRegistry.from_yaml(domains_file)
    except (RegistryError, ValueError) as e:
        typer.secho(f"Invalid registry: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    typer.secho(f"{len(registry)} identity domains, prefixes are exclusive", fg=typer.colors.GREEN)
    for prefix, domain_id in registry.rules:
        domain = registry.get(domain_id)
        typer.echo(f"  {prefix:<30} -> {domain_id.value} ({domain.issuer})")

    for p in path or []:
        domain = registry.resolve(p)
        typer.echo(f"{p} -> {domain.domain_id.value if domain else 'no domain (deny)'}")
