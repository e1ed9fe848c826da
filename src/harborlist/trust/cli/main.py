"""HarborList Trust CLI - Main entrypoint.

Usage:
    harborlist-trust sync run
    harborlist-trust sync bootstrap
    harborlist-trust domains check config/domains.yaml
"""

from __future__ import annotations

import typer

from harborlist.trust.cli.commands import domains_app, sync_app

app = typer.Typer(
    name="harborlist-trust",
    help="HarborList trust boundary CLI tools",
    add_completion=True,
)

app.add_typer(sync_app, name="sync")
app.add_typer(domains_app, name="domains")


def create_app() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    create_app()
