"""glim CLI -- generate GitHub repository cards or run the card server.

Thin click wrapper around :class:`~glim.pipeline.CardPipeline`.  Logging
always goes to stderr so card bytes can be piped from stdout.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from glim.core.errors import GlimError
from glim.core.identifier import RepositoryIdentifier, parse_identifier
from glim.core.types import RenderFormat, parse_extension
from glim.github.client import GitHubClient
from glim.pipeline.generator import CardPipeline
from glim.server.config import Settings
from glim.server.serve import parse_addresses, run_server


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error(msg: str) -> None:
    """Print an error message to stderr and exit 1."""
    click.echo(msg, err=True)
    raise SystemExit(1)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_format(requested: str | None, output: Path | None) -> RenderFormat:
    """Pick the output format: ``--format`` first, then the output suffix, then PNG."""
    if requested:
        return RenderFormat.parse(requested)
    if output is not None and output.suffix:
        fmt = parse_extension(output.suffix)
        if fmt is not None:
            return fmt
    return RenderFormat.PNG


async def _generate_once(
    identifier: RepositoryIdentifier, fmt: RenderFormat, settings: Settings
) -> bytes:
    """Build a one-shot pipeline, generate one card, shut the pipeline down."""
    fetcher = GitHubClient(
        settings.github_token,
        api_url=settings.github_api_url,
        timeout=settings.github_timeout,
    )
    pipeline = CardPipeline(fetcher, timeout=settings.request_timeout, max_workers=1)
    try:
        return await pipeline.generate(identifier, fmt)
    finally:
        await pipeline.close()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="glim")
def cli() -> None:
    """glim -- GitHub repository card generator."""


# ---------------------------------------------------------------------------
# glim generate
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("repository", required=False)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the card here (default: standard output).",
)
@click.option("--token", "-t", default=None, help="GitHub token (default: $GITHUB_TOKEN).")
@click.option(
    "--format",
    "-f",
    "fmt",
    default=None,
    help="Image format: png, jpeg, webp, avif, gif (default: from --output suffix, else png).",
)
@click.option(
    "--server",
    "-s",
    is_flag=False,
    flag_value="",
    default=None,
    metavar="[ADDR[,ADDR...]]",
    help="Run the HTTP server instead, optionally on host:port addresses.",
)
@click.option("--port", "-p", type=int, default=None, help="Default server port (default: $PORT or 8080).")
@click.option(
    "--log-level",
    "-L",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def generate(
    repository: str | None,
    output: Path | None,
    token: str | None,
    fmt: str | None,
    server: str | None,
    port: int | None,
    log_level: str,
) -> None:
    """Generate a card for OWNER/REPO, or serve cards over HTTP with --server."""
    _configure_logging(log_level)
    try:
        settings = Settings(token=token, port=port)
    except GlimError as exc:
        _error(f"Error [{exc.code}]: {exc}")

    if server is not None:
        settings.log_level = log_level.upper()
        try:
            addresses = parse_addresses(server, settings.host, settings.port)
        except GlimError as exc:
            _error(f"Error [{exc.code}]: {exc}")
        try:
            run_server(addresses, settings)
        except GlimError as exc:
            _error(f"Error [{exc.code}]: {exc}")
        except OSError as exc:
            _error(f"Error: cannot bind: {exc}")
        return

    if not repository:
        _error("Error: a repository (OWNER/REPO) or --server is required.")

    try:
        identifier = parse_identifier(repository)
        card_format = _resolve_format(fmt, output)
        data = asyncio.run(_generate_once(identifier, card_format, settings))
    except GlimError as exc:
        _error(f"Error [{exc.code}]: {exc}")

    if output is None:
        stdout = click.get_binary_stream("stdout")
        stdout.write(data)
        stdout.flush()
        return

    try:
        output.write_bytes(data)
    except OSError as exc:
        _error(f"Error: cannot write {output}: {exc}")
    click.echo(f"Wrote {card_format.value} card for {identifier} to {output}", err=True)


if __name__ == "__main__":
    cli()
