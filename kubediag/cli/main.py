"""Click commands for running and inspecting the kubediag agent."""

from __future__ import annotations

import asyncio
import json
import os

import click
import httpx

from kubediag.models.processor import PROCESSOR_PLURALS

_STAGE_CHOICES = sorted(PROCESSOR_PLURALS.values())


@click.group()
@click.version_option(package_name="kubediag")
def cli() -> None:
    """Kubernetes diagnosis agent."""


@cli.command()
@click.option("--node-name", default=None, help="Node this agent serves (default: KUBEDIAG_NODE_NAME or host name).")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    help="Override KUBEDIAG_LOG_LEVEL.",
)
@click.option(
    "--store",
    "store_backend",
    default=None,
    type=click.Choice(["kubernetes", "memory"]),
    help="Override KUBEDIAG_STORE_BACKEND.",
)
def run(node_name: str | None, log_level: str | None, store_backend: str | None) -> None:
    """Start the agent and block until SIGTERM/SIGINT."""
    overrides = {
        "KUBEDIAG_NODE_NAME": node_name,
        "KUBEDIAG_LOG_LEVEL": log_level.lower() if log_level else None,
        "KUBEDIAG_STORE_BACKEND": store_backend,
    }
    for name, value in overrides.items():
        if value is not None:
            os.environ[name] = value

    from kubediag.app import main

    asyncio.run(main())


@cli.command()
@click.argument("stage", type=click.Choice(_STAGE_CHOICES))
@click.option("--url", default="http://127.0.0.1:8090", show_default=True, help="Base URL of a running agent.")
@click.option("--timeout", default=10.0, show_default=True, help="Request timeout in seconds.")
def processors(stage: str, url: str, timeout: float) -> None:
    """List the processors a running agent would dispatch to for STAGE."""
    endpoint = f"{url.rstrip('/')}/api/v1/{stage}"
    try:
        response = httpx.get(endpoint, timeout=timeout)
    except httpx.HTTPError as exc:
        raise click.ClickException(f"request to {endpoint} failed: {exc}") from exc

    if not response.is_success:
        raise click.ClickException(f"status code {response.status_code} from {endpoint}: {response.text[:200]}")
    click.echo(json.dumps(response.json(), indent=2))
