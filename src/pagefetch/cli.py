"""CLI interface using typer."""

import asyncio
import json
import sys

import typer

from .config import settings
from .log import configure_logging

app = typer.Typer(
    name="pagefetch",
    help="Browser-driven page fetch service",
    no_args_is_help=True,
)


async def _fetch(
    url: str,
    timeout: int,
    wait: int,
    selector: str | None,
    block_media: bool | None,
    preset_name: str | None,
) -> dict:
    """Fetch a URL through the service and return the API response as a dict."""
    from .models import ScrapePayload
    from .presets import get_preset
    from .service import FetchService

    service = FetchService()
    preset = get_preset(preset_name) if preset_name else service.preset
    payload = ScrapePayload(
        url=url,
        timeout=timeout,
        wait_after_load=wait,
        check_selector=selector,
        block_media=block_media,
    )
    outcome = await service.scrape(payload.to_fetch_request(preset), preset=preset)

    result = outcome.to_dict()
    result["attempts"] = outcome.result.attempts
    result["elapsedMs"] = round(outcome.result.elapsed_ms)
    return result


@app.command()
def serve(
    host: str = typer.Option(settings.host, "--host", help="Interface to bind"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to listen on"),
):
    """Run the HTTP API."""
    import uvicorn

    from .api import create_app

    configure_logging(settings.log_level, settings.log_json)
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


@app.command()
def fetch(
    url: str = typer.Argument(..., help="URL to fetch"),
    timeout: int = typer.Option(15000, "--timeout", "-t", help="Total budget in milliseconds"),
    wait: int = typer.Option(0, "--wait", help="Extra wait after load in milliseconds"),
    selector: str = typer.Option(None, "-s", "--selector", help="CSS selector that must appear"),
    block_media: bool = typer.Option(False, "--block-media", help="Block images, fonts and media"),
    preset: str = typer.Option(None, "--preset", help="Fetch preset (see `presets`)"),
    output: str = typer.Option(None, "-o", "--output", help="Output file (JSON)"),
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Only output content"),
):
    """Fetch a single URL."""
    from .errors import FetchError

    configure_logging(settings.log_level, settings.log_json)
    try:
        result = asyncio.run(_fetch(url, timeout, wait, selector, block_media or None, preset))
    except (FetchError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    if output:
        with open(output, "w") as f:
            json.dump(result, f, indent=2, ensure_ascii=False)
        typer.echo(f"Saved to {output}")
    elif quiet:
        sys.stdout.write(result["content"])
    else:
        typer.echo(f"Status: {result['pageStatusCode']}")
        typer.echo(f"Content-Type: {result['contentType']}")
        typer.echo(f"Attempts: {result['attempts']} ({result['elapsedMs']}ms)")
        if result.get("pageError"):
            typer.echo(f"Page error: {result['pageError']}")
        typer.echo("---")
        typer.echo(result["content"][:2000])
        if len(result["content"]) > 2000:
            typer.echo(f"\n... (truncated, {len(result['content'])} chars total)")


@app.command()
def presets():
    """List fetch presets."""
    from .presets import PRESETS

    for preset in PRESETS.values():
        marker = "*" if preset.name == settings.preset else " "
        typer.echo(f"{marker} {preset.name:<10} {preset.description}")


@app.command()
def version():
    """Show version."""
    from . import __version__

    typer.echo(f"pagefetch {__version__}")


if __name__ == "__main__":
    app()
