"""Commands operating on an ApiForge instance given as MODULE:ATTR."""

from __future__ import annotations

import importlib
import sys
from pathlib import Path

import click

from apiforge.api.app import ApiForge
from apiforge.config import Settings, configure_logging
from apiforge.plugins.legacy import check_plugin_conflicts


def load_api(target: str) -> ApiForge:
    """Import "package.module:attr" and return the ApiForge it names.

    The attribute may be an ApiForge instance or a zero-argument callable
    returning one. The current directory is importable.
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise click.BadParameter(f"Expected MODULE:ATTR, got '{target}'")

    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"Cannot import module '{module_name}': {e}") from e

    obj = getattr(module, attr, None)
    if obj is None:
        raise click.BadParameter(f"Module '{module_name}' has no attribute '{attr}'")
    if not isinstance(obj, ApiForge) and callable(obj):
        obj = obj()
    if not isinstance(obj, ApiForge):
        raise click.BadParameter(f"'{target}' is not an ApiForge instance")
    return obj


@click.command()
@click.argument("target")
def routes(target: str):
    """Print the route table of TARGET (MODULE:ATTR)."""
    api = load_api(target)
    rows = api.describe_routes()
    width = max(len(row["path"]) for row in rows)
    for row in rows:
        click.echo(f"  {row['method']:<7} {row['path']:<{width}}  {row['target']}")
    click.echo(f"\n{len(rows)} route(s)")


@click.command()
@click.argument("target")
def check(target: str):
    """Report plugin conflicts in TARGET (MODULE:ATTR); exit 1 if any."""
    api = load_api(target)
    conflicts = check_plugin_conflicts(api.plugins)

    if not conflicts:
        click.echo(click.style("No plugin conflicts found.", fg="green"))
        return

    for conflict in conflicts:
        click.echo(click.style(f"  ✗ {conflict}", fg="red"))
    click.echo(click.style(f"\n{len(conflicts)} conflict(s) found", fg="red", bold=True))
    raise SystemExit(1)


@click.command()
@click.argument("target")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=None, type=int, help="Port (default: APIFORGE_PORT or 8000).")
@click.option("--prefix", default=None, help="Mount prefix (default: APIFORGE_API_PREFIX or /api).")
def serve(target: str, host: str, port: int | None, prefix: str | None):
    """Serve TARGET (MODULE:ATTR) with uvicorn."""
    import uvicorn

    from apiforge.api.fastapi_adapter import create_fastapi_app

    settings = Settings.from_env()
    configure_logging(settings)

    api = load_api(target)
    app = create_fastapi_app(api, prefix=prefix)
    uvicorn.run(
        app,
        host=host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )
