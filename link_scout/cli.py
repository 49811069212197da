# === FILE: link_scout/cli.py ===
#!/usr/bin/env python3
"""
Command line entry point of LinkScout.

Commands:
  fetch     Fetch, sanitise and analyse one or more URLs
  expand    Classify a URL, list nested URLs and follow its redirects
  serve     Run the HTTP API
  config    Show the effective configuration

Common options:
  --config PATH       YAML/JSON configuration (default: configs/default.yaml if present)
  --log-level LEVEL   Logging level (DEBUG, INFO, ...)
  --log-file PATH     Log file (stderr if omitted)
  --log-format FORMAT Log record format (e.g. "%(asctime)s %(levelname)s %(message)s")

fetch options:
  --json PATH         Save the JSON report to a file
  --pretty            Indent JSON output by 2

Also:
  --version, -v       Show the LinkScout version

Example:
  link-scout fetch https://bit.ly/abc https://example.com --pretty
"""
import sys
import asyncio
import json
from pathlib import Path

import click
from aiohttp import web

from link_scout import __version__
from link_scout.config import load_config
from link_scout.engine import start_expand, start_fetch
from link_scout.errors import LinkScoutError
from link_scout.logger import configure
from link_scout.report.json_report import render_json
from link_scout.server import create_app

CONTEXT_SETTINGS = dict(help_option_names=["--help"])

def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)

@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='LinkScout, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Path to a YAML or JSON configuration file.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Logging level'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Log file (stderr if omitted)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(message)s',
    show_default=True,
    help='Log record format string'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """LinkScout command group."""
    configure(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Could not load configuration: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg

@cli.command('fetch', context_settings=CONTEXT_SETTINGS)
@click.argument('urls', nargs=-1, required=True)
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Save the JSON report to a file'
)
@click.option(
    '--pretty', is_flag=True,
    help='Indent JSON output by 2'
)
@click.pass_context
def fetch(ctx, urls, json_output, pretty):
    """Fetch and analyse URLS."""
    cfg = ctx.obj['config']
    try:
        response = asyncio.run(start_fetch(cfg, list(urls)))
    except LinkScoutError as e:
        print_error(e.message)
    except Exception as e:
        print_error(f'Fetch failed: {e}')

    if json_output:
        try:
            saved = render_json(response, json_output, pretty=pretty)
            click.echo(f'JSON report: {saved}')
        except Exception as e:
            print_error(f'Could not save JSON report: {e}')
        return

    indent = 2 if pretty else None
    click.echo(json.dumps(response.to_dict(include_content=True), ensure_ascii=False, indent=indent))

@cli.command('expand', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.pass_context
def expand(ctx, url):
    """Classify URL and follow its redirects."""
    cfg = ctx.obj['config']
    try:
        result = asyncio.run(start_expand(cfg, url))
    except LinkScoutError as e:
        print_error(e.message)
    except Exception as e:
        print_error(f'Expansion failed: {e}')
    click.echo(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))

@cli.command('serve', context_settings=CONTEXT_SETTINGS)
@click.option('--host', default='127.0.0.1', show_default=True, help='Interface to bind')
@click.option('--port', default=8080, show_default=True, type=int, help='Port to listen on')
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API."""
    cfg = ctx.obj['config']
    run_app(create_app(cfg), host=host, port=port, print=None)

@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Show the effective configuration as JSON."""
    cfg = ctx.obj['config']
    click.echo(json.dumps(cfg.model_dump(mode='json'), ensure_ascii=False, indent=2))

run_app = web.run_app

# expose these names at module level for test monkey-patching
cli.start_fetch = start_fetch
cli.start_expand = start_expand
cli.render_json = render_json
cli.run_app = run_app

if __name__ == "__main__":
    cli()
