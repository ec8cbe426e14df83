"""CLI module for chromate."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from chromate import __version__
from chromate.browser import Chrome, ChromeProfile, list_processes
from chromate.config import CONFIG
from chromate.logging_config import setup_logging
from chromate.tab import Tab, close_all_tabs, close_tab, list_tabs

console = Console()


def _profile(obj: dict[str, Any], **overrides: Any) -> ChromeProfile:
    return ChromeProfile(port=obj['port'], canary=obj['canary'], verbose=obj['verbose'], **overrides)


def _with_chrome(obj: dict[str, Any], action: Callable[[Chrome], Awaitable[Any]]) -> Any:
    """Run ``action`` against a fresh supervisor and stop its event bus afterwards."""

    async def run() -> Any:
        chrome = Chrome(_profile(obj))
        try:
            return await action(chrome)
        finally:
            await chrome.stop()

    return asyncio.run(run())


def _print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


@click.group()
@click.version_option(__version__, '-v', '--version', prog_name='chromate')
@click.option('--verbose', is_flag=True, help='Enable debug logging and verbose tab tracing')
@click.option('--canary', is_flag=True, help='Prefer Chrome Canary')
@click.option('--port', type=int, default=None, help='Remote debugging port (default: CHROME_PORT or 9222)')
@click.pass_context
def cli(ctx: click.Context, verbose: bool, canary: bool, port: int | None):
    """chromate - run and drive headless Chrome."""
    setup_logging('debug' if verbose else None)
    ctx.obj = {'verbose': verbose, 'canary': canary, 'port': port or CONFIG.CHROME_PORT}


@cli.command(context_settings={'ignore_unknown_options': True, 'allow_interspersed_args': False})
@click.argument('flags', nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
def start(obj: dict[str, Any], flags: tuple[str, ...]):
    """Start headless Chrome. Extra FLAGS are passed to the browser.

    Example:
        chromate start --window-size=1024,768
    """
    chrome_flags = list(flags)
    debug = not any(flag.startswith('--remote-debugging-port') for flag in chrome_flags)
    process = _with_chrome(obj, lambda chrome: chrome.start(debug=debug, chrome_flags=chrome_flags))
    console.print(str(process), highlight=False, soft_wrap=True)


@cli.command()
@click.argument('pids', nargs=-1, type=int, required=True)
@click.pass_obj
def kill(obj: dict[str, Any], pids: tuple[int, ...]):
    """Kill Chrome processes by PID and remove their temporary profiles."""
    _with_chrome(obj, lambda chrome: chrome.kill(list(pids)))


@cli.command()
@click.pass_obj
def killall(obj: dict[str, Any]):
    """Kill every headless Chrome process."""
    count = _with_chrome(obj, lambda chrome: chrome.killall())
    console.print(count)


@cli.command(name='list')
@click.option('--all', 'include_children', is_flag=True, help='Include renderer and other helper processes')
@click.pass_obj
def list_command(obj: dict[str, Any], include_children: bool):
    """List headless Chrome processes."""
    processes = list_processes(include_children=include_children)
    table = Table('PID', 'Command', 'Arguments')
    for info in processes:
        table.add_row(str(info.pid), info.command, ' '.join(info.arguments))
    console.print(table)


@cli.command()
@click.pass_obj
def version(obj: dict[str, Any]):
    """Show browser and protocol versions of the running browser."""
    _print_json(_with_chrome(obj, lambda chrome: chrome.version()))


@cli.command(name='open')
@click.argument('url')
@click.option('--wait-for-done/--no-wait-for-done', default=False, help="Wait for the page's 'done' event")
@click.option('--timeout', type=float, default=None, help='Seconds to wait for completion')
@click.pass_obj
def open_command(obj: dict[str, Any], url: str, wait_for_done: bool, timeout: float | None):
    """Open URL in a new tab and print the target. The tab stays open."""

    async def run() -> dict[str, Any]:
        settings: dict[str, Any] = {'port': obj['port'], 'fail_on_error': False, 'verbose': obj['verbose']}
        if timeout is not None:
            settings['timeout'] = timeout
        tab = await Tab.open_url(url, wait_for_done=wait_for_done, **settings)
        # Leave the target open for later list-tabs / close
        await tab.devtools.disconnect(tab.client)
        return tab.target

    _print_json(asyncio.run(run()))


@cli.command(name='list-tabs')
@click.pass_obj
def list_tabs_command(obj: dict[str, Any]):
    """List all targets of the running browser."""
    targets = asyncio.run(list_tabs(obj['port']))
    table = Table('ID', 'Type', 'Title', 'URL')
    for target in targets:
        table.add_row(target.get('id', ''), target.get('type', ''), target.get('title', ''), target.get('url', ''))
    console.print(table)


@cli.command(name='close')
@click.argument('tab_ids', nargs=-1, required=True)
@click.pass_obj
def close_command(obj: dict[str, Any], tab_ids: tuple[str, ...]):
    """Close tabs by target id."""

    async def run() -> None:
        await asyncio.gather(*(close_tab(tab_id, obj['port']) for tab_id in tab_ids))

    asyncio.run(run())


@cli.command(name='close-tabs')
@click.pass_obj
def close_tabs(obj: dict[str, Any]):
    """Close every tab of the running browser."""
    console.print(asyncio.run(close_all_tabs(obj['port'])))


def main():
    """Console script entry point."""
    cli()


if __name__ == '__main__':
    main()
