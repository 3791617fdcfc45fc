"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import typer
from rich.console import Console
from rich.logging import RichHandler

from baidupan_cli import __version__
from baidupan_cli.api.client import RemoteSession
from baidupan_cli.api.http import close_connection_pool, get_connection_pool
from baidupan_cli.core.service import (
    ShareLinkService,
    build_blob_store,
    build_credential_store,
)
from baidupan_cli.exceptions import BaiduPanCliError
from baidupan_cli.models.config import AppConfig
from baidupan_cli.models.files import Credential, CredentialSource
from baidupan_cli.storage.blob_store import FileBlobStore
from baidupan_cli.storage.config_manager import ConfigManager

from .formatters import (
    print_cleanup_report,
    print_config,
    print_health_table,
    print_pool_table,
    print_share_listing,
    print_transfer_result,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("baidupan_cli")

app = typer.Typer(
    name="baidupan-cli",
    help=(
        "Turn Baidu Netdisk share links into direct download links using a pool"
        " of borrowed cookies. Use 'baidupan-cli <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)
pool_app = typer.Typer(help="Manage the persisted credential pool.")
app.add_typer(pool_app, name="pool")


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "baidupan-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict[str, Any] | None = None) -> AppConfig:
    return ConfigManager(CONFIG_FILE).load_config(cli_options)


@asynccontextmanager
async def _open_service(config: AppConfig) -> AsyncIterator[ShareLinkService]:
    """Yields a service on the shared connection pool and tears both down."""
    http = await get_connection_pool()
    service = ShareLinkService(config, http, build_credential_store(config))
    try:
        yield service
    finally:
        if service.tasks.pending:
            console.print("[dim]Finishing background cleanup...[/dim]")
            await service.drain_background(timeout=config.user_cleanup_delay + 30)
            await service.tasks.cancel_all()
        await close_connection_pool()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Enable debug logging.",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_store: bool = typer.Option(
        False,
        "--clear-store",
        help="Delete the persisted pool, blocklist and cleanup history, then exit.",
    ),
):
    """Baidu Netdisk direct link CLI"""
    if version:
        console.print(f"[bold]baidupan-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    logging.getLogger("baidupan_cli").setLevel("DEBUG" if verbose >= 1 else "INFO")

    if clear_store:
        config = _load_config()
        store = build_blob_store(config)
        if not isinstance(store, FileBlobStore):
            console.print(
                f"[yellow]Store backend '{config.store_backend}' keeps nothing on "
                "disk.[/yellow]"
            )
            raise typer.Exit()
        console.print("[cyan]Clearing credential store...[/cyan]")
        if store.clear():
            console.print("[green]✓ Credential store cleared.[/green]")
        else:
            console.print("[red]✗ Failed to clear credential store.[/red]")
            raise typer.Exit(code=1)
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]baidupan-cli init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager._parser.read(CONFIG_FILE, encoding="utf-8")
        print_config(CONFIG_FILE, config_manager._get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    cookies: list[str] | None = typer.Option(  # noqa: B008
        None,
        "--cookie",
        "-c",
        help="A server cookie string containing BDUSS. Repeat for several.",
    ),
    store_backend: str = typer.Option(
        "file", "--store", help="Where pool state is kept: file, memory or none."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file without asking."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    cookies = cookies or []
    for cookie in cookies:
        if not Credential(cookie, CredentialSource.CONFIG).is_plausible():
            console.print("[yellow]⚠️  A cookie has no BDUSS field; it will not work.[/yellow]")

    ConfigManager(CONFIG_FILE).save_new_config(
        {"server_cookies": cookies, "store_backend": store_backend}
    )
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Try: [cyan]baidupan-cli list <SHARE LINK>[/cyan]")


@app.command(name="list")
def list_command(
    link: str = typer.Argument(..., help="Share link, optionally with its code."),
    directory: str | None = typer.Option(
        None, "--dir", "-d", help="Directory inside the share to list."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON."),
):
    """List the files in a share. Uses no credential."""
    config = _load_config()

    async def _list_async():
        async with _open_service(config) as service:
            response = await service.list_share(link, directory)
        if as_json:
            console.print_json(json.dumps(response, ensure_ascii=False))
        else:
            print_share_listing(response["data"])

    asyncio.run(_list_async())


@app.command(name="download")
def download_command(
    link: str = typer.Argument(..., help="Share link, optionally with its code."),
    fs_ids: list[int] | None = typer.Option(  # noqa: B008
        None,
        "--fs-id",
        "-i",
        help="fs_id of an entry to fetch. Repeat for several; default is every entry.",
    ),
    directory: str | None = typer.Option(
        None, "--dir", "-d", help="Directory inside the share to pick entries from."
    ),
    cookie: str | None = typer.Option(
        None, "--cookie", help="Use your own cookie instead of the server pool."
    ),
    user_agent: str | None = typer.Option(
        None, "--user-agent", "-A", help="User-Agent the links will be used with."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON."),
):
    """Produce direct download links for files in a share."""
    config = _load_config()

    async def _download_async():
        async with _open_service(config) as service:
            listing = (await service.list_share(link, directory))["data"]
            entries = listing.get("list", [])
            if fs_ids:
                wanted = set(fs_ids)
                entries = [e for e in entries if e.get("fs_id") in wanted]
                if missing := wanted - {e.get("fs_id") for e in entries}:
                    log.warning(
                        f"[yellow]Not in this listing: {sorted(missing)}[/yellow]"
                    )
            if not entries:
                console.print("[red]✗ Nothing to download.[/red]")
                raise typer.Exit(code=1)

            console.print(
                f"[bold cyan]🔗 Requesting links for {len(entries)} entries...[/bold cyan]"
            )
            start_time = time.monotonic()
            result = await service.download(
                entries, listing, user_credential=cookie, user_agent=user_agent
            )
            duration = time.monotonic() - start_time

            if as_json:
                console.print_json(json.dumps(result, ensure_ascii=False))
            else:
                print_transfer_result(result, duration)

    asyncio.run(_download_async())


@app.command()
def health():
    """Check every credential and rebuild the blocklist."""
    config = _load_config()

    async def _health_async():
        async with _open_service(config) as service:
            results = await service.run_health_sweep()
        if results:
            print_health_table(results)
        else:
            console.print("[yellow]No credentials configured.[/yellow]")

    asyncio.run(_health_async())


@app.command()
def cleanup():
    """Empty the scratch directory of a batch of credentials."""
    config = _load_config()

    async def _cleanup_async():
        async with _open_service(config) as service:
            report = await service.run_cleanup_sweep()
        print_cleanup_report(report)

    asyncio.run(_cleanup_async())


@app.command()
def maintain(
    skip_initial: bool = typer.Option(
        False, "--skip-initial", help="Wait one interval before the first sweep."
    ),
):
    """Run health and cleanup sweeps periodically until interrupted."""
    config = _load_config()

    async def _maintain_async():
        async with _open_service(config) as service:
            console.print(
                "[bold cyan]Maintenance running[/bold cyan] "
                f"[dim](health every {config.health_interval:.0f}s, cleanup every "
                f"{config.cleanup_interval:.0f}s; Ctrl+C to stop)[/dim]"
            )
            await service.maintenance.run_forever(run_now=not skip_initial)

    asyncio.run(_maintain_async())


@pool_app.command("add")
def pool_add(
    cookie: str = typer.Argument(..., help="Cookie string containing BDUSS."),
    check: bool = typer.Option(
        False, "--check", help="Verify the cookie initializes a session first."
    ),
):
    """Add a cookie to the persisted pool."""
    config = _load_config()
    credential = Credential(cookie.strip(), CredentialSource.STORE)
    if not credential.is_plausible():
        console.print("[red]✗ The cookie has no BDUSS field.[/red]")
        raise typer.Exit(code=1)

    async def _add_async():
        store = build_credential_store(config)
        if check:
            http = await get_connection_pool()
            try:
                if not await RemoteSession(credential, http, config.client_ip).initialize():
                    console.print(f"[red]✗ Credential {credential.id} is not valid.[/red]")
                    raise typer.Exit(code=1)
            finally:
                await close_connection_pool()

        if await store.add_to_pool(credential.secret):
            console.print(f"[green]✓ Added credential {credential.id}.[/green]")
        else:
            console.print(f"[yellow]Credential {credential.id} is already pooled.[/yellow]")

    asyncio.run(_add_async())


@pool_app.command("list")
def pool_list():
    """Show the credentials in use and their state."""
    config = _load_config()

    async def _list_async():
        store = build_credential_store(config)
        print_pool_table(
            await store.load_candidates(),
            await store.load_blocklist(),
            await store.load_history(),
        )

    asyncio.run(_list_async())


@pool_app.command("remove")
def pool_remove(
    credential_id: str = typer.Argument(..., help="Credential id (or a prefix of it)."),
):
    """Remove a cookie from the persisted pool."""
    config = _load_config()

    async def _remove_async():
        store = build_credential_store(config)
        if await store.remove_from_pool(credential_id):
            console.print(f"[green]✓ Removed credential {credential_id}.[/green]")
        else:
            console.print(f"[yellow]No pooled credential matches {credential_id}.[/yellow]")
            raise typer.Exit(code=1)

    asyncio.run(_remove_async())


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config = _load_config()
        print_validation_table(config)
    except BaiduPanCliError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
