"""
Functions for formatting and displaying data in the console using Rich.
"""

import time
from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from baidupan_cli.models.config import AppConfig
from baidupan_cli.models.files import Credential
from baidupan_cli.models.maintenance import CleanupReport, HealthResult
from baidupan_cli.utils.formatting import (
    format_duration,
    format_size,
    format_timestamp_age,
)


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "NoUsableCredentialError": [
            "• Every pooled cookie failed to initialize a session.",
            "• Add fresh cookies with `baidupan-cli pool add`.",
            "• Run `baidupan-cli health` to rebuild the blocklist.",
            "• Pass your own cookie with `--cookie`.",
        ],
        "InvalidLinkError": [
            "• Paste the full share link, e.g. https://pan.baidu.com/s/1xxxx?pwd=abcd",
            "• Include the 4-character extraction code if the share has one.",
        ],
        "RemoteOperationError": [
            "• The share may have expired or been taken down.",
            "• The borrowed account may be out of space. Try `baidupan-cli cleanup`.",
            "• Errno -1 means the request never got a usable answer; retry later.",
        ],
        "NothingTransferredError": [
            "• The transfer was accepted but no files arrived.",
            "• The share owner may have removed the files.",
        ],
        "ConfigurationError": [
            "• Run `baidupan-cli validate` to see what is wrong.",
            "• Run `baidupan-cli init --force` to recreate the file.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• Baidu Netdisk might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
        "TimeoutError": [
            "• A request timed out, which may indicate network throttling.",
            "• Check your internet connection.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -v for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding cookies."""
    console = Console()
    content = ""
    for key, value in sorted(config_data.items()):
        if key == "server_cookies":
            value = f"[hidden: {len(value)} cookie(s)]"
        elif isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: AppConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Static Cookies:", str(len(config.server_cookies)))
    table.add_row("Store Backend:", f"[green]{config.store_backend}[/green]")
    table.add_row("Scratch Root:", config.scratch_root)
    table.add_row("Max File Size:", format_size(config.max_file_size))
    table.add_row("Max Files:", str(config.max_files))
    table.add_row(
        "Health Interval:", format_duration(config.health_interval)
    )
    table.add_row(
        "Cleanup Interval:", format_duration(config.cleanup_interval)
    )
    table.add_row("Link User-Agent:", f"[dim]{config.link_user_agent}[/dim]")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_share_listing(data: dict[str, Any]):
    """Displays the entries of a share listing."""
    console = Console()
    table = Table(
        title=f"Share {data.get('shareid')} (uk {data.get('uk')})",
        box=box.ROUNDED,
    )
    table.add_column("fs_id", style="dim", no_wrap=True)
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right", style="green")

    for item in data.get("list", []):
        is_dir = item.get("isdir") == 1
        table.add_row(
            str(item.get("fs_id")),
            f"📁 {item.get('server_filename')}" if is_dir else item.get("server_filename"),
            "-" if is_dir else format_size(item.get("size", 0)),
        )
    console.print(table)


def print_transfer_result(result: dict[str, Any], duration_s: float):
    """Displays the links produced by a download request and a summary panel."""
    console = Console()

    if succeeded := result.get("succeeded"):
        table = Table(box=box.ROUNDED, title="[bold]Direct Links[/bold]")
        table.add_column("Path", style="cyan")
        table.add_column("Size", justify="right", style="green")
        table.add_column("Link", overflow="fold")
        for item in succeeded:
            table.add_row(
                item["relativePath"], format_size(item["size"]), item["dlink"]
            )
        console.print(table)

    for reason in result.get("skipped", []):
        console.print(f"[yellow]○ {reason}[/yellow]")
    for reason in result.get("failed", []):
        console.print(f"[red]✗ {reason}[/red]")

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(justify="left")
    stats_table.add_row("✓ Links:", f"[bold green]{len(succeeded or [])}[/bold green]")
    if skipped := result.get("skipped"):
        stats_table.add_row("○ Skipped:", f"[yellow]{len(skipped)}[/yellow]")
    if failed := result.get("failed"):
        stats_table.add_row("✗ Failed:", f"[bold red]{len(failed)}[/bold red]")
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    console.print()
    console.print(
        Panel(
            stats_table,
            title="🔗 [bold]Request Complete[/bold]",
            border_style="red" if failed and not succeeded else "green",
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )


def print_health_table(results: list[HealthResult]):
    console = Console()
    table = Table(title="Credential Health", box=box.ROUNDED)
    table.add_column("Credential", style="cyan")
    table.add_column("Status")
    for r in results:
        table.add_row(
            r.credential_id,
            "[green]alive[/green]" if r.alive else "[red]blocked[/red]",
        )
    console.print(table)


def print_cleanup_report(report: CleanupReport):
    console = Console()
    styles = {"success": "green", "skipped": "yellow", "failed": "red"}
    table = Table(title=f"Cleanup ({report.strategy})", box=box.ROUNDED)
    table.add_column("Credential", style="cyan")
    table.add_column("Status")
    for cred_id, status in report.statuses.items():
        style = styles.get(status, "white")
        table.add_row(cred_id, f"[{style}]{status}[/{style}]")
    console.print(table)
    console.print(f"[dim]{report.summary()}[/dim]")


def print_pool_table(
    credentials: list[Credential],
    blocked: set[str],
    history: dict[str, float] | None,
):
    """Displays the credential pool with blocklist and cleanup state."""
    console = Console()
    if not credentials:
        console.print("[yellow]The credential pool is empty.[/yellow]")
        return

    now = time.time()
    table = Table(title="Credential Pool", box=box.ROUNDED)
    table.add_column("Credential", style="cyan")
    table.add_column("Source", style="dim")
    table.add_column("Status")
    table.add_column("Last Cleaned", justify="right")
    for c in credentials:
        table.add_row(
            c.id,
            c.source.value,
            "[red]blocked[/red]" if c.id in blocked else "[green]active[/green]",
            "-" if history is None else format_timestamp_age(history.get(c.id), now),
        )
    console.print(table)
