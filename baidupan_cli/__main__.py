"""
Main entry point for the baidupan-cli application.
This module handles top-level setup, exception handling, and CLI invocation.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from baidupan_cli.cli.app import app
from baidupan_cli.cli.formatters import format_error_with_suggestions
from baidupan_cli.exceptions import BaiduPanCliError, NoUsableCredentialError

# sysexits EX_TEMPFAIL: the same request may succeed later.
EXIT_RETRY_LATER = 75


def main() -> None:
    """Main entry point function."""
    if os.name == "nt":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    log = logging.getLogger("baidupan_cli")
    console = Console()

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]⚠️  Operation cancelled by user.[/yellow]")
        sys.exit(0)
    except NoUsableCredentialError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        console.print("[yellow]No credential is usable right now; retry later.[/yellow]")
        sys.exit(EXIT_RETRY_LATER)
    except BaiduPanCliError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, {'type': 'Unexpected'})}")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
