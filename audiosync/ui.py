"""Console helpers — startup banner and log handler."""
import logging

from rich.console import Console
from rich.logging import RichHandler

from .config import APP_VERSION, DEFAULT_VOLUME, TRACK_DURATION
from .utils import fmt_time

console = Console()


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # uvicorn's access log duplicates what our handlers already report
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def print_header():
    console.print(
        f"\n  [bold cyan]♪  Audio Sync[/bold cyan]"
        f"  [dim]v{APP_VERSION}[/dim]"
    )


def print_startup(host: str, port: int):
    console.print(
        f"  track [bold]{fmt_time(TRACK_DURATION)}[/bold]"
        f" · volume [bold]{DEFAULT_VOLUME:.0%}[/bold]"
    )
    console.print(f"  [green]Server starting on port {port}[/green] [dim]({host})[/dim]\n")
