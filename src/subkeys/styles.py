"""Shared console styling for command output."""

from rich.console import Console
from rich.theme import Theme

THEME = Theme(
    {
        "header": "bold cyan",
        "success": "bold green",
        "warning": "bold yellow",
        "error": "bold red",
        "info": "dim cyan",
        "muted": "dim white",
        "highlight": "bold magenta",
        "step": "bold white",
        "key": "bold blue",
    }
)

# Per-record status tags, padded so record names line up.
TAGS = {
    "ok": "[success]\\[OK][/success]  ",
    "fail": "[error]\\[FAIL][/error]",
    "skip": "[warning]\\[SKIP][/warning]",
    "dry": "[info]\\[DRY-RUN][/info]",
    "diff": "[warning]\\[DIFF][/warning]",
    "miss": "[error]\\[MISS][/error]",
}

RULE = "─" * 64


def make_console() -> Console:
    return Console(theme=THEME, highlight=False)
