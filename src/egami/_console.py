"""Shared Rich consoles and output helpers for the egami CLI."""

from __future__ import annotations

import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from egami.core.types import Diagnostics

# Reconfigure stdout/stderr to UTF-8 to avoid Windows charmap encoding errors
# with Rich's Unicode spinners.
try:
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")
except (AttributeError, OSError):
    pass

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    err_console.print(f"[red]Error: {escape(message)}[/red]")


def print_diagnostics_summary(diagnostics: Diagnostics) -> None:
    """One stderr line counting the skipped units; details were already logged."""
    if not len(diagnostics):
        return
    units = sorted({entry.unit for entry in diagnostics})
    shown = ", ".join(units[:5]) + (", ..." if len(units) > 5 else "")
    err_console.print(
        f"[yellow]Warning: {len(diagnostics)} issue(s) in {escape(shown)}[/yellow]"
    )


def print_saved(output: Path, elapsed: float | None = None) -> None:
    size_kb = output.stat().st_size / 1024 if output.exists() else 0.0
    line = f"  Saved: {escape(str(output))} ({size_kb:.1f} KB)"
    if elapsed is not None:
        line += f" in {elapsed:.1f}s"
    console.print(line)
