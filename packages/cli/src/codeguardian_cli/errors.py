"""The process boundary: every command's uncaught error becomes exit code 1."""

from __future__ import annotations

import functools
import os
import sys

import click
from rich.console import Console
from rich.markup import escape

console = Console(stderr=True, soft_wrap=True)


def _debug_enabled() -> bool:
    ctx = click.get_current_context(silent=True)
    if ctx is not None and ctx.find_root().params.get("debug"):
        return True
    return bool(os.environ.get("DEBUG"))


def handle_errors(context: str):
    """Report an uncaught exception as '<context> failed: <message>' and exit 1.

    The traceback is printed only with --debug or DEBUG set. Click's own
    exceptions (usage errors, --help, explicit exits) pass through untouched.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except (click.ClickException, click.exceptions.Exit, click.Abort):
                raise
            except Exception as e:
                console.print(f"[red]{context} failed:[/red] {escape(str(e))}")
                if _debug_enabled():
                    console.print_exception()
                sys.exit(1)

        return wrapper

    return decorator
