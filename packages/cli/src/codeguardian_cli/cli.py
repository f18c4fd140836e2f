"""CLI entry point for codeguardian.

Commands:
  review         — run the whole pipeline: diff, request, AI call, inline comments
  build-request  — build request.json from the instruction, rules and diff.trimmed
  call           — send request.json to the provider and write the parsed result
  post           — post ai_result.json issues as inline PR comments
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.logging import RichHandler

from codeguardian_cli.commands.review import review_cmd
from codeguardian_cli.commands.stages import build_request_cmd, call_cmd, post_cmd
from codeguardian_cli.errors import handle_errors


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False, rich_tracebacks=True)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("codeguardian"),
    prog_name="codeguardian",
)
@click.option(
    "--config",
    "config_path",
    default=".codeguardian.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="CODEGUARDIAN_CONFIG",
)
@click.option(
    "--provider",
    type=click.Choice(["gemini", "openai"]),
    default=None,
    help="AI provider. Overrides config file and CODEGUARDIAN_PROVIDER.",
)
@click.option("--model", default=None, help="Model to try first. Overrides config file and MODEL.")
@click.option(
    "--artifacts-dir",
    default=None,
    help="Directory for diff.trimmed, request.json and the other hand-off files.",
)
@click.option("--debug", is_flag=True, help="Verbose logging and full tracebacks on failure.")
@click.pass_context
@handle_errors("Loading configuration")
def main(ctx: click.Context, config_path: str, provider, model, artifacts_dir, debug: bool):
    """AI code review for pull requests, posted as inline GitHub comments."""
    from codeguardian_core.config import load_config

    config = load_config(
        config_path,
        cli_overrides={
            "provider": provider,
            "model": model,
            "artifacts_dir": artifacts_dir,
            "debug": debug or None,
        },
    )
    _configure_logging(config.debug)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


main.add_command(review_cmd)
main.add_command(build_request_cmd)
main.add_command(call_cmd)
main.add_command(post_cmd)
