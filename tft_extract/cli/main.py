#!/usr/bin/env python3
"""
Main CLI application entry point with plugin system.

Commands are auto-discovered from tft_extract/cli/commands/ using the
@cli_command decorator. No manual registration required.
"""

from pathlib import Path
from typing import Optional

import typer

from tft_extract.cli.config import AnalysisConfig, load_config_with_precedence
from tft_extract.cli.plugin_system import discover_commands


# Global configuration singleton
_config: Optional[AnalysisConfig] = None


def get_config() -> AnalysisConfig:
    """
    Get or create global config instance.

    Returns the cached config if available, otherwise loads with precedence:
    1. Project config (./.tft_extract_config.json)
    2. User config (~/.tft_extract_config.json)
    3. Environment variables (TFT_*)
    4. Defaults
    """
    global _config
    if _config is None:
        _config = load_config_with_precedence()
    return _config


def set_config(config: Optional[AnalysisConfig]) -> None:
    """Set global config instance (None forces a reload on next access)."""
    global _config
    _config = config


app = typer.Typer(
    name="tft-extract",
    help="Parameter extraction for thin-film transistors and TLM contact structures",
    add_completion=False
)


@app.callback()
def global_options(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output for all commands"
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir",
        help="Override output directory for exported files"
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Use specific config file"
    ),
):
    """
    Global options applied to all commands.

    These options override configuration from files and environment variables.
    """
    config = load_config_with_precedence(config_file=config_file)

    overrides = {}
    if verbose:
        overrides["verbose"] = verbose
    if output_dir is not None:
        overrides["output_dir"] = output_dir

    if overrides:
        config = config.merge_with(**overrides)

    set_config(config)


discover_commands(
    app,
    package="tft_extract.cli.commands",
    config_path=Path("config/cli_plugins.yaml"),
)


def main():
    """Main entry point for the CLI application."""
    app()


if __name__ == "__main__":
    main()
