"""
CLI Plugin System - Auto-discovery and registration of commands.

Provides decorator-based command registration and automatic discovery
from the ``tft_extract.cli.commands`` package.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import typer
import yaml

logger = logging.getLogger(__name__)

DEFAULT_PLUGIN_CONFIG = Path("config/cli_plugins.yaml")


@dataclass
class CommandMetadata:
    """Metadata for a CLI command plugin."""

    name: str
    """Command name (kebab-case, e.g., 'analyze-tft')"""

    function: Callable
    """The actual command function"""

    group: str = "general"
    """Command group for organization (e.g., 'analysis', 'config')"""

    description: str = ""
    """Short description for the command"""

    aliases: List[str] = field(default_factory=list)
    """Alternative names for the command"""

    priority: int = 0
    """Registration priority (higher = earlier)"""


# Global registry of discovered commands
_COMMAND_REGISTRY: Dict[str, CommandMetadata] = {}


def cli_command(
    name: str,
    group: str = "general",
    description: str = "",
    aliases: Optional[List[str]] = None,
    priority: int = 0,
):
    """
    Decorator to register a function as a CLI command plugin.

    Parameters
    ----------
    name : str
        Command name (kebab-case, e.g., 'analyze-tlm')
    group : str
        Command group for organization (e.g., 'analysis', 'config')
    description : str
        Short description (overrides docstring first line)
    aliases : list[str], optional
        Alternative command names
    priority : int
        Registration priority (higher = registered earlier)

    Examples
    --------
    >>> @cli_command(name="analyze-tlm", group="analysis")
    ... def analyze_tlm_command(directories: List[Path], ...):
    ...     '''Extract contact parameters from TLM samples'''
    ...     pass
    """
    def decorator(func: Callable) -> Callable:
        if not description and func.__doc__:
            desc = func.__doc__.strip().split('\n')[0]
        else:
            desc = description

        _COMMAND_REGISTRY[name] = CommandMetadata(
            name=name,
            function=func,
            group=group,
            description=desc,
            aliases=aliases or [],
            priority=priority,
        )
        return func

    return decorator


def load_plugin_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load plugin configuration from YAML file.

    Returns
    -------
    dict
        Plugin configuration with keys:
        - enabled_groups: List of enabled command groups
        - disabled_commands: List of disabled command names
        - settings: Additional plugin settings
    """
    if config_path is None:
        config_path = DEFAULT_PLUGIN_CONFIG

    default_config = {
        "enabled_groups": ["all"],  # "all" means enable everything
        "disabled_commands": [],
        "settings": {},
    }

    if not Path(config_path).exists():
        return default_config

    try:
        with open(config_path) as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load plugin config {config_path}: {e}")
        return default_config

    return {**default_config, **(config or {})}


def discover_commands(
    app: typer.Typer,
    package: str = "tft_extract.cli.commands",
    config_path: Optional[Path] = None,
) -> int:
    """
    Auto-discover and register all command plugins.

    Imports every module of ``package`` to trigger the @cli_command
    decorators, then registers the discovered commands with the Typer app
    in priority order (highest first), then alphabetically by name.

    Returns
    -------
    int
        Number of commands registered (aliases not counted)
    """
    config = load_plugin_config(config_path)
    enabled_groups = config["enabled_groups"]
    disabled_commands = config["disabled_commands"]

    commands_pkg = importlib.import_module(package)
    for module_info in pkgutil.iter_modules(commands_pkg.__path__):
        module_name = f"{package}.{module_info.name}"
        try:
            importlib.import_module(module_name)
            logger.debug(f"Loaded plugin module: {module_name}")
        except ImportError as e:
            logger.warning(f"Failed to load plugin {module_name}: {e}")

    sorted_commands = sorted(
        _COMMAND_REGISTRY.values(),
        key=lambda c: (-c.priority, c.name)
    )

    registered_count = 0
    for metadata in sorted_commands:
        if "all" not in enabled_groups and metadata.group not in enabled_groups:
            logger.debug(f"Skipped (group disabled): {metadata.name} [{metadata.group}]")
            continue

        if metadata.name in disabled_commands:
            logger.debug(f"Skipped (explicitly disabled): {metadata.name}")
            continue

        app.command(name=metadata.name)(metadata.function)
        registered_count += 1

        for alias in metadata.aliases:
            app.command(name=alias, hidden=True)(metadata.function)

    logger.debug(f"Total commands registered: {registered_count}/{len(_COMMAND_REGISTRY)}")
    return registered_count


def list_available_commands(group: Optional[str] = None) -> List[CommandMetadata]:
    """Registered command plugins, optionally filtered by group."""
    commands = list(_COMMAND_REGISTRY.values())
    if group:
        commands = [c for c in commands if c.group == group]
    return sorted(commands, key=lambda c: c.name)


def get_command_groups() -> List[str]:
    return sorted(set(c.group for c in _COMMAND_REGISTRY.values()))
