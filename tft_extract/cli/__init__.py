"""Command-line interface: configuration, logging setup and command plugins."""
