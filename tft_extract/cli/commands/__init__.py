"""Command plugins; every module here is imported by discover_commands()."""
