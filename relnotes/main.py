# relnotes/main.py
"""Main entry point for the relnotes CLI application."""

from relnotes.cli.interface import main_cli_group


def entrypoint():
    """Function called by the console script defined in pyproject.toml."""
    main_cli_group(prog_name="relnotes")

if __name__ == '__main__':
    entrypoint()
