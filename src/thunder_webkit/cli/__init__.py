"""
thunder-webkit CLI.

- commands: status, start, stop, resume, launch, logs
"""

import typer

from thunder_webkit.cli.commands import register_commands
from thunder_webkit.logger import setup_logging

app = typer.Typer(help="Control a Thunder-hosted WebKit browser")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging (DEBUG level)"
    ),
):
    """
    Control a Thunder-hosted WebKit browser.
    """
    setup_logging(level="DEBUG" if verbose else "WARNING")


register_commands(app)

if __name__ == "__main__":
    app()
