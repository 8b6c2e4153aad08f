"""
credence/cli/__init__.py

Credence CLI — root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    credence = "credence.cli:cli"

Adding a new command:
    1. Create credence/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import click

from credence.cli.evaluate import evaluate_command
from credence.cli.verify import verify_command


@click.group()
@click.version_option(package_name="credence")
def cli() -> None:
    """
    Credence — oracle consensus and settlement CLI.

    \b
    Commands:
      evaluate  Run consensus over a file of provider answers.
      verify    Verify a settlement registry — chain, signatures, amounts.

    \b
    Quick start:
      credence evaluate answers.yaml --algorithm majority_vote
      credence verify .credence/registry/registry.jsonl --format json
      credence verify registry.jsonl --quiet && echo "clean"
    """
    pass


cli.add_command(evaluate_command)
cli.add_command(verify_command)
