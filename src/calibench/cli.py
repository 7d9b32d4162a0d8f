"""Command-line interface for calibench.

Provides the main CLI entry point with ``run``, ``list``, ``compare`` and
``system`` subcommands.
"""

from __future__ import annotations

import click

from calibench import __version__


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """calibench: adaptive micro-benchmark harness and statistical comparator."""


# Register subcommands.
from calibench.bench_cli import compare, list_benchmarks, run, system  # noqa: E402

main.add_command(run)
main.add_command(list_benchmarks)
main.add_command(compare)
main.add_command(system)
