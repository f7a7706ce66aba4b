"""
Command-line interface for pwnedkeys filter files.
"""
import json
import logging
import sys
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.table import Table

from pwnedkeys_filter.config import LOG_LEVELS, FilterConfig
from pwnedkeys_filter.errors import FilterError
from pwnedkeys_filter.filter import Filter
from pwnedkeys_filter.keys import spki_fingerprint
from pwnedkeys_filter.parameters import filter_parameters


console = Console()

# Exit status for failures other than "key not found"
EXIT_ERROR = 2


def configure_logging(log_level: str):
    """Only emit structlog events at or above ``log_level``."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
    )


def _fail(error: Exception):
    console.print(f"[red]Error: {error}[/red]")
    sys.exit(EXIT_ERROR)


@click.group()
@click.option(
    "--log-level", "-l",
    default="WARNING",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Log level",
)
def main(log_level):
    """Create, query and update pwnedkeys bloom filter files."""
    configure_logging(log_level)


@main.command()
@click.argument("path", type=click.Path(), required=False)
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--entries", "-n", type=int, help="Number of entries the filter should hold")
@click.option("--fp-rate", "-p", type=float, help="Target false-positive rate when full")
@click.option("--hash-count", "-k", type=int, help="Bits set per entry")
@click.option("--hash-length", "-b", type=int, help="Log2 of the bitmap size in bits")
def create(path, config, entries, fp_rate, hash_count, hash_length):
    """Create a new, empty filter file."""

    if config:
        filter_config = FilterConfig.from_file(config)
    else:
        filter_config = FilterConfig()

    # Command line overrides the configuration file
    if path:
        filter_config.path = path
    if entries is not None or fp_rate is not None:
        filter_config.entries = entries
        filter_config.fp_rate = fp_rate
        filter_config.hash_count = filter_config.hash_length = None
    if hash_count is not None or hash_length is not None:
        filter_config.hash_count = hash_count
        filter_config.hash_length = hash_length
        filter_config.entries = filter_config.fp_rate = None

    try:
        params = filter_config.parameters()
        if params is None:
            raise ValueError("Give --entries and --fp-rate, or --hash-count and --hash-length")

        Filter.create(
            filter_config.path,
            hash_count=params.hash_count,
            hash_length=params.hash_length,
        )
    except (FilterError, OSError, ValueError) as e:
        _fail(e)

    console.print(
        f"[green]Created {filter_config.path} "
        f"(hash_count={params.hash_count}, hash_length={params.hash_length})[/green]"
    )


@main.command()
@click.option("--entries", "-n", type=int, required=True, help="Number of entries the filter should hold")
@click.option("--fp-rate", "-p", type=float, required=True, help="Target false-positive rate when full")
def params(entries, fp_rate):
    """Calculate filter geometry for a capacity and false-positive rate."""

    try:
        result = filter_parameters(entries, fp_rate)
    except ValueError as e:
        _fail(e)

    table = Table(title="Filter Parameters")
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("hash_count", str(result.hash_count))
    table.add_row("hash_length", str(result.hash_length))
    table.add_row("Bitmap Size", f"{(2 ** result.hash_length + 7) // 8} bytes")
    console.print(table)


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.argument("keyfiles", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--lock-timeout", type=float, help="Seconds to wait for the file lock")
def add(path, keyfiles, lock_timeout):
    """Add the keys in KEYFILES (PEM or DER) to the filter."""

    added = 0
    try:
        with Filter.open(path, lock_timeout=lock_timeout) as bloom:
            for keyfile in keyfiles:
                key = Path(keyfile).read_bytes()
                if bloom.add(key):
                    added += 1
                    console.print(f"[green]added[/green] {keyfile}")
                else:
                    console.print(f"[yellow]already present[/yellow] {keyfile}")
    except (FilterError, OSError) as e:
        _fail(e)

    console.print(f"[dim]{added} of {len(keyfiles)} keys added[/dim]")


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.argument("keyfiles", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--lock-timeout", type=float, help="Seconds to wait for the file lock")
def query(path, keyfiles, lock_timeout):
    """
    Check whether the keys in KEYFILES are in the filter.

    Exits with status 0 if every key is probably present, 1 otherwise.
    """

    missing = 0
    try:
        with Filter.open(path, lock_timeout=lock_timeout) as bloom:
            for keyfile in keyfiles:
                key = Path(keyfile).read_bytes()
                fingerprint = spki_fingerprint(key)
                if bloom.probably_includes(key):
                    console.print(f"[red]PWNED[/red] {keyfile} {fingerprint}")
                else:
                    missing += 1
                    console.print(f"[green]not found[/green] {keyfile} {fingerprint}")
    except (FilterError, OSError) as e:
        _fail(e)

    sys.exit(1 if missing else 0)


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Output file for stats")
def info(path, output):
    """Display the header and fill level of a filter file."""

    try:
        with Filter.open(path) as bloom:
            stats = bloom.get_stats()
    except (FilterError, OSError) as e:
        _fail(e)

    table = Table(title="Filter Statistics")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Path", stats['path'])
    table.add_row("Signature", stats['signature'])
    table.add_row("Revision", str(stats['revision']))
    table.add_row("Last Update", stats['update_time'])
    table.add_row("Entries", str(stats['entry_count']))
    table.add_row("Hash Count", str(stats['hash_count']))
    table.add_row("Hash Length", str(stats['hash_length']))
    table.add_row("File Size", f"{stats['size_bytes']} bytes")
    table.add_row("False Positive Rate", f"{stats['false_positive_rate']:.6g}")

    console.print(table)

    if output:
        with open(output, 'w') as f:
            json.dump(stats, f, indent=2)

        console.print(f"\n[green]Statistics saved to {output}[/green]")


@main.command()
def version():
    """Display version information."""
    from . import __version__
    console.print(f"[cyan]pwnedkeys-filter v{__version__}[/cyan]")


if __name__ == "__main__":
    main()
