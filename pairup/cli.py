"""
pairup Command-Line Interface

Provides commands to inspect and clean up pair-up tables.
"""

import sys
import json
import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click

from pairup import __version__
from pairup.core.config_manager import ConfigManager, PairUpConfig
from pairup.core.logging_config import configure_logging, get_repository_logger
from pairup.repositories.base import BaseRepository


def _load_config(config: Optional[Path], connection_string: Optional[str], log_level: Optional[str]) -> PairUpConfig:
    overrides = {}
    if connection_string:
        overrides["repository"] = {"storage_account_connection_string": connection_string}
    if log_level:
        overrides["logging"] = {"level": log_level.upper()}

    manager = ConfigManager()
    manager.load(config_file=str(config) if config else None, cli_overrides=overrides)
    loaded = manager.get_config()
    configure_logging(loaded.logging)
    return loaded


def _open_repository(config: PairUpConfig, table: str, partition: str) -> BaseRepository:
    return BaseRepository(
        get_repository_logger(table),
        storage_account_connection_string=config.repository.storage_account_connection_string,
        table_name=table,
        default_partition_key=partition,
        ensure_table_exists=config.repository.ensure_table_exists,
    )


def _echo_entity(entity) -> None:
    click.echo(json.dumps(entity.to_dict(), default=str))


def common_options(func):
    func = click.option(
        "--log-level",
        default=None,
        type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
        help="Logging level",
    )(func)
    func = click.option(
        "--connection-string",
        envvar="PAIRUP_STORAGE_CONNECTION_STRING",
        default=None,
        help="Storage account connection string",
    )(func)
    func = click.option(
        "--config",
        "-c",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help="Path to configuration file",
    )(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="pairup")
@click.pass_context
def cli(ctx):
    """
    pairup - table storage tools for the pair-up app
    """
    ctx.ensure_object(dict)


@cli.command("list-entities")
@click.argument("table")
@click.option("--partition", "-p", default=None, help="Partition key (defaults to the table name)")
@click.option("--top", type=int, default=None, help="Maximum entities per page")
@common_options
def list_entities(
    table: str,
    partition: Optional[str],
    top: Optional[int],
    config: Optional[Path],
    connection_string: Optional[str],
    log_level: Optional[str],
):
    """
    Print the entities of a partition as JSON lines.

    Examples:
        pairup list-entities UserData
        pairup list-entities TeamData --partition TeamData --top 50
    """

    async def run() -> int:
        repository = _open_repository(loaded, table, partition or table)
        total = 0
        try:
            async for page in repository.get_streams(partition=partition, count=top):
                for entity in page:
                    _echo_entity(entity)
                total += len(page)
        finally:
            await repository.store.close()
        return total

    try:
        loaded = _load_config(config, connection_string, log_level)
        total = asyncio.run(run())
    except Exception as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(1)

    click.echo(f"{total} entities", err=True)


@cli.command()
@click.argument("table")
@click.option(
    "--before",
    required=True,
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]),
    help="Delete entities last modified at or before this UTC time",
)
@click.option("--dry-run", is_flag=True, help="Only print what would be deleted")
@common_options
def purge(
    table: str,
    before: datetime,
    dry_run: bool,
    config: Optional[Path],
    connection_string: Optional[str],
    log_level: Optional[str],
):
    """
    Delete entities not modified since a point in time.

    Examples:
        pairup purge UserData --before 2024-01-01
        pairup purge TeamData --before 2024-01-01T12:00:00 --dry-run
    """
    cutoff = before.replace(tzinfo=timezone.utc)

    async def run() -> int:
        repository = _open_repository(loaded, table, table)
        try:
            stale = await repository.get_all_less_than_date_time(cutoff)
            if dry_run:
                for entity in stale:
                    _echo_entity(entity)
                return len(stale)

            # Transactions are per partition
            by_partition = {}
            for entity in stale:
                by_partition.setdefault(entity.PartitionKey, []).append(entity)
            for entities in by_partition.values():
                await repository.batch_delete(entities)
            return len(stale)
        finally:
            await repository.store.close()

    try:
        loaded = _load_config(config, connection_string, log_level)
        count = asyncio.run(run())
    except Exception as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(1)

    verb = "Would delete" if dry_run else "Deleted"
    click.echo(f"{verb} {count} entities from {table}", err=True)


def main():
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
