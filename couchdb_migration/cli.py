# Copyright (c) 2026, The couchdb-migration Authors.
# Distributed under the terms of the AGPLv3 license, see LICENSE.
import json
import logging
import sys
import time
import typing as t

import click
from click_aliases import ClickAliasedGroup
from rich.console import Console

from couchdb_migration.cluster.client import CouchClusterClient
from couchdb_migration.core import ShardMigration
from couchdb_migration.exception import MigrationError
from couchdb_migration.option import option_couch_url, option_timeout
from couchdb_migration.util.cli import boot_click, error_logger, make_command
from couchdb_migration.util.data import jd, read_json_argument

logger = logging.getLogger(__name__)

console = Console(stderr=True)


def help_move_node():
    """
    Move shards to another node, and print the nodes which owned them before.

    Synopsis
    ========

    # Move all shards to the only node of the cluster.
    couchdb-migration move-node

    # Move all shards to a specific node.
    couchdb-migration move-node couchdb@node3

    # Move the shards of `node1` to `node3`, according to a shard map.
    couchdb-migration move-node \\
      --remap '{"couchdb@node1": "couchdb@node3"}' \\
      --shard-map @shard-map.json

    """  # noqa: E501


def help_sync_shards():
    """
    Synchronize the shards of all databases, after moving them.

    Synopsis
    ========

    couchdb-migration sync-shards

    """  # noqa: E501


def help_check_couchdb_up():
    """
    Wait until the CouchDB server is responding.

    Synopsis
    ========

    couchdb-migration check-couchdb-up --retries=30 --interval=1

    """  # noqa: E501


@click.group(cls=ClickAliasedGroup)  # type: ignore[arg-type]
@option_couch_url
@option_timeout
@click.option("--verbose", is_flag=True, required=False, help="Turn on logging")
@click.option("--debug", is_flag=True, required=False, help="Turn on logging with debug level")
@click.version_option()
@click.pass_context
def cli(ctx: click.Context, url: t.Optional[str], timeout: t.Optional[float], verbose: bool, debug: bool):
    """
    Migrate shards between nodes of a clustered CouchDB.
    """
    ctx.meta.update({"url": url, "timeout": timeout})
    return boot_click(ctx, verbose, debug)


def get_client(ctx: click.Context) -> CouchClusterClient:
    return CouchClusterClient(url=ctx.meta.get("url"), timeout=ctx.meta.get("timeout"))


@make_command(cli, "move-node", help=help_move_node, aliases=["move"])
@click.argument("to_node", type=str, required=False)
@click.option("--remap", type=str, required=False, help="JSON object mapping old node names to new node names")
@click.option("--shard-map", type=str, required=False, help="JSON object mapping shard ranges to nodes, or @file")
@click.pass_context
def move_node(
    ctx: click.Context, to_node: t.Optional[str], remap: t.Optional[str], shard_map: t.Optional[str]
):
    if to_node and remap:
        raise click.UsageError("Use either TO_NODE or --remap, not both")
    if shard_map and not remap:
        raise click.UsageError("--shard-map requires --remap")

    destination: t.Union[None, str, t.Dict[str, str]] = to_node
    if remap:
        try:
            destination = json.loads(read_json_argument(remap))
        except OSError as ex:
            raise click.BadParameter(f"Unable to read file: {ex}", param_hint="--remap") from ex
        except ValueError as ex:
            raise click.BadParameter(f"Invalid JSON: {ex}", param_hint="--remap") from ex
        if not isinstance(destination, dict):
            raise click.BadParameter("Node remap must be a JSON object", param_hint="--remap")

    try:
        shard_map_json = read_json_argument(shard_map) if shard_map else None
        migration = ShardMigration(client=get_client(ctx))
        result = migration.move_node(destination, shard_map_json)
    except (MigrationError, OSError) as ex:
        error_logger(ctx)(ex)
        sys.exit(1)
    jd(result)


@make_command(cli, "sync-shards", help=help_sync_shards, aliases=["sync"])
@click.pass_context
def sync_shards(ctx: click.Context):
    try:
        ShardMigration(client=get_client(ctx)).sync_shards()
    except MigrationError as ex:
        error_logger(ctx)(ex)
        sys.exit(1)


@make_command(cli, "check-couchdb-up", help=help_check_couchdb_up)
@click.option("--retries", type=click.IntRange(min=1), default=30, show_default=True, help="Number of attempts")
@click.option("--interval", type=float, default=1.0, show_default=True, help="Seconds to wait between attempts")
@click.pass_context
def check_couchdb_up(ctx: click.Context, retries: int, interval: float):
    try:
        client = get_client(ctx)
    except MigrationError as ex:
        error_logger(ctx)(ex)
        sys.exit(1)

    for attempt in range(1, retries + 1):
        if client.check_up():
            console.print(f"[green]CouchDB is up: {client.safe_url}[/green]")
            return
        logger.info(f"Waiting for CouchDB, attempt {attempt} of {retries}")
        if attempt < retries:
            time.sleep(interval)

    console.print(f"[red]CouchDB is not responding: {client.safe_url}[/red]")
    sys.exit(1)
