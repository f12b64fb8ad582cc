# Copyright (c) 2026, The couchdb-migration Authors.
# Distributed under the terms of the AGPLv3 license, see LICENSE.
"""
Move a shard range to another node, by rewriting the shard map documents of all databases.

A shard map document looks like::

    {
        "_id": "medic",
        "_rev": "1-5e2d10c29c70d3869fb7a1fd3a827a64",
        "shard_suffix": [46, 49, 54, 53, 54, 50, 53, 56, 52, 49, 55],
        "changelog": [["add", "00000000-7fffffff", "couchdb@node1"]],
        "by_node": {"couchdb@node1": ["00000000-7fffffff"]},
        "by_range": {"00000000-7fffffff": ["couchdb@node1"]},
    }
"""

import logging
import typing as t

from couchdb_migration.model import NodeId, OrderedNodeSet, ShardId

if t.TYPE_CHECKING:
    from couchdb_migration.cluster.client import CouchClusterClient

logger = logging.getLogger(__name__)


def build_by_node(by_range: t.Dict[ShardId, t.List[NodeId]]) -> t.Dict[NodeId, t.List[ShardId]]:
    """
    Derive the `by_node` section of a shard map document from its `by_range` section.
    """
    by_node: t.Dict[NodeId, t.List[ShardId]] = {}
    for shard, nodes in by_range.items():
        for node in nodes:
            by_node.setdefault(node, []).append(shard)
    for shards in by_node.values():
        shards.sort()
    return by_node


def reassign_shard(doc: t.Dict[str, t.Any], shard: ShardId, to_node: NodeId) -> t.List[NodeId]:
    """
    Assign a shard range to a node within a shard map document, in place.

    Returns the nodes which owned the range before, empty when it was unassigned.
    When the document does not know about the range, nothing is changed, and an
    empty list is returned.
    """
    by_range = doc.get("by_range", {})
    if shard not in by_range:
        return []

    previous = list(by_range[shard])
    if previous == [to_node]:
        return previous

    by_range[shard] = [to_node]
    doc["by_range"] = by_range
    doc["by_node"] = build_by_node(by_range)

    changelog = doc.setdefault("changelog", [])
    if to_node not in previous:
        changelog.append(["add", shard, to_node])
    for node in previous:
        if node != to_node:
            changelog.append(["delete", shard, node])
    return previous


def move_shard(client: "CouchClusterClient", shard: ShardId, to_node: NodeId) -> t.List[NodeId]:
    """
    Move a shard range to another node, for all databases having that range.

    Returns the distinct nodes which owned the range before, in the order they have been seen.
    The shard files themselves are not copied, they need to be in place on the target node.
    """
    owners = OrderedNodeSet()
    for db in client.get_dbs():
        doc = client.get_db_metadata(db)
        if shard not in doc.get("by_range", {}):
            continue
        previous = reassign_shard(doc, shard, to_node)
        owners.update(previous)
        if previous == [to_node]:
            continue
        was = ", ".join(previous) or "unassigned"
        logger.debug(f"Assigning shard {shard} of database {db} to {to_node}, was: {was}")
        client.put_db_metadata(db, doc)
    return owners.to_list()
