# Copyright (c) 2026, The couchdb-migration Authors.
# Distributed under the terms of the AGPLv3 license, see LICENSE.
import logging
import typing as t

from couchdb_migration.cluster.client import CouchClusterClient
from couchdb_migration.cluster.move import move_shard
from couchdb_migration.exception import ValidationError
from couchdb_migration.model import (
    DestinationKind,
    DestinationSpec,
    NodeId,
    NodeRemap,
    OrderedNodeSet,
    ShardMove,
    parse_shard_map,
)

logger = logging.getLogger(__name__)


class ShardMigration:
    """
    Reassign shard ownership to other nodes, and synchronize shards afterwards.

    The cluster client is used for discovering nodes, shards, and databases,
    and for triggering shard synchronization. Shard moves are delegated to
    `mover`, which defaults to rewriting the shard map documents through the
    same client.
    """

    def __init__(
        self,
        client: CouchClusterClient,
        mover: t.Optional[t.Callable[[str, NodeId], t.Iterable[NodeId]]] = None,
    ):
        self.client = client
        self.mover = mover

    def move_shard(self, shard: str, to_node: NodeId) -> t.Iterable[NodeId]:
        if self.mover is not None:
            return self.mover(shard, to_node)
        return move_shard(self.client, shard, to_node)

    def move_node(
        self,
        destination: t.Union[None, NodeId, t.Mapping[NodeId, NodeId]] = None,
        shard_map_json: t.Optional[str] = None,
    ) -> t.List[NodeId]:
        """
        Move shards to another node, and return the nodes which owned them before.

        - Without destination, all shards are moved to the only node of the cluster.
        - With a node name, all shards are moved to that node.
        - With a mapping of old to new node names, the shards owned by the old nodes,
          according to the shard map, are moved to the corresponding new nodes.
        """
        spec = DestinationSpec.from_argument(destination)

        if spec.is_remap:
            if not shard_map_json:
                raise ValidationError("Shard map JSON is required for multi-node migration.")
            moves = self.plan_remap(spec.remap, shard_map_json)
            if not moves:
                logger.info("No shards found on nodes to migrate from")
                return OrderedNodeSet(spec.remap.keys()).to_list()
        else:
            if shard_map_json:
                raise ValidationError("Shard map JSON requires a node mapping as destination.")
            moves = self.plan_single(spec)

        return self.execute(moves)

    def plan_single(self, spec: DestinationSpec) -> t.List[ShardMove]:
        """
        Schedule all shards of the cluster to be moved to a single node.
        """
        if spec.kind is DestinationKind.AUTO:
            to_node = self.resolve_sole_node()
        else:
            to_node = t.cast(NodeId, spec.node)
        shards = self.client.get_shards()
        logger.info(f"Moving {len(shards)} shards to {to_node}")
        return [ShardMove(shard=shard, target=to_node) for shard in shards]

    def plan_remap(self, remap: NodeRemap, shard_map_json: str) -> t.List[ShardMove]:
        """
        Schedule shards owned by the old nodes to be moved to their new nodes.

        Shards owned by nodes not mentioned in the mapping stay where they are.
        """
        shard_map = parse_shard_map(shard_map_json)
        moves = [
            ShardMove(shard=shard, target=remap[owner], source=owner)
            for shard, owner in shard_map.items()
            if owner in remap
        ]

        migrations: t.List[t.Tuple[NodeId, NodeId]] = []
        for move in moves:
            migration = (t.cast(NodeId, move.source), move.target)
            if migration not in migrations:
                migrations.append(migration)
        for source, target in migrations:
            logger.info(f"Migrating from {source} to {target}")

        return moves

    def resolve_sole_node(self) -> NodeId:
        nodes = self.client.get_nodes()
        if not nodes:
            raise ValidationError("No nodes found.")
        if len(nodes) > 1:
            raise ValidationError("More than one node found.")
        return nodes[0]

    def execute(self, moves: t.List[ShardMove]) -> t.List[NodeId]:
        """
        Move shards one after another, stopping at the first failure.

        Returns the nodes which owned the shards before, without duplicates.
        """
        owners = OrderedNodeSet()
        for move in moves:
            if move.source is not None:
                logger.info(f"Moving shard {move.shard} from {move.source} to {move.target}")
            else:
                logger.debug(f"Moving shard {move.shard} to {move.target}")
            owners.update(self.move_shard(move.shard, move.target))
        return owners.to_list()

    def sync_shards(self) -> None:
        """
        Trigger shard synchronization for all databases, one after another.
        """
        dbs = self.client.get_dbs()
        for db in dbs:
            logger.debug(f"Synchronizing shards of database {db}")
            self.client.sync_shards(db)
        logger.info(f"Synchronized shards of {len(dbs)} databases")


def move_node(
    destination: t.Union[None, NodeId, t.Mapping[NodeId, NodeId]] = None,
    shard_map_json: t.Optional[str] = None,
    url: t.Optional[str] = None,
) -> t.List[NodeId]:
    """
    Move shards to another node, see `ShardMigration.move_node`.
    """
    return ShardMigration(client=CouchClusterClient(url=url)).move_node(destination, shard_map_json)


def sync_shards(url: t.Optional[str] = None) -> None:
    """
    Trigger shard synchronization for all databases, see `ShardMigration.sync_shards`.
    """
    ShardMigration(client=CouchClusterClient(url=url)).sync_shards()
