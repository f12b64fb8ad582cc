# Copyright (c) 2026, The couchdb-migration Authors.
# Distributed under the terms of the AGPLv3 license, see LICENSE.
import dataclasses
import json
import typing as t
from enum import Enum

from couchdb_migration.exception import ParseError, ValidationError

NodeId = str
ShardId = str
ShardMap = t.Dict[ShardId, NodeId]
NodeRemap = t.Dict[NodeId, NodeId]


class DestinationKind(Enum):
    """
    How the destination of a node migration has been specified.
    """

    AUTO = "auto"
    SINGLE = "single"
    REMAP = "remap"


@dataclasses.dataclass(frozen=True)
class DestinationSpec:
    """
    Manage the destination of a node migration.

    - AUTO:   No destination given, use the sole node of the cluster.
    - SINGLE: Move all shards to a single node.
    - REMAP:  Move shards of old nodes to new nodes, according to a mapping.
    """

    kind: DestinationKind
    node: t.Optional[NodeId] = None
    remap: NodeRemap = dataclasses.field(default_factory=dict)

    @classmethod
    def auto(cls) -> "DestinationSpec":
        return cls(kind=DestinationKind.AUTO)

    @classmethod
    def single(cls, node: NodeId) -> "DestinationSpec":
        return cls(kind=DestinationKind.SINGLE, node=node)

    @classmethod
    def from_remap(cls, remap: t.Mapping[NodeId, NodeId]) -> "DestinationSpec":
        for old_node, new_node in remap.items():
            if not isinstance(old_node, str) or not isinstance(new_node, str):
                raise ValidationError(f"Node remap must map node names to node names, got: {old_node!r}: {new_node!r}")
        return cls(kind=DestinationKind.REMAP, remap=dict(remap))

    @classmethod
    def from_argument(cls, destination: t.Union[None, NodeId, t.Mapping[NodeId, NodeId]]) -> "DestinationSpec":
        """
        Resolve the destination argument by its shape: absent, node name, or node mapping.
        """
        if destination is None or destination == "":
            return cls.auto()
        if isinstance(destination, str):
            return cls.single(destination)
        if isinstance(destination, t.Mapping):
            return cls.from_remap(destination)
        raise ValidationError(f"Unknown type for destination: {type(destination).__name__}")

    @property
    def is_remap(self) -> bool:
        return self.kind is DestinationKind.REMAP


@dataclasses.dataclass(frozen=True)
class ShardMove:
    """
    A shard scheduled to be moved to its target node.
    """

    shard: ShardId
    target: NodeId
    source: t.Optional[NodeId] = None


class OrderedNodeSet:
    """
    Collect node names without duplicates, retaining the order they have been seen first.
    """

    def __init__(self, nodes: t.Iterable[NodeId] = None):
        self._items: t.List[NodeId] = []
        self._seen: t.Set[NodeId] = set()
        if nodes is not None:
            self.update(nodes)

    def add(self, node: NodeId):
        if node not in self._seen:
            self._seen.add(node)
            self._items.append(node)

    def update(self, nodes: t.Iterable[NodeId]):
        for node in nodes:
            self.add(node)

    def to_list(self) -> t.List[NodeId]:
        return list(self._items)

    def __contains__(self, node: object) -> bool:
        return node in self._seen

    def __iter__(self) -> t.Iterator[NodeId]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


def parse_shard_map(shard_map_json: str) -> ShardMap:
    """
    Decode a shard map from JSON, like `{"00000000-1fffffff": "couchdb@node1"}`.

    The order of entries is retained, it determines the order of shard moves.
    """
    try:
        shard_map = json.loads(shard_map_json)
    except (TypeError, ValueError) as ex:
        raise ParseError(f"Unable to decode shard map JSON: {ex}") from ex
    if not isinstance(shard_map, t.Mapping):
        raise ParseError(f"Shard map JSON must be an object, got: {type(shard_map).__name__}")
    for shard, node in shard_map.items():
        if not isinstance(node, str):
            raise ParseError(f"Shard map entry for shard {shard} must be a node name, got: {node!r}")
    return dict(shard_map)
