# ruff: noqa: E402
from importlib.metadata import PackageNotFoundError, version

__appname__ = "couchdb-migration"

try:
    __version__ = version(__appname__)
except PackageNotFoundError:  # pragma: no cover
    __version__ = "unknown"

from .config import preconfigure

preconfigure()

from .cluster.client import CouchClusterClient
from .config import configure
from .core import ShardMigration, move_node, sync_shards

__all__ = [
    "CouchClusterClient",
    "ShardMigration",
    "configure",
    "move_node",
    "sync_shards",
]
