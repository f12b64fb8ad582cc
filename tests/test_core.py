# Copyright (c) 2026, The couchdb-migration Authors.
# Distributed under the terms of the AGPLv3 license, see LICENSE.
import json
import logging

import pytest

from couchdb_migration.core import ShardMigration
from couchdb_migration.exception import DiscoveryError, MoveError, ParseError, SyncError, ValidationError

SHARD_MAP = {
    "00000000-1fffffff": "node1",
    "20000000-3fffffff": "node2",
    "40000000-5fffffff": "node1",
    "60000000-7fffffff": "node2",
}


@pytest.fixture
def mover(mocker):
    return mocker.Mock(return_value=["oldnode"])


@pytest.fixture
def migration(client, mover):
    return ShardMigration(client=client, mover=mover)


def move_calls(mover):
    return [call.args for call in mover.call_args_list]


def test_move_node_to_sole_node(client, mover, migration):
    """
    Without destination, all shards are moved to the only node of the cluster.
    """
    client.get_nodes.return_value = ["one"]
    client.get_shards.return_value = ["shard1", "shard2", "shard3", "shard4"]

    result = migration.move_node()

    assert result == ["oldnode"]
    assert client.get_nodes.call_count == 1
    assert client.get_shards.call_count == 1
    assert move_calls(mover) == [
        ("shard1", "one"),
        ("shard2", "one"),
        ("shard3", "one"),
        ("shard4", "one"),
    ]


def test_move_node_to_indicated_node(client, mover, migration):
    """
    With a node name, all shards are moved there, without consulting the cluster membership.
    """
    client.get_nodes.return_value = ["one", "two", "three"]
    client.get_shards.return_value = ["shard_1", "shard_2", "shard_3", "shard_4"]

    result = migration.move_node("toNode")

    assert result == ["oldnode"]
    assert client.get_nodes.call_count == 0
    assert client.get_shards.call_count == 1
    assert move_calls(mover) == [
        ("shard_1", "toNode"),
        ("shard_2", "toNode"),
        ("shard_3", "toNode"),
        ("shard_4", "toNode"),
    ]


def test_move_node_from_more_than_one_node(client, mover, migration):
    """
    The previous owners of all shards are reported without duplicates, in the order seen first.
    """
    client.get_shards.return_value = ["shard_1", "shard_2", "shard_3", "shard_4"]
    owners = {
        "shard_1": ["node1", "node2"],
        "shard_2": ["node1"],
        "shard_3": ["node2"],
        "shard_4": ["node2"],
    }
    mover.side_effect = lambda shard, to_node: owners[shard]

    result = migration.move_node("new")

    assert result == ["node1", "node2"]
    assert move_calls(mover) == [
        ("shard_1", "new"),
        ("shard_2", "new"),
        ("shard_3", "new"),
        ("shard_4", "new"),
    ]


def test_move_node_result_order_follows_moves(client, mover, migration):
    client.get_shards.return_value = ["a", "b", "c"]
    owners = {"a": ["node3"], "b": ["node1", "node3"], "c": ["node2", "node1"]}
    mover.side_effect = lambda shard, to_node: owners[shard]

    assert migration.move_node("new") == ["node3", "node1", "node2"]


def test_move_node_without_shards(client, mover, migration):
    client.get_shards.return_value = []

    assert migration.move_node("new") == []
    assert mover.call_count == 0


def test_move_node_more_than_one_node(client, mover, migration):
    client.get_nodes.return_value = ["one", "two"]

    with pytest.raises(ValidationError) as ex:
        migration.move_node()
    assert ex.match("More than one node found.")

    assert client.get_nodes.call_count == 1
    assert client.get_shards.call_count == 0
    assert mover.call_count == 0


def test_move_node_no_nodes(client, mover, migration):
    client.get_nodes.return_value = []

    with pytest.raises(ValidationError) as ex:
        migration.move_node()
    assert ex.match("No nodes found.")
    assert mover.call_count == 0


def test_move_node_empty_destination_is_auto(client, mover, migration):
    client.get_nodes.return_value = ["one"]
    client.get_shards.return_value = ["shard1"]

    migration.move_node("")

    assert move_calls(mover) == [("shard1", "one")]


def test_move_node_unknown_destination_type(client, mover, migration):
    with pytest.raises(ValidationError) as ex:
        migration.move_node(["node1"])
    assert ex.match("Unknown type for destination: list")
    assert mover.call_count == 0


def test_move_node_get_nodes_fails(client, mover, migration):
    client.get_nodes.side_effect = DiscoveryError("massive fail")

    with pytest.raises(DiscoveryError) as ex:
        migration.move_node()
    assert ex.match("massive fail")
    assert mover.call_count == 0


def test_move_node_get_shards_fails(client, mover, migration):
    client.get_nodes.return_value = ["one"]
    client.get_shards.side_effect = DiscoveryError("new fail")

    with pytest.raises(DiscoveryError) as ex:
        migration.move_node()
    assert ex.match("new fail")
    assert mover.call_count == 0


def test_move_node_collaborator_error_propagates_unchanged(client, mover, migration):
    """
    Errors of any type raised by collaborators are not wrapped.
    """
    client.get_shards.side_effect = RuntimeError("something else")

    with pytest.raises(RuntimeError) as ex:
        migration.move_node("new")
    assert ex.match("something else")


def test_move_node_move_shard_fails(client, mover, migration):
    """
    The first failing shard move stops all subsequent moves.
    """
    client.get_nodes.return_value = ["one"]
    client.get_shards.return_value = ["shard1", "shard2", "shard3", "shard4"]
    mover.side_effect = [["oldnode"], MoveError("holdupaminute"), ["oldnode"], ["oldnode"]]

    with pytest.raises(MoveError) as ex:
        migration.move_node()
    assert ex.match("holdupaminute")
    assert move_calls(mover) == [("shard1", "one"), ("shard2", "one")]


def test_move_node_multi_node(client, mover, migration, caplog):
    """
    With a node mapping, only shards owned by the old nodes are moved to the new nodes.
    """
    mover.return_value = ["node1"]

    with caplog.at_level(logging.INFO, logger="couchdb_migration"):
        result = migration.move_node({"node1": "node3"}, json.dumps(SHARD_MAP))

    assert result == ["node1"]
    assert move_calls(mover) == [
        ("00000000-1fffffff", "node3"),
        ("40000000-5fffffff", "node3"),
    ]
    assert client.get_nodes.call_count == 0
    assert client.get_shards.call_count == 0

    messages = [record.getMessage() for record in caplog.records if record.name == "couchdb_migration.core"]
    assert messages == [
        "Migrating from node1 to node3",
        "Moving shard 00000000-1fffffff from node1 to node3",
        "Moving shard 40000000-5fffffff from node1 to node3",
    ]


def test_move_node_multi_node_several_mappings(client, mover, migration, caplog):
    """
    Shards are moved in the order of the shard map, each announced migration only once.
    """
    owners = {
        "00000000-1fffffff": ["node1"],
        "20000000-3fffffff": ["node2"],
        "40000000-5fffffff": ["node1"],
        "60000000-7fffffff": ["node2"],
    }
    mover.side_effect = lambda shard, to_node: owners[shard]

    with caplog.at_level(logging.INFO, logger="couchdb_migration"):
        result = migration.move_node({"node2": "node4", "node1": "node3"}, json.dumps(SHARD_MAP))

    assert result == ["node1", "node2"]
    assert move_calls(mover) == [
        ("00000000-1fffffff", "node3"),
        ("20000000-3fffffff", "node4"),
        ("40000000-5fffffff", "node3"),
        ("60000000-7fffffff", "node4"),
    ]
    messages = [record.getMessage() for record in caplog.records if record.name == "couchdb_migration.core"]
    assert messages[:2] == ["Migrating from node1 to node3", "Migrating from node2 to node4"]
    assert len(messages) == 6


def test_move_node_multi_node_shard_map_missing(client, mover, migration):
    with pytest.raises(ValidationError) as ex:
        migration.move_node({"node1": "node3"})
    assert ex.match("Shard map JSON is required for multi-node migration.")
    assert mover.call_count == 0
    assert client.method_calls == []


@pytest.mark.parametrize("destination", [None, "node3"])
def test_move_node_shard_map_without_node_mapping(client, mover, migration, destination):
    """
    A shard map is only accepted together with a node mapping, nothing else is moved.
    """
    with pytest.raises(ValidationError) as ex:
        migration.move_node(destination, json.dumps(SHARD_MAP))
    assert ex.match("Shard map JSON requires a node mapping as destination.")
    assert mover.call_count == 0
    assert client.method_calls == []


def test_move_node_multi_node_shard_map_invalid(client, mover, migration):
    with pytest.raises(ParseError) as ex:
        migration.move_node({"node1": "node3"}, "{invalid")
    assert ex.match("Unable to decode shard map JSON")
    assert mover.call_count == 0


def test_move_node_multi_node_old_node_not_in_shard_map(client, mover, migration):
    """
    When the old nodes do not own any shards, nothing is moved.
    """
    shard_map = {
        "00000000-1fffffff": "node2",
        "20000000-3fffffff": "node2",
    }
    mover.return_value = []

    result = migration.move_node({"node1": "node3"}, json.dumps(shard_map))

    assert result == ["node1"]
    assert mover.call_count == 0


def test_move_node_default_mover(client, mocker):
    """
    Without a custom mover, shard maps are rewritten through the cluster client.
    """
    move_shard = mocker.patch("couchdb_migration.core.move_shard", return_value=["oldnode"])
    client.get_shards.return_value = ["shard1", "shard2"]

    result = ShardMigration(client=client).move_node("new")

    assert result == ["oldnode"]
    assert [call.args for call in move_shard.call_args_list] == [
        (client, "shard1", "new"),
        (client, "shard2", "new"),
    ]


def test_sync_shards(client, migration):
    client.get_dbs.return_value = ["one", "two", "three"]
    client.sync_shards.return_value = {"ok": True}

    assert migration.sync_shards() is None

    assert client.get_dbs.call_count == 1
    assert [call.args for call in client.sync_shards.call_args_list] == [("one",), ("two",), ("three",)]


def test_sync_shards_get_dbs_fails(client, migration):
    client.get_dbs.side_effect = DiscoveryError("omg")

    with pytest.raises(DiscoveryError) as ex:
        migration.sync_shards()
    assert ex.match("omg")
    assert client.sync_shards.call_count == 0


def test_sync_shards_fails(client, migration):
    client.get_dbs.return_value = ["one", "two", "three"]
    client.sync_shards.side_effect = SyncError("oh noes")

    with pytest.raises(SyncError) as ex:
        migration.sync_shards()
    assert ex.match("oh noes")
    assert client.sync_shards.call_count == 1
