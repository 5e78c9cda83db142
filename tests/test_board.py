"""
Tests for board sessions: graph edits wired to persistence, layout and execution
"""
import asyncio
import time
from unittest.mock import MagicMock

import pytest

from flowboard.core.board import BoardManager, BoardSession, ProviderNotConfiguredError
from flowboard.core.errors import PersistenceError
from flowboard.core.graph.models import Edge, NodeStatus, Position
from flowboard.core.graph.node_registry import get_node_definition
from flowboard.layout import has_any_collisions


def _seed(storage, board_id="b1"):
    text = get_node_definition("textInput").instantiate(node_id="t", position=Position(0, 0))
    gen = get_node_definition("flux2Pro").instantiate(node_id="g", position=Position(100, 100))
    storage.create_node(board_id, text.to_dict())
    storage.create_node(board_id, gen.to_dict())
    storage.create_edge(board_id, Edge("e1", "t", "g", "text", "prompt").to_dict())


def test_load_resolves_overlaps_and_persists_moves(temp_storage):
    _seed(temp_storage)
    session = BoardSession("b1", storage=temp_storage)

    summary = session.load()

    assert summary["nodes"] == 2 and summary["edges"] == 1
    assert summary["adjusted"] == 1
    assert not has_any_collisions(session.store.nodes())
    stored = {n["id"]: n["position"] for n in temp_storage.list_nodes("b1")}
    assert stored["t"] == {"x": 0, "y": 0}
    assert stored["g"] != {"x": 100, "y": 100}


def test_load_skips_malformed_entries(temp_storage):
    _seed(temp_storage)
    temp_storage.create_node("b1", {"id": "broken", "status": "not-a-status"})
    temp_storage.create_edge("b1", {"id": "no-endpoints"})

    summary = BoardSession("b1", storage=temp_storage).load(resolve_collisions=False)

    assert summary["skippedNodes"] == 1
    assert summary["skippedEdges"] == 1
    assert summary["nodes"] == 2


def test_add_node_nudges_off_existing(temp_storage):
    session = BoardSession("b1", storage=temp_storage)
    first = session.add_node("textInput", Position(0, 0))
    second = session.add_node("textInput", Position(0, 0))
    assert first.position == Position(0, 0)
    assert second.position != Position(0, 0)
    assert len(temp_storage.list_nodes("b1")) == 2


def test_parameter_edits_are_coalesced(temp_storage):
    session = BoardSession("b1", storage=temp_storage, write_delay=10)
    node = session.add_node("flux2Pro")

    session.update_parameters(node.id, {"prompt": "a"})
    session.update_parameters(node.id, {"prompt": "ab", "seed": 7})

    assert session.store.get_node(node.id).parameters["prompt"] == "ab"
    assert "prompt" not in temp_storage.get_node("b1", node.id)["parameters"]

    assert session.flush() == 1
    params = temp_storage.get_node("b1", node.id)["parameters"]
    assert (params["prompt"], params["seed"]) == ("ab", 7)


def test_delete_drops_pending_edits(temp_storage):
    session = BoardSession("b1", storage=temp_storage, write_delay=10)
    node = session.add_node("flux2Pro")
    session.update_parameters(node.id, {"prompt": "a"})

    session.delete_node(node.id)

    assert not session.buffer.has_pending(node.id)
    assert temp_storage.list_nodes("b1") == []


def test_end_drag_snaps_and_persists(temp_storage):
    session = BoardSession("b1", storage=temp_storage)
    session.add_node("textInput", Position(0, 0))
    moving = session.add_node("textInput", Position(1000, 0))

    position, adjusted = session.end_drag(moving.id, Position(1203, 9))

    assert (position, adjusted) == (Position(1200, 0), False)
    assert temp_storage.get_node("b1", moving.id)["position"] == {"x": 1200, "y": 0}


def test_connect_failure_keeps_local_edge():
    storage = MagicMock()
    storage.create_node.side_effect = lambda board_id, node: node
    storage.create_edge.side_effect = PersistenceError("offline")
    session = BoardSession("b1", storage=storage)
    text = session.add_node("textInput", Position(0, 0))
    gen = session.add_node("flux2Pro", Position(600, 0))

    edge = session.connect(text.id, gen.id)

    assert session.store.get_edge(edge.id) == edge
    data = session.to_dict()
    assert data["pendingSync"][0]["entityId"] == edge.id

    storage.create_edge.side_effect = None
    assert session.retry_pending() == 1
    assert "pendingSync" not in session.to_dict()


def test_reset_node_clears_run_state(temp_storage, fake_provider):
    session = BoardSession("b1", storage=temp_storage, provider=fake_provider())
    node = session.add_node("flux2Pro", parameters={"prompt": "x"})
    asyncio.run(session.execute_node(node.id))
    assert session.store.get_node(node.id).status == NodeStatus.COMPLETED

    session.reset_node(node.id)

    assert session.store.get_node(node.id).status == NodeStatus.IDLE
    stored = temp_storage.get_node("b1", node.id)
    assert stored["status"] == "idle"
    assert stored["cachedOutput"] is None


def test_execute_flushes_pending_edits_first(temp_storage, fake_provider):
    session = BoardSession("b1", storage=temp_storage, provider=fake_provider(), write_delay=10)
    node = session.add_node("flux2Pro")

    async def scenario():
        session.update_parameters(node.id, {"prompt": "a cat"})
        await session.execute_node(node.id)
        await session.close()

    asyncio.run(scenario())

    assert temp_storage.get_node("b1", node.id)["parameters"]["prompt"] == "a cat"
    assert session.executor.provider.executed[0][1]["parameters"]["prompt"] == "a cat"



def test_execute_waits_for_write_in_flight(temp_storage, fake_provider):
    session = BoardSession("b1", storage=temp_storage, provider=fake_provider(), write_delay=0.01)
    node = session.add_node("flux2Pro")
    original_update = temp_storage.update_node
    finished = []

    def slow_update(board_id, node_id, patch):
        if "parameters" in patch:
            time.sleep(0.2)
            finished.append(patch["parameters"].get("prompt"))
        return original_update(board_id, node_id, patch)

    temp_storage.update_node = slow_update

    async def scenario():
        session.update_parameters(node.id, {"prompt": "a cat"})
        await asyncio.sleep(0.05)
        assert session.buffer.in_flight(node.id)
        await session.execute_node(node.id)
        assert finished == ["a cat"]
        await session.close()

    asyncio.run(scenario())


def test_execute_without_provider():
    session = BoardSession("b1")
    node = session.add_node("flux2Pro")
    with pytest.raises(ProviderNotConfiguredError):
        asyncio.run(session.execute_node(node.id))


def test_auto_layout_persists_moved_positions(temp_storage):
    session = BoardSession("b1", storage=temp_storage)
    text = session.add_node("textInput", Position(0, 1000))
    gen = session.add_node("flux2Pro", Position(0, 0))
    session.connect(text.id, gen.id)

    result, summary = session.auto_layout()

    assert result.positions[text.id].x < result.positions[gen.id].x
    assert summary["failed"] == 0
    stored = {n["id"]: n["position"] for n in temp_storage.list_nodes("b1")}
    assert stored[text.id] == result.positions[text.id].to_dict()


def test_manager_caches_sessions(temp_storage):
    _seed(temp_storage)
    manager = BoardManager(temp_storage)
    session = manager.get("b1")
    assert manager.get("b1") is session
    assert manager.list_open() == ["b1"]
    assert len(session.store.nodes()) == 2

    asyncio.run(manager.close())
    assert manager.list_open() == []
