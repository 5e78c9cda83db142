"""
Tests for storage backends and the persistence gateway
"""
from unittest.mock import MagicMock

import pytest

from flowboard.core.errors import NotFoundError, PersistenceError
from flowboard.core.graph.models import Edge, Position
from flowboard.core.graph.node_registry import get_node_definition
from flowboard.core.sync.persistence import PersistenceGateway


def _node(node_type="textInput", node_id="n1", **kwargs):
    return get_node_definition(node_type).instantiate(node_id=node_id, **kwargs)


class TestLocalJSONStorage:

    def test_create_and_list(self, temp_storage):
        stored = temp_storage.create_node("b1", _node().to_dict())
        assert stored["boardId"] == "b1"
        assert stored["updatedAt"]
        assert [n["id"] for n in temp_storage.list_nodes("b1")] == ["n1"]
        assert temp_storage.get_node("b1", "n1")["nodeType"] == "textInput"
        assert temp_storage.get_node("b1", "missing") is None
        assert temp_storage.list_boards() == ["b1"]

    def test_duplicate_create_fails(self, temp_storage):
        temp_storage.create_node("b1", _node().to_dict())
        with pytest.raises(PersistenceError):
            temp_storage.create_node("b1", _node().to_dict())

    def test_update_merges_parameters(self, temp_storage):
        temp_storage.create_node("b1", _node("flux2Pro", "g").to_dict())
        updated = temp_storage.update_node("b1", "g", {"parameters": {"prompt": "x"}, "status": "running"})
        assert updated["parameters"]["prompt"] == "x"
        assert updated["parameters"]["guidance"] == 3.5
        assert updated["status"] == "running"

    def test_missing_entities_raise_not_found(self, temp_storage):
        with pytest.raises(NotFoundError):
            temp_storage.update_node("b1", "ghost", {"status": "idle"})
        with pytest.raises(NotFoundError):
            temp_storage.delete_node("b1", "ghost")
        with pytest.raises(NotFoundError):
            temp_storage.delete_edge("b1", "ghost")

    def test_delete_node_cascades_edges(self, temp_storage):
        temp_storage.create_node("b1", _node("textInput", "t").to_dict())
        temp_storage.create_node("b1", _node("flux2Pro", "g").to_dict())
        temp_storage.create_edge("b1", Edge("e1", "t", "g", "text", "prompt").to_dict())

        temp_storage.delete_node("b1", "g")

        assert temp_storage.list_edges("b1") == []
        assert [n["id"] for n in temp_storage.list_nodes("b1")] == ["t"]

    def test_batch_positions(self, temp_storage):
        temp_storage.create_node("b1", _node().to_dict())
        summary = temp_storage.batch_update_positions("b1", [
            {"nodeId": "n1", "position": {"x": 40, "y": 60}},
            {"nodeId": "ghost", "position": {"x": 0, "y": 0}},
        ])
        assert (summary["processed"], summary["succeeded"], summary["failed"]) == (2, 1, 1)
        assert temp_storage.get_node("b1", "n1")["position"] == {"x": 40, "y": 60}

    def test_reset_board(self, temp_storage):
        temp_storage.create_node("b1", _node().to_dict())
        assert temp_storage.reset_board("b1") is True
        assert temp_storage.list_nodes("b1") == []


class TestPersistenceGateway:

    def test_failed_create_goes_to_pending_sync(self):
        primary = MagicMock()
        primary.create_node.side_effect = PersistenceError("offline")
        gateway = PersistenceGateway(primary, "b1")

        assert gateway.create_node(_node()) is None
        assert gateway.create_node(_node()) is None

        assert len(gateway.pending_sync) == 1
        op = gateway.pending_sync[0]
        assert (op.kind, op.entity_id, op.attempts) == ("create_node", "n1", 2)
        assert op.to_dict()["error"] == "offline"

    def test_retry_pending_runs_nodes_before_edges(self):
        primary = MagicMock()
        primary.create_node.side_effect = PersistenceError("offline")
        primary.create_edge.side_effect = PersistenceError("offline")
        gateway = PersistenceGateway(primary, "b1")
        gateway.create_edge(Edge("e1", "n1", "n2"))
        gateway.create_node(_node())

        calls = []
        primary.create_node.side_effect = lambda board_id, payload: calls.append(("node", payload["id"]))
        primary.create_edge.side_effect = lambda board_id, payload: calls.append(("edge", payload["id"]))

        assert gateway.retry_pending() == 2
        assert calls == [("node", "n1"), ("edge", "e1")]
        assert gateway.pending_sync == []

    def test_retry_keeps_failures(self):
        primary = MagicMock()
        primary.create_node.side_effect = PersistenceError("offline")
        gateway = PersistenceGateway(primary, "b1")
        gateway.create_node(_node())

        assert gateway.retry_pending() == 0
        assert gateway.pending_sync[0].attempts == 2

    def test_delete_drops_pending_create(self):
        primary = MagicMock()
        primary.create_node.side_effect = PersistenceError("offline")
        gateway = PersistenceGateway(primary, "b1")
        gateway.create_node(_node())
        gateway.delete_node("n1")
        assert gateway.pending_sync == []

    def test_update_falls_back_to_legacy(self):
        primary = MagicMock()
        primary.update_node.side_effect = NotFoundError("404")
        legacy = MagicMock()
        gateway = PersistenceGateway(primary, "b1", legacy=legacy)

        assert gateway.update_node("card-1", {"position": {"x": 1, "y": 2}}) is True
        legacy.update_node.assert_called_once_with("b1", "card-1", {"position": {"x": 1, "y": 2}})

    def test_missing_everywhere_is_tolerated(self):
        primary = MagicMock()
        primary.update_node.side_effect = NotFoundError("404")
        primary.delete_node.side_effect = NotFoundError("404")
        legacy = MagicMock()
        legacy.update_node.side_effect = NotFoundError("404")
        legacy.delete_node.side_effect = NotFoundError("404")
        gateway = PersistenceGateway(primary, "b1", legacy=legacy)

        assert gateway.update_node("gone", {"status": "idle"}) is False
        assert gateway.delete_node("gone") is False
        assert PersistenceGateway(primary, "b1").update_node("gone", {}) is False

    def test_other_update_errors_propagate(self):
        primary = MagicMock()
        primary.update_node.side_effect = PersistenceError("HTTP 500")
        gateway = PersistenceGateway(primary, "b1", legacy=MagicMock())
        with pytest.raises(PersistenceError):
            gateway.update_node("n1", {"status": "idle"})

    def test_load_falls_back_to_legacy_cards(self):
        primary = MagicMock()
        primary.list_nodes.return_value = []
        primary.list_edges.return_value = []
        legacy = MagicMock()
        legacy.list_nodes.return_value = [{"id": "card-1", "nodeType": "legacyCard"}]

        nodes, edges = PersistenceGateway(primary, "b1", legacy=legacy).load()

        assert nodes == [{"id": "card-1", "nodeType": "legacyCard"}]
        assert edges == []

    def test_batch_positions_failure_reported_per_entry(self):
        primary = MagicMock()
        primary.batch_update_positions.side_effect = PersistenceError("offline")
        gateway = PersistenceGateway(primary, "b1")

        summary = gateway.batch_update_positions({"a": Position(0, 0), "b": Position(20, 0)})

        assert (summary["processed"], summary["succeeded"], summary["failed"]) == (2, 0, 2)
        assert all(r["error"] == "offline" for r in summary["results"])
        assert gateway.batch_update_positions({})["processed"] == 0

    def test_round_trip_through_local_storage(self, temp_storage):
        gateway = PersistenceGateway(temp_storage, "b1")
        gateway.create_node(_node("textInput", "t"))
        gateway.create_node(_node("flux2Pro", "g"))
        gateway.create_edge(Edge("e1", "t", "g", "text", "prompt"))
        gateway.update_node("g", {"parameters": {"prompt": "x"}})

        nodes, edges = gateway.load()

        assert [n["id"] for n in nodes] == ["t", "g"]
        assert nodes[1]["parameters"]["prompt"] == "x"
        assert edges[0]["sourcePortId"] == "text"
