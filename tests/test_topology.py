from swarmnet.core.model import NodeStatus
from swarmnet.network import NodeLifecycle, NodeRecord, TopologyGraph
from swarmnet.network.topology import (
    compute_network_health,
    find_bridge_nodes,
    find_connected_components,
    shortest_path,
    undirected_view,
)


def make_graph(*node_ids: str) -> TopologyGraph:
    graph = TopologyGraph()
    for port, node_id in enumerate(node_ids, start=9000):
        graph.add_node(NodeRecord(id=node_id, address="127.0.0.1", port=port))
    return graph


def link(graph: TopologyGraph, a: str, b: str) -> None:
    graph.add_edge(a, b)
    graph.add_edge(b, a)


def test_undirected_view_ignores_unknown_nodes_and_self_loops() -> None:
    view = undirected_view(["a", "b"], {"a": ["b", "a", "zzz"], "zzz": ["a"]})

    assert view == {"a": {"b"}, "b": {"a"}}


def test_components_exclude_singletons_and_number_in_order() -> None:
    clusters = find_connected_components(
        ["a", "b", "c", "d", "e"], {"a": ["b"], "d": ["c"]}
    )

    assert clusters == {
        "cluster_0": frozenset({"a", "b"}),
        "cluster_1": frozenset({"c", "d"}),
    }


def test_components_follow_edges_in_either_direction() -> None:
    clusters = find_connected_components(["a", "b", "c"], {"a": ["b"], "c": ["b"]})

    assert clusters == {"cluster_0": frozenset({"a", "b", "c"})}


def test_bridges_need_neighbours_in_two_clusters() -> None:
    adjacency = {"x": ["a", "c"], "a": ["b"], "c": ["d"]}
    clusters = {
        "left": frozenset({"a", "b"}),
        "right": frozenset({"c", "d"}),
    }

    bridges = find_bridge_nodes(adjacency, clusters)

    assert bridges == {"x": frozenset({"left", "right"})}


def test_single_cluster_has_no_bridges() -> None:
    adjacency = {"a": ["b"], "b": ["a", "c"], "c": ["b"]}
    clusters = find_connected_components(["a", "b", "c"], adjacency)

    assert find_bridge_nodes(adjacency, clusters) == {}


def test_shortest_path_is_breadth_first_and_directed() -> None:
    adjacency = {
        "a": ["b", "c"],
        "b": ["d"],
        "c": ["d"],
        "d": ["e"],
        "e": ["a"],
    }

    assert shortest_path(adjacency, "a", "a") == ["a"]
    assert shortest_path(adjacency, "a", "e") == ["a", "b", "d", "e"]
    assert shortest_path(adjacency, "e", "d") == ["e", "a", "b", "d"]
    assert shortest_path({"a": ["b"]}, "b", "a") is None
    assert shortest_path(adjacency, "a", "missing") is None


def test_health_extremes() -> None:
    assert compute_network_health(0, 0, 0, 0) == 100.0
    assert compute_network_health(4, 12, 4, 1, target_fan_out=3) == 100.0
    assert compute_network_health(5, 0, 0, 0) == 0.0


def test_health_drops_as_nodes_become_isolated() -> None:
    connected = compute_network_health(4, 6, 4, 1)
    partly_isolated = compute_network_health(4, 2, 2, 1)
    mostly_isolated = compute_network_health(8, 2, 2, 1)

    assert 0.0 < mostly_isolated < partly_isolated < connected <= 100.0


def test_graph_edges_require_registered_nodes() -> None:
    graph = make_graph("a", "b")

    assert graph.add_edge("a", "b")
    assert not graph.add_edge("a", "b")
    assert not graph.add_edge("a", "a")
    assert not graph.add_edge("a", "ghost")
    assert graph.has_edge("a", "b")
    assert not graph.has_edge("b", "a")
    assert graph.edge_count() == 1


def test_recompute_reports_membership_changes() -> None:
    graph = make_graph("a", "b", "c")
    link(graph, "a", "b")

    assert graph.recompute()
    assert not graph.recompute()

    link(graph, "b", "c")
    assert graph.recompute()
    assert graph.snapshot().clusters == {"cluster_0": frozenset({"a", "b", "c"})}


def test_remove_node_is_one_transaction() -> None:
    graph = make_graph("a", "b", "c")
    link(graph, "a", "b")
    link(graph, "b", "c")
    graph.recompute()

    result = graph.remove_node("b")

    assert result.removed
    assert result.clusters_changed
    snapshot = graph.snapshot()
    assert "b" not in snapshot.nodes
    assert all("b" not in targets for targets in snapshot.connections.values())
    assert snapshot.clusters == {}
    assert snapshot.bridges == {}
    assert graph.get_lifecycle("b") is NodeLifecycle.UNREGISTERED
    assert not graph.remove_node("b").removed


def test_find_path_needs_both_endpoints_registered() -> None:
    graph = make_graph("a", "b")
    link(graph, "a", "b")

    assert graph.find_path("a", "b") == ["a", "b"]
    assert graph.find_path("a", "a") == ["a"]
    assert graph.find_path("a", "ghost") is None
    assert graph.find_path("ghost", "ghost") is None


def test_snapshot_is_a_copy() -> None:
    graph = make_graph("a", "b")
    link(graph, "a", "b")
    graph.recompute()

    snapshot = graph.snapshot()
    snapshot.nodes["a"].metadata["role"] = "mutated"
    graph.remove_edge("a", "b")

    assert graph.get_node("a").metadata == {}  # type: ignore[union-attr]
    assert snapshot.connections["a"] == frozenset({"b"})
    assert snapshot.edge_count == 2
    assert snapshot.clustered_nodes == frozenset({"a", "b"})
    assert snapshot.cluster_of("a") == "cluster_0"
    assert snapshot.cluster_of("zzz") is None


def test_lifecycle_tracks_registered_nodes_only() -> None:
    graph = make_graph("a")

    assert graph.get_lifecycle("a") is NodeLifecycle.REGISTERED
    graph.set_lifecycle("a", NodeLifecycle.CONNECTED)
    graph.set_lifecycle("ghost", NodeLifecycle.CONNECTED)

    assert graph.get_lifecycle("a") is NodeLifecycle.CONNECTED
    assert graph.get_lifecycle("ghost") is NodeLifecycle.UNREGISTERED


def test_observe_node_keeps_the_newest_sighting() -> None:
    graph = make_graph("a")
    node = graph.get_node("a")
    assert node is not None
    registered_at = node.last_seen

    assert graph.observe_node("a", registered_at + 5, NodeStatus.BUSY)
    assert not graph.observe_node("a", registered_at + 1, NodeStatus.ONLINE)
    assert not graph.observe_node("ghost", registered_at + 9)

    node = graph.snapshot().nodes["a"]
    assert node.last_seen == registered_at + 5
    assert node.status is NodeStatus.BUSY

    graph.set_status("a", NodeStatus.OFFLINE)
    graph.set_status("ghost", NodeStatus.OFFLINE)
    assert graph.snapshot().nodes["a"].status is NodeStatus.OFFLINE


def test_touch_edge_only_moves_existing_edges_forward() -> None:
    graph = make_graph("a", "b")
    graph.add_edge("a", "b")
    created = graph.edge_activity("a", "b")
    assert created is not None

    assert graph.touch_edge("a", "b", created + 3)
    assert graph.touch_edge("a", "b", created + 1)
    assert graph.edge_activity("a", "b") == created + 3

    assert not graph.touch_edge("b", "a", created + 3)
    assert not graph.has_edge("b", "a")
    assert graph.edge_activity("b", "a") is None


def test_isolation_counts_edges_in_both_directions() -> None:
    graph = make_graph("a", "b", "c")
    graph.add_edge("a", "b")

    assert not graph.is_isolated("a")
    assert not graph.is_isolated("b")
    assert graph.is_isolated("c")

    graph.remove_edge("a", "b")
    assert graph.is_isolated("a")
    assert graph.is_isolated("b")
