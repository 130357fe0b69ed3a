"""
Property-Based Tests for the topology graph algorithms.

Random directed graphs are drawn with Hypothesis and checked against the
invariants the topology manager relies on: clusters partition the clustered
nodes, shortest paths are real paths of minimal length, bridges are exactly
the nodes touching two clusters, and health stays on its 0-100 scale.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from swarmnet.network.node import NodeRecord
from swarmnet.network.topology import (
    TopologyGraph,
    compute_network_health,
    find_bridge_nodes,
    find_connected_components,
    shortest_path,
    undirected_view,
)

INFINITY = float("inf")


@st.composite
def directed_graphs(draw, max_nodes: int = 10) -> tuple[list[str], dict[str, set[str]]]:
    """Generate node lists with a random directed edge set."""
    node_count = draw(st.integers(min_value=0, max_value=max_nodes))
    nodes = [f"node_{i}" for i in range(node_count)]
    adjacency: dict[str, set[str]] = {node_id: set() for node_id in nodes}
    if node_count >= 2:
        pairs = draw(
            st.lists(
                st.tuples(
                    st.integers(min_value=0, max_value=node_count - 1),
                    st.integers(min_value=0, max_value=node_count - 1),
                ),
                max_size=node_count * 3,
            )
        )
        for source, target in pairs:
            if source != target:
                adjacency[nodes[source]].add(nodes[target])
    return nodes, adjacency


@st.composite
def symmetric_graphs(draw) -> tuple[list[str], dict[str, set[str]]]:
    """Generate graphs where every edge exists in both directions."""
    nodes, adjacency = draw(directed_graphs())
    return nodes, undirected_view(nodes, adjacency)


@st.composite
def clustered_graphs(
    draw,
) -> tuple[dict[str, set[str]], dict[str, frozenset[str]]]:
    """Generate an adjacency together with a hand-made cluster partition."""
    nodes, adjacency = draw(directed_graphs(max_nodes=12))
    cluster_count = draw(st.integers(min_value=1, max_value=4))
    clusters: dict[str, set[str]] = {}
    for node_id in nodes:
        slot = draw(st.integers(min_value=-1, max_value=cluster_count - 1))
        if slot >= 0:
            clusters.setdefault(f"cluster_{slot}", set()).add(node_id)
    return adjacency, {cid: frozenset(members) for cid, members in clusters.items()}


def all_pairs_distances(
    nodes: list[str], adjacency: dict[str, set[str]]
) -> dict[tuple[str, str], float]:
    distance: dict[tuple[str, str], float] = {
        (a, b): 0 if a == b else (1 if b in adjacency[a] else INFINITY)
        for a in nodes
        for b in nodes
    }
    for k in nodes:
        for i in nodes:
            for j in nodes:
                through = distance[(i, k)] + distance[(k, j)]
                if through < distance[(i, j)]:
                    distance[(i, j)] = through
    return distance


class TestConnectedComponentProperties:
    """Clusters form a partition of the nodes that have any neighbour."""

    @given(directed_graphs())
    def test_clusters_partition_connected_nodes(self, graph):
        nodes, adjacency = graph
        clusters = find_connected_components(nodes, adjacency)

        seen: set[str] = set()
        for members in clusters.values():
            assert len(members) >= 2
            assert seen.isdisjoint(members)
            seen |= members

        view = undirected_view(nodes, adjacency)
        for node_id in nodes:
            assert (node_id in seen) == bool(view[node_id])

    @given(directed_graphs())
    def test_edges_never_cross_clusters(self, graph):
        nodes, adjacency = graph
        clusters = find_connected_components(nodes, adjacency)
        membership = {n: cid for cid, members in clusters.items() for n in members}

        for source, targets in adjacency.items():
            for target in targets:
                assert membership[source] == membership[target]

    @given(directed_graphs())
    def test_cluster_ids_are_sequential(self, graph):
        nodes, adjacency = graph
        clusters = find_connected_components(nodes, adjacency)

        assert sorted(clusters) == sorted(f"cluster_{i}" for i in range(len(clusters)))

    @given(directed_graphs())
    def test_components_ignore_edge_direction(self, graph):
        nodes, adjacency = graph
        reversed_adjacency: dict[str, set[str]] = {node_id: set() for node_id in nodes}
        for source, targets in adjacency.items():
            for target in targets:
                reversed_adjacency[target].add(source)

        forward = set(find_connected_components(nodes, adjacency).values())
        backward = set(find_connected_components(nodes, reversed_adjacency).values())
        assert forward == backward


class TestShortestPathProperties:
    """BFS paths are valid walks of minimal length."""

    @settings(max_examples=50)
    @given(symmetric_graphs(), st.data())
    def test_path_is_minimal_walk(self, graph, data):
        nodes, adjacency = graph
        if not nodes:
            return
        source = data.draw(st.sampled_from(nodes))
        target = data.draw(st.sampled_from(nodes))
        distance = all_pairs_distances(nodes, adjacency)[(source, target)]

        path = shortest_path(adjacency, source, target)

        if distance == INFINITY:
            assert path is None
            return
        assert path is not None
        assert path[0] == source
        assert path[-1] == target
        assert len(path) - 1 == distance
        assert len(set(path)) == len(path)
        for current, following in zip(path, path[1:]):
            assert following in adjacency[current]

    @given(symmetric_graphs(), st.data())
    def test_path_exists_within_a_cluster(self, graph, data):
        nodes, adjacency = graph
        clusters = find_connected_components(nodes, adjacency)
        if not clusters:
            return
        ordered = sorted(clusters.values(), key=sorted)
        members = sorted(data.draw(st.sampled_from(ordered)))
        source = data.draw(st.sampled_from(members))
        target = data.draw(st.sampled_from(members))

        assert shortest_path(adjacency, source, target) is not None


class TestBridgeProperties:
    """Bridges are exactly the nodes whose neighbours span two clusters."""

    @given(clustered_graphs())
    def test_bridges_touch_at_least_two_clusters(self, data):
        adjacency, clusters = data
        bridges = find_bridge_nodes(adjacency, clusters)

        neighbours: dict[str, set[str]] = {}
        for source, targets in adjacency.items():
            for target in targets:
                neighbours.setdefault(source, set()).add(target)
                neighbours.setdefault(target, set()).add(source)

        for node_id, cluster_ids in bridges.items():
            assert len(cluster_ids) >= 2
            for cluster_id in cluster_ids:
                assert neighbours[node_id] & clusters[cluster_id]

        for node_id, adjacent in neighbours.items():
            touched = {
                cid for cid, members in clusters.items() if adjacent & members
            }
            assert (node_id in bridges) == (len(touched) >= 2)

    @given(directed_graphs())
    def test_derived_clusters_have_no_bridges(self, graph):
        nodes, adjacency = graph
        clusters = find_connected_components(nodes, adjacency)

        assert find_bridge_nodes(adjacency, clusters) == {}


class TestNetworkHealthProperties:
    """Health is always a score between 0 and 100."""

    @given(
        st.integers(min_value=1, max_value=500),
        st.integers(min_value=0, max_value=5000),
        st.data(),
        st.integers(min_value=1, max_value=10),
    )
    def test_health_is_bounded(self, total_nodes, edges, data, target_fan_out):
        clustered = data.draw(st.integers(min_value=0, max_value=total_nodes))
        cluster_count = data.draw(st.integers(min_value=0, max_value=clustered // 2))

        health = compute_network_health(
            total_nodes, edges, clustered, cluster_count, target_fan_out
        )

        assert 0.0 <= health <= 100.0

    @given(directed_graphs())
    def test_health_of_generated_graphs(self, graph):
        nodes, adjacency = graph
        clusters = find_connected_components(nodes, adjacency)
        clustered = sum(len(members) for members in clusters.values())

        health = compute_network_health(
            len(nodes),
            sum(len(targets) for targets in adjacency.values()),
            clustered,
            len(clusters),
        )

        assert 0.0 <= health <= 100.0
        if nodes and not clusters:
            assert health == 0.0


class TestTopologyGraphProperties:
    """Registry mutations keep derived maps consistent with the node set."""

    @settings(max_examples=50)
    @given(directed_graphs(), st.data())
    def test_removing_nodes_clears_every_reference(self, graph, data):
        nodes, adjacency = graph
        registry = TopologyGraph()
        for i, node_id in enumerate(nodes):
            registry.add_node(
                NodeRecord(id=node_id, address="127.0.0.1", port=9000 + i)
            )
        for source, targets in adjacency.items():
            for target in targets:
                registry.add_edge(source, target)
        registry.recompute()

        doomed: list[str] = []
        if nodes:
            doomed = data.draw(st.lists(st.sampled_from(nodes), unique=True))
        for node_id in doomed:
            assert registry.remove_node(node_id).removed

        snapshot = registry.snapshot()
        survivors = set(nodes) - set(doomed)
        assert set(snapshot.nodes) == survivors
        for source, targets in snapshot.connections.items():
            assert source in survivors
            assert targets <= survivors
        assert snapshot.clustered_nodes <= survivors
        assert set(snapshot.bridges) <= survivors
        assert set(snapshot.clusters.values()) == set(
            find_connected_components(sorted(survivors), snapshot.connections).values()
        )
