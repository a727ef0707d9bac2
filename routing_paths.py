# routing_paths.py
# Path enumeration over a directed edge list.
#
# Edges are addressed by their position in the edge list (0-based), so parallel
# edges between the same pair of nodes stay distinct. A path is a list of edge
# indices, in travel order.

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import networkx as nx

Edge = Tuple[int, int]
EdgePath = List[int]


def edge_graph(edges: Sequence[Edge]) -> nx.MultiDiGraph:
    """MultiDiGraph whose edge keys are the edge-list indices."""
    G = nx.MultiDiGraph()
    for j, (u, v) in enumerate(edges):
        G.add_edge(u, v, key=j)
    return G


def enumerate_paths(edges: Sequence[Edge], source: int, sink: int) -> List[EdgePath]:
    """All simple `source`-`sink` paths in the graph defined by `edges`.

    Paths come out depth first with outgoing edges taken in edge-list order.
    A path never revisits a node, so cyclic graphs still terminate, and it ends
    the first time it reaches `sink`.
    Returns [[]] when source == sink and [] when the sink is unreachable.
    """
    if source == sink:
        return [[]]
    G = edge_graph(edges)
    if source not in G or sink not in G:
        return []
    return [[k for _u, _v, k in p] for p in nx.all_simple_edge_paths(G, source, sink)]


def count_paths(edges: Sequence[Edge], source: int, sink: int) -> int:
    return len(enumerate_paths(edges, source, sink))


def find_one_path(edges: Sequence[Edge], source: int, sink: int) -> Optional[EdgePath]:
    """A single `source`-`sink` path with the fewest edges, for diagnostics.

    Between parallel edges the lowest index is taken. Returns [] when
    source == sink and None when no path exists. Not used when building or
    solving a game.
    """
    if source == sink:
        return []
    G = edge_graph(edges)
    if source not in G or sink not in G or not nx.has_path(G, source, sink):
        return None
    nodes = nx.shortest_path(G, source, sink)
    return [min(G[u][v]) for u, v in zip(nodes[:-1], nodes[1:])]


def path_nodes(edges: Sequence[Edge], path: Sequence[int], source: int) -> List[int]:
    """Node sequence visited by an edge-index path starting at `source`."""
    nodes = [source]
    for j in path:
        nodes.append(edges[j][1])
    return nodes
