"""Call-graph indexing and traversal over a profile's node arena.

The `.cpuprofile` node table is a flattened call graph: each node lists the
ids of its children, and V8 may share one node under several parents. This
module derives the adjacency index once per analysis run and provides the two
bounded traversals used by caller/callee analysis:

- :func:`walk_up` reconstructs the call stack above a node (innermost first).
- :func:`collect_descendants` computes the transitive closure of child edges.

Both traversals are iterative and keep an explicit visited set, so cyclic or
very deep graphs never exhaust the interpreter stack.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from cpuprof_analyzer.data.models import CallStackFrame, ProfileNode, StackWalk

DEFAULT_MAX_DEPTH = 20


@dataclass
class AdjacencyIndex:
    """Parent/child adjacency derived from a node arena.

    Attributes
    ----------
    parents
        Child id → parent ids in the order the edges were first seen.
    children
        Parent id → child ids in ``children`` order.
    nodes_by_id
        Node lookup; child ids missing here are dead ends.
    """

    parents: Dict[int, List[int]] = field(default_factory=dict)
    children: Dict[int, List[int]] = field(default_factory=dict)
    nodes_by_id: Dict[int, ProfileNode] = field(default_factory=dict)

    def node(self, node_id: int) -> Optional[ProfileNode]:
        return self.nodes_by_id.get(node_id)

    def first_parent(self, node_id: int) -> Optional[int]:
        ps = self.parents.get(node_id)
        return ps[0] if ps else None

    def shared_node_ids(self) -> List[int]:
        """Return ids of nodes with more than one parent (sorted)."""

        return sorted(nid for nid, ps in self.parents.items() if len(ps) > 1)

    @property
    def edge_count(self) -> int:
        return sum(len(cs) for cs in self.children.values())


def build_adjacency(nodes: Iterable[ProfileNode]) -> AdjacencyIndex:
    """Build parent/child adjacency in a single pass over child edges.

    Child ids that reference no node are recorded as-is; traversals treat
    them as dead ends.

    Examples
    --------
    >>> from cpuprof_analyzer.data.models import ProfileNode
    >>> adj = build_adjacency([ProfileNode(id=0, child_ids=(1,)), ProfileNode(id=1)])
    >>> adj.parents[1], adj.children[0]
    ([0], [1])
    """

    index = AdjacencyIndex()
    for node in nodes:
        index.nodes_by_id[node.id] = node
        for child_id in node.child_ids:
            index.parents.setdefault(child_id, []).append(node.id)
            index.children.setdefault(node.id, []).append(child_id)
    return index


def walk_up(node_id: int, adjacency: AdjacencyIndex, max_depth: int = DEFAULT_MAX_DEPTH) -> StackWalk:
    """Reconstruct the call stack above ``node_id``, innermost frame first.

    When a node has several parents the first one recorded during indexing
    is followed. The flattened format does not say which parent produced a
    given sample, so the result is deterministic but approximate for shared
    nodes.

    Parameters
    ----------
    node_id
        Node to start from (included as the first frame when known).
    adjacency
        Index built by :func:`build_adjacency`.
    max_depth
        Maximum number of frames to emit.

    Returns
    -------
    StackWalk
        Frames without repeated ids. ``truncated`` is set when the ceiling
        stopped the walk below a root, ``cycle_detected`` when the next
        parent had already been visited.
    """

    if max_depth < 1:
        raise ValueError(f"max_depth must be >= 1, got {max_depth}")

    frames: List[CallStackFrame] = []
    visited: Set[int] = set()
    truncated = False
    cycle_detected = False
    current: Optional[int] = node_id

    while current is not None:
        if current in visited:
            cycle_detected = True
            break
        node = adjacency.node(current)
        if node is None:
            break
        if len(frames) >= max_depth:
            truncated = True
            break
        visited.add(current)
        frames.append(CallStackFrame.from_node(node))
        current = adjacency.first_parent(current)

    return StackWalk(frames=frames, truncated=truncated, cycle_detected=cycle_detected)


def collect_descendants(node_id: int, adjacency: AdjacencyIndex) -> Set[int]:
    """Return every node id reachable from ``node_id`` through child edges.

    ``node_id`` itself is included only when a cycle leads back to it.
    """

    seen: Set[int] = set()
    pending: List[int] = list(reversed(adjacency.children.get(node_id, [])))
    while pending:
        current = pending.pop()
        if current in seen:
            continue
        seen.add(current)
        pending.extend(reversed(adjacency.children.get(current, [])))
    return seen
