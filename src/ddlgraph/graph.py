"""
Arena-backed directed graph of SQL entities.

Nodes are addressed by small integer indices into a single list; edges are
(source, target, relationship) triples where ``source`` must be emitted
before ``target``. Entities never hold references to one another, only
the graph does.
"""

import logging
from graphlib import CycleError, TopologicalSorter
from typing import Dict, Iterator, List, Set, Tuple

from .entities import SqlGraphEntity
from .errors import CyclicDependencyError
from .models import SqlGraphRelationship

logger = logging.getLogger(__name__)

Edge = Tuple[int, int, SqlGraphRelationship]


class SqlGraph:
    """
    Directed graph with stable integer node handles.

    Parallel edges with the same relationship are collapsed, so passes
    can add edges without checking for duplicates first.
    """

    def __init__(self):
        self._nodes: List[SqlGraphEntity] = []
        self._edges: List[Edge] = []
        self._edge_set: Set[Edge] = set()
        self._outgoing: Dict[int, List[int]] = {}
        self._incoming: Dict[int, List[int]] = {}

    def add_node(self, entity: SqlGraphEntity) -> int:
        index = len(self._nodes)
        self._nodes.append(entity)
        self._outgoing[index] = []
        self._incoming[index] = []
        logger.debug("Added node %d: %s", index, entity.dot_identifier())
        return index

    def add_edge(
        self,
        source: int,
        target: int,
        relationship: SqlGraphRelationship = SqlGraphRelationship.REQUIRED_BY,
    ) -> bool:
        """Add ``source -> target``. Returns False if the edge already existed."""
        if source not in self._outgoing or target not in self._outgoing:
            raise IndexError(f"Edge {source} -> {target} references an unknown node")
        edge = (source, target, relationship)
        if edge in self._edge_set:
            return False
        self._edge_set.add(edge)
        self._edges.append(edge)
        self._outgoing[source].append(target)
        self._incoming[target].append(source)
        return True

    def __getitem__(self, index: int) -> SqlGraphEntity:
        return self._nodes[index]

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[int]:
        return iter(range(len(self._nodes)))

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges)

    def has_edge(self, source: int, target: int) -> bool:
        return target in self._outgoing.get(source, ())

    def predecessors(self, index: int) -> List[int]:
        return sorted(set(self._incoming[index]))

    def successors(self, index: int) -> List[int]:
        return sorted(set(self._outgoing[index]))

    def neighbors_undirected(self, index: int) -> List[int]:
        """Every node sharing an edge with ``index``, in index order."""
        return sorted(set(self._incoming[index]) | set(self._outgoing[index]))

    def topological_sort(self) -> List[int]:
        """
        Order nodes so every edge source precedes its target.

        Ready nodes are released in index order, so the result depends only
        on the graph's content.

        Raises:
            CyclicDependencyError: if the graph has a cycle
        """
        sorter: TopologicalSorter = TopologicalSorter()
        for index in self:
            sorter.add(index, *self.predecessors(index))

        try:
            sorter.prepare()
        except CycleError as e:
            cycle = list(e.args[1])
            node = self._nodes[min(cycle)]
            raise CyclicDependencyError(
                node.source_identifier(),
                cycle=[self._nodes[i].dot_identifier() for i in cycle],
            ) from e

        ordered: List[int] = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready())
            ordered.extend(ready)
            sorter.done(*ready)
        return ordered


__all__ = ["Edge", "SqlGraph"]
