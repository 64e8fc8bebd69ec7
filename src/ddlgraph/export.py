"""
Export functionality for SQL entity graphs.

Supports exporting to:
- GraphViz DOT: diagnostic picture of the dependency graph
- JSON: machine-readable nodes and edges for tooling

The SQL script itself is written by ``SqlEntityGraph.to_file``.
"""

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict

import graphviz

from .models import EntityKind, SqlGraphRelationship

if TYPE_CHECKING:
    from .sql_graph import SqlEntityGraph

# Node styling by entity kind
NODE_STYLES: Dict[EntityKind, Dict[str, str]] = {
    EntityKind.ROOT: {"shape": "cylinder"},
    EntityKind.SCHEMA: {"shape": "tab"},
    EntityKind.CUSTOM_SQL: {"shape": "signature"},
    EntityKind.FUNCTION: {"shape": "box", "style": "filled", "fillcolor": "#ADC7C6"},
    EntityKind.TYPE: {"shape": "oval", "style": "filled", "fillcolor": "#AE9BBD"},
    EntityKind.BUILTIN_TYPE: {"shape": "plain"},
    EntityKind.ENUM: {"shape": "oval", "style": "filled", "fillcolor": "#C9A7C8"},
    EntityKind.ORD: {"shape": "diamond", "style": "filled", "fillcolor": "#FFCFD3"},
    EntityKind.HASH: {"shape": "diamond", "style": "filled", "fillcolor": "#FFE4E0"},
    EntityKind.AGGREGATE: {"shape": "diamond", "style": "filled", "fillcolor": "#FFE4E0"},
}

EDGE_STYLES: Dict[SqlGraphRelationship, Dict[str, str]] = {
    SqlGraphRelationship.REQUIRED_BY: {"color": "gray"},
    SqlGraphRelationship.REQUIRED_BY_ARG: {"color": "black"},
    SqlGraphRelationship.REQUIRED_BY_RETURN: {"color": "black", "dir": "back"},
}


class GraphVizExporter:
    """Export the dependency graph as a graphviz.Digraph."""

    @staticmethod
    def export(sql_graph: "SqlEntityGraph") -> graphviz.Digraph:
        """
        Build a Digraph with one node per entity.

        Node ids are the arena indices; labels are the entities' dot
        identifiers. Return-type edges carry ``dir=back`` so the arrowhead
        sits on the returned type.
        """
        dot = graphviz.Digraph(comment=f"{sql_graph.control.name} SQL entity graph")
        dot.attr(rankdir="LR")

        graph = sql_graph.graph
        for index in graph:
            entity = graph[index]
            dot.node(str(index), label=entity.dot_identifier(), **NODE_STYLES[entity.kind])

        for source, target, relationship in graph.edges:
            dot.edge(str(source), str(target), **EDGE_STYLES[relationship])

        return dot

    @staticmethod
    def export_to_file(sql_graph: "SqlEntityGraph", file_path: str) -> Path:
        """Write the DOT source as UTF-8 (no Graphviz binary needed)."""
        dot = GraphVizExporter.export(sql_graph)

        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dot.source, encoding="utf-8")
        return path


class JSONExporter:
    """
    Export the dependency graph to a JSON-serializable dictionary.

    Example:
        data = JSONExporter.export(sql_graph)
        data["nodes"][0]  # {"index": 0, "kind": "root", ...}
    """

    @staticmethod
    def export(sql_graph: "SqlEntityGraph", include_order: bool = True) -> Dict[str, Any]:
        """
        Args:
            sql_graph: The built graph
            include_order: Whether to include the topological emission order

        Returns:
            Dictionary with extension, nodes, edges and optionally order
        """
        graph = sql_graph.graph
        result: Dict[str, Any] = {
            "extension": {
                "name": sql_graph.control.name,
                "schema": sql_graph.control.schema,
                "relocatable": sql_graph.control.relocatable,
                "default_version": sql_graph.control.default_version,
            },
            "nodes": [],
            "edges": [],
        }

        for index in graph:
            entity = graph[index]
            result["nodes"].append(
                {
                    "index": index,
                    "kind": entity.kind.value,
                    "identifier": entity.source_identifier(),
                    "label": entity.dot_identifier(),
                    "location": entity.location if entity.file else None,
                    "schema": sql_graph.schema_alias_of(index),
                }
            )

        for source, target, relationship in graph.edges:
            result["edges"].append(
                {
                    "source": source,
                    "target": target,
                    "relationship": relationship.value,
                }
            )

        if include_order:
            result["order"] = graph.topological_sort()

        return result

    @staticmethod
    def export_to_file(
        sql_graph: "SqlEntityGraph",
        file_path: str,
        include_order: bool = True,
        indent: int = 2,
    ) -> Path:
        data = JSONExporter.export(sql_graph, include_order=include_order)

        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)
        return path


__all__ = ["GraphVizExporter", "JSONExporter", "NODE_STYLES", "EDGE_STYLES"]
