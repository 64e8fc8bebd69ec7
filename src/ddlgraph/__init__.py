"""
ddlgraph - dependency-ordered DDL for database extensions

Builds a dependency graph over extracted SQL entities (functions, types,
enums, operator classes, aggregates, schemas and hand-written SQL) and
renders one deterministic, order-correct SQL script from it.
"""

from importlib.metadata import version

__version__ = version("ddlgraph")

from .edge_connector import EdgeConnector
from .emitter import RENDERERS, render_script
from .entities import (
    AggregateEntity,
    BuiltinType,
    CustomSqlEntity,
    EnumEntity,
    ExtensionRoot,
    FunctionEntity,
    HashEntity,
    OrdEntity,
    SchemaEntity,
    SqlGraphEntity,
    TypeEntity,
)
from .errors import (
    ConfigurationConflictError,
    CyclicDependencyError,
    ManifestError,
    SqlGraphError,
    UnresolvedReferenceError,
)
from .export import GraphVizExporter, JSONExporter
from .graph import SqlGraph
from .graph_builder import SqlGraphBuilder, build_sql_graph
from .manifest import Manifest, load_manifest, parse_manifest
from .mapping import SourceOnlyMapping, TypeMapping, TypeMappingTable
from .models import (
    AggregateArgument,
    EntityKind,
    ExternAttribute,
    FinalizeModify,
    FunctionArgument,
    FunctionReturn,
    OperatorOptions,
    ParallelOption,
    PositioningRef,
    ReturnKind,
    SqlDeclared,
    SqlDeclaredKind,
    SqlGraphRelationship,
    TableColumn,
    TypeReference,
)
from .sql_graph import SqlEntityGraph

__all__ = [
    "__version__",
    # Entities
    "SqlGraphEntity",
    "ExtensionRoot",
    "SchemaEntity",
    "CustomSqlEntity",
    "FunctionEntity",
    "TypeEntity",
    "EnumEntity",
    "OrdEntity",
    "HashEntity",
    "AggregateEntity",
    "BuiltinType",
    # Value types
    "EntityKind",
    "SqlGraphRelationship",
    "PositioningRef",
    "SqlDeclared",
    "SqlDeclaredKind",
    "TypeReference",
    "FunctionArgument",
    "FunctionReturn",
    "ReturnKind",
    "TableColumn",
    "ExternAttribute",
    "OperatorOptions",
    "AggregateArgument",
    "ParallelOption",
    "FinalizeModify",
    # Type mapping
    "TypeMapping",
    "SourceOnlyMapping",
    "TypeMappingTable",
    # Graph
    "SqlGraph",
    "SqlGraphBuilder",
    "build_sql_graph",
    "EdgeConnector",
    "SqlEntityGraph",
    # Emission and export
    "RENDERERS",
    "render_script",
    "GraphVizExporter",
    "JSONExporter",
    # Manifest
    "Manifest",
    "load_manifest",
    "parse_manifest",
    # Errors
    "SqlGraphError",
    "ConfigurationConflictError",
    "UnresolvedReferenceError",
    "CyclicDependencyError",
    "ManifestError",
]
