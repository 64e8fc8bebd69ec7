"""
The finished SQL entity graph.

``SqlEntityGraph`` is what ``SqlGraphBuilder.build()`` hands back: the
arena graph, the designated root/bootstrap/finalize nodes, per-kind
entity indexes and the completed type mapping table. It answers the
lookups rendering needs (owning schema, SQL type text, declared
entities) and exposes the output operations.

Example:
    sql_graph = SqlGraphBuilder(entities, type_mappings).build()
    sql_graph.to_file("sql/my_ext--1.0.sql")
    sql_graph.to_dot().save("my_ext.dot")
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, TextIO, Union

from .entities import (
    AggregateEntity,
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
from .errors import UnresolvedReferenceError
from .graph import SqlGraph
from .mapping import TypeMappingTable
from .models import SqlDeclared, SqlDeclaredKind, TypeReference

if TYPE_CHECKING:
    import graphviz

logger = logging.getLogger(__name__)

# Schemas that exist in every database and are never created or prefixed
IMPLICIT_SCHEMAS = ("public", "pg_catalog")
UNQUALIFIED_SCHEMAS = ("public",)
RELOCATABLE_SCHEMA_ALIAS = "@extname@"


@dataclass
class SqlEntityGraph:
    """Dependency graph of every entity in one extension, ready to render."""

    control: ExtensionRoot
    graph: SqlGraph
    root: int
    type_mappings: TypeMappingTable
    bootstrap: Optional[int] = None
    finalize: Optional[int] = None
    schemas: Dict[SchemaEntity, int] = field(default_factory=dict)
    extension_sqls: Dict[CustomSqlEntity, int] = field(default_factory=dict)
    externs: Dict[FunctionEntity, int] = field(default_factory=dict)
    types: Dict[TypeEntity, int] = field(default_factory=dict)
    builtin_types: Dict[str, int] = field(default_factory=dict)
    enums: Dict[EnumEntity, int] = field(default_factory=dict)
    ords: Dict[OrdEntity, int] = field(default_factory=dict)
    hashes: Dict[HashEntity, int] = field(default_factory=dict)
    aggregates: Dict[AggregateEntity, int] = field(default_factory=dict)

    def __getitem__(self, index: int) -> SqlGraphEntity:
        return self.graph[index]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_type_node(self, reference: TypeReference) -> Optional[int]:
        """Type, then Enum, then BuiltinType; first match wins."""
        for ty, index in self.types.items():
            if ty.id_matches(reference.type_id):
                return index
        for en, index in self.enums.items():
            if en.id_matches(reference.type_id):
                return index
        return self.builtin_types.get(reference.type_name)

    def find_extern(self, full_path: str) -> Optional[int]:
        for item, index in self.externs.items():
            if item.full_path == full_path:
                return index
        return None

    def find_extern_in_module(self, module_path: str, name: str) -> Optional[int]:
        """Function with SQL name ``name`` declared in exactly ``module_path``."""
        for item, index in self.externs.items():
            if item.module_path == module_path and item.name == name:
                return index
        return None

    def has_sql_declared_entity(
        self, identifier: str, kinds: Iterable[SqlDeclaredKind] = ()
    ) -> Optional[int]:
        """Index of the custom SQL block that declares it creates ``identifier``."""
        kinds = tuple(kinds)
        for item, index in self.extension_sqls.items():
            if item.declares(identifier, kinds) is not None:
                return index
        return None

    def sql_declared(self, identifier: str) -> Optional[SqlDeclared]:
        for item in self.extension_sqls:
            declared = item.declares(identifier)
            if declared is not None:
                return declared
        return None

    def sql_type_for(self, reference: TypeReference, requester: SqlGraphEntity) -> str:
        """
        Literal SQL type for ``reference``.

        Raises:
            UnresolvedReferenceError: if no mapping or declaration exists
        """
        sql = self.type_mappings.sql_for(reference)
        if sql is None:
            raise UnresolvedReferenceError(
                reference.type_name,
                requester=requester.source_identifier(),
                location=requester.location,
                what="SQL mapping for type",
                candidates=self.type_mappings.known_names(),
            )
        return sql

    # ------------------------------------------------------------------
    # Schema qualification
    # ------------------------------------------------------------------

    def schema_alias_of(self, index: int) -> Optional[str]:
        """
        Schema an entity lives in, found through its graph neighbours.

        A Schema neighbour declared for the entity's own module wins. Schema
        neighbours reached through positioning or inlined functions do not
        count. Otherwise the extension root supplies its default schema, or
        ``@extname@`` when the extension is relocatable. BuiltinType nodes
        touch neither and have no alias.
        """
        module_path = self.graph[index].module_path
        neighbors = self.graph.neighbors_undirected(index)
        for neighbor in neighbors:
            entity = self.graph[neighbor]
            if isinstance(entity, SchemaEntity) and entity.module_path == module_path:
                return entity.name
        for neighbor in neighbors:
            entity = self.graph[neighbor]
            if isinstance(entity, ExtensionRoot):
                if entity.relocatable:
                    return RELOCATABLE_SCHEMA_ALIAS
                return entity.schema
        return None

    def schema_prefix_for(self, index: int) -> str:
        alias = self.schema_alias_of(index)
        if alias is None or alias in UNQUALIFIED_SCHEMAS:
            return ""
        return f"{alias}."

    def function_prefix(self, index: int) -> str:
        """Schema prefix for a function, honouring an explicit ``schema``."""
        item = self.graph[index]
        if isinstance(item, FunctionEntity) and item.schema is not None:
            if item.schema in UNQUALIFIED_SCHEMAS:
                return ""
            return f"{item.schema}."
        return self.schema_prefix_for(index)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def to_sql(self) -> str:
        """Render the whole extension script in dependency order."""
        from .emitter import render_script

        return render_script(self)

    def write(self, stream: TextIO):
        stream.write(self.to_sql())

    def to_file(self, path: Union[str, Path]) -> Path:
        """
        Write the script as UTF-8, creating parent directories.

        The script is rendered in full before the file is opened, so a
        build error never leaves a truncated file behind.
        """
        sql = self.to_sql()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(sql, encoding="utf-8")
        logger.info("Wrote %d bytes of SQL to %s", len(sql.encode("utf-8")), path)
        return path

    def to_dot(self) -> "graphviz.Digraph":
        from .export import GraphVizExporter

        return GraphVizExporter.export(self)

    def to_json(self) -> Dict[str, Any]:
        from .export import JSONExporter

        return JSONExporter.export(self)

    def entities(self) -> List[SqlGraphEntity]:
        return [self.graph[index] for index in self.graph]


__all__ = [
    "SqlEntityGraph",
    "IMPLICIT_SCHEMAS",
    "UNQUALIFIED_SCHEMAS",
    "RELOCATABLE_SCHEMA_ALIAS",
]
