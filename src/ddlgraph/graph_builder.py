"""
SQL entity graph builder.

This module provides the SqlGraphBuilder class, which turns an unordered
collection of entities into a SqlEntityGraph:

1. Sort entities by content and partition them by kind
2. Create the root node and one node per entity
3. Identify the bootstrap/finalize singletons
4. Create BuiltinType nodes for types no Type/Enum entity owns
5. Register Type/Enum mappings and custom-SQL type declarations
6. Run the EdgeConnector passes
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from .edge_connector import EdgeConnector
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
    entity_sort_key,
)
from .errors import ConfigurationConflictError, SqlGraphError
from .graph import SqlGraph
from .mapping import SourceOnlyMapping, TypeMapping, TypeMappingTable
from .models import TypeReference
from .sql_graph import SqlEntityGraph

logger = logging.getLogger(__name__)

E = TypeVar("E")


class SqlGraphBuilder:
    """
    Build a SqlEntityGraph from extracted entities.

    Example:
        builder = SqlGraphBuilder(
            entities=[root, schema, dog_type, dog_in, dog_out],
            type_mappings=[TypeMapping("i32", "integer")],
        )
        sql_graph = builder.build()
        print(sql_graph.to_sql())
    """

    def __init__(
        self,
        entities: Iterable[SqlGraphEntity],
        type_mappings: Iterable[TypeMapping] = (),
        source_mappings: Iterable[SourceOnlyMapping] = (),
    ):
        self._entities: List[SqlGraphEntity] = sorted(set(entities), key=entity_sort_key)
        self._type_mappings = list(type_mappings)
        self._source_mappings = list(source_mappings)

    def _of_kind(self, cls: Type[E]) -> List[E]:
        return [entity for entity in self._entities if isinstance(entity, cls)]

    def build(self) -> SqlEntityGraph:
        """
        Construct nodes and edges.

        Raises:
            ConfigurationConflictError: duplicate root, bootstrap, finalize or type mapping
            UnresolvedReferenceError: a reference matches no entity
            SqlGraphError: no extension root was supplied
        """
        graph = SqlGraph()
        control = self._find_control()
        root = graph.add_node(control)

        sql_graph = SqlEntityGraph(
            control=control,
            graph=graph,
            root=root,
            type_mappings=TypeMappingTable(self._type_mappings, self._source_mappings),
        )

        sql_graph.schemas = self._add_nodes(graph, self._of_kind(SchemaEntity))
        sql_graph.extension_sqls = self._add_nodes(graph, self._of_kind(CustomSqlEntity))
        sql_graph.bootstrap, sql_graph.finalize = self._find_singletons(sql_graph.extension_sqls)
        sql_graph.types = self._add_nodes(graph, self._of_kind(TypeEntity))
        sql_graph.enums = self._add_nodes(graph, self._of_kind(EnumEntity))
        sql_graph.externs = self._add_nodes(graph, self._of_kind(FunctionEntity))
        sql_graph.ords = self._add_nodes(graph, self._of_kind(OrdEntity))
        sql_graph.hashes = self._add_nodes(graph, self._of_kind(HashEntity))
        sql_graph.aggregates = self._add_nodes(graph, self._of_kind(AggregateEntity))

        self._add_builtin_types(sql_graph)
        self._register_types(sql_graph)

        EdgeConnector(sql_graph).connect()

        logger.info(
            "Built SQL entity graph for %s: %d nodes, %d edges",
            control.name,
            len(graph),
            len(graph.edges),
        )
        return sql_graph

    def _find_control(self) -> ExtensionRoot:
        roots = self._of_kind(ExtensionRoot)
        if not roots:
            raise SqlGraphError("No extension root supplied; exactly one ExtensionRoot is required")
        if len(roots) > 1:
            raise ConfigurationConflictError(
                "Cannot have multiple extension roots",
                first=roots[1].name,
                second=roots[0].name,
            )
        return roots[0]

    @staticmethod
    def _add_nodes(graph: SqlGraph, entities: List[E]) -> Dict[E, int]:
        return {entity: graph.add_node(entity) for entity in entities}  # type: ignore[arg-type]

    @staticmethod
    def _find_singletons(
        extension_sqls: Dict[CustomSqlEntity, int],
    ) -> Tuple[Optional[int], Optional[int]]:
        bootstrap: Optional[Tuple[CustomSqlEntity, int]] = None
        finalize: Optional[Tuple[CustomSqlEntity, int]] = None

        for item, index in extension_sqls.items():
            if item.bootstrap:
                if bootstrap is not None:
                    raise ConfigurationConflictError(
                        "Cannot have multiple custom SQL blocks with `bootstrap` positioning",
                        first=f"{item.full_path} ({item.location})",
                        second=f"{bootstrap[0].full_path} ({bootstrap[0].location})",
                    )
                bootstrap = (item, index)
            if item.finalize:
                if finalize is not None:
                    raise ConfigurationConflictError(
                        "Cannot have multiple custom SQL blocks with `finalize` positioning",
                        first=f"{item.full_path} ({item.location})",
                        second=f"{finalize[0].full_path} ({finalize[0].location})",
                    )
                finalize = (item, index)

        return (
            bootstrap[1] if bootstrap is not None else None,
            finalize[1] if finalize is not None else None,
        )

    @staticmethod
    def _add_builtin_types(sql_graph: SqlEntityGraph):
        """One BuiltinType node per literal type text no Type/Enum owns."""

        def owned(reference: TypeReference) -> bool:
            return any(ty.id_matches(reference.type_id) for ty in sql_graph.types) or any(
                en.id_matches(reference.type_id) for en in sql_graph.enums
            )

        references: List[TypeReference] = []
        for item in sql_graph.externs:
            references.extend(ref for ref, _is_return in item.type_references())
        for aggregate in sql_graph.aggregates:
            references.extend(aggregate.type_references())

        for reference in references:
            if owned(reference) or reference.type_name in sql_graph.builtin_types:
                continue
            index = sql_graph.graph.add_node(BuiltinType(reference.type_name))
            sql_graph.builtin_types[reference.type_name] = index

    @staticmethod
    def _register_types(sql_graph: SqlEntityGraph):
        mappings = sql_graph.type_mappings
        for en in sql_graph.enums:
            for type_id, sql in en.mappings():
                mappings.register(type_id, sql, owner=en.full_path)
        for ty in sql_graph.types:
            for type_id, sql in ty.mappings():
                mappings.register(type_id, sql, owner=ty.full_path)
        for item in sql_graph.extension_sqls:
            for declared in item.creates:
                mappings.declare(declared.identifier, declared.sql, declared.kind)


def build_sql_graph(
    entities: Iterable[SqlGraphEntity],
    type_mappings: Iterable[TypeMapping] = (),
    source_mappings: Iterable[SourceOnlyMapping] = (),
) -> SqlEntityGraph:
    """Shorthand for ``SqlGraphBuilder(...).build()``."""
    return SqlGraphBuilder(entities, type_mappings, source_mappings).build()


__all__ = ["SqlGraphBuilder", "build_sql_graph"]
