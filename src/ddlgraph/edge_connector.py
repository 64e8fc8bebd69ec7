"""
Edge connection passes for the SQL entity graph.

This module provides the EdgeConnector class, which adds every "must be
emitted before" edge to a SqlEntityGraph whose nodes already exist.

Passes are independent and each one only adds edges:
- base ordering (root, bootstrap, finalize)
- schema containment
- explicit ``requires`` positioning for custom SQL and functions
- argument/return type usage for functions
- input/output function usage for types
- support functions for Ord/Hash operator classes
- state/argument types and callbacks for aggregates

Any reference that must resolve and does not raises
UnresolvedReferenceError. Edges are never silently dropped.
"""

import logging
from typing import TYPE_CHECKING, List, Optional

from .entities import (
    BuiltinType,
    EnumEntity,
    ExtensionRoot,
    SchemaEntity,
    SqlGraphEntity,
    TypeEntity,
)
from .errors import SqlGraphError, UnresolvedReferenceError
from .models import (
    PositioningRef,
    SqlDeclaredKind,
    SqlGraphRelationship,
    TypeReference,
    join_path,
    split_path,
)

if TYPE_CHECKING:
    from .sql_graph import SqlEntityGraph

logger = logging.getLogger(__name__)

TYPE_DECLARATIONS = (SqlDeclaredKind.TYPE, SqlDeclaredKind.ENUM)


class EdgeConnector:
    """
    Adds ordering edges to a SqlEntityGraph.

    Used by SqlGraphBuilder once every node exists and the type mapping
    table is complete:

        EdgeConnector(sql_graph).connect()
    """

    def __init__(self, sql_graph: "SqlEntityGraph"):
        self._sql_graph = sql_graph
        self._graph = sql_graph.graph

    def connect(self):
        self.connect_base_edges()
        self.connect_schemas()
        self.connect_extension_sqls()
        self.connect_externs()
        self.connect_types()
        self.connect_ords()
        self.connect_hashes()
        self.connect_aggregates()
        self.connect_inlined_functions()

    def _add_edge(
        self,
        source: int,
        target: int,
        relationship: SqlGraphRelationship = SqlGraphRelationship.REQUIRED_BY,
    ):
        if self._graph.add_edge(source, target, relationship):
            logger.debug(
                "Adding %s edge: %s -> %s",
                relationship.value,
                self._graph[source].dot_identifier(),
                self._graph[target].dot_identifier(),
            )

    # ------------------------------------------------------------------
    # Base ordering and containment
    # ------------------------------------------------------------------

    def connect_base_edges(self):
        """Root, then bootstrap, before everything; everything before finalize."""
        sql_graph = self._sql_graph
        for index in self._graph:
            entity = self._graph[index]
            if isinstance(entity, (ExtensionRoot, BuiltinType)):
                continue
            self._add_edge(sql_graph.root, index)
            if sql_graph.bootstrap is not None and sql_graph.bootstrap != index:
                self._add_edge(sql_graph.bootstrap, index)
            if sql_graph.finalize is not None and sql_graph.finalize != index:
                self._add_edge(index, sql_graph.finalize)

    def connect_schemas(self):
        """Schema -> entity when the module paths are identical. Bootstrap SQL is exempt."""
        for index in self._graph:
            entity = self._graph[index]
            if isinstance(entity, (ExtensionRoot, BuiltinType, SchemaEntity)):
                continue
            if index == self._sql_graph.bootstrap:
                continue
            schema_index = self.find_schema(entity.module_path)
            if schema_index is not None:
                self._add_edge(schema_index, index)

    def find_schema(self, module_path: str) -> Optional[int]:
        for schema, index in self._sql_graph.schemas.items():
            if schema.module_path == module_path:
                return index
        return None

    # ------------------------------------------------------------------
    # Explicit positioning
    # ------------------------------------------------------------------

    def find_positioning_ref_target(self, ref: PositioningRef) -> Optional[int]:
        """
        Best-effort lookup of a ``requires`` reference.

        A name reference matches a custom SQL block's ``name``. A path
        reference is split into a module part and a last segment, then
        matched against types, enums, functions (by unaliased name) and
        finally schemas by module-path suffix. First match wins, so a
        short path can match an unintended entity in another module.
        """
        sql_graph = self._sql_graph
        if ref.by_name:
            for item, index in sql_graph.extension_sqls.items():
                if item.name == ref.value:
                    return index
            return None

        module_path, last_segment = split_path(ref.value)
        for ty, index in sql_graph.types.items():
            if ty.name == last_segment and ty.module_path.endswith(module_path):
                return index
        for en, index in sql_graph.enums.items():
            if en.name == last_segment and en.module_path.endswith(module_path):
                return index
        for item, index in sql_graph.externs.items():
            if item.source_name == last_segment and item.module_path.endswith(module_path):
                return index
        for schema, index in sql_graph.schemas.items():
            if schema.module_path.endswith(ref.value):
                return index
        return None

    def _positioning_candidates(self) -> List[str]:
        sql_graph = self._sql_graph
        candidates = [item.name for item in sql_graph.extension_sqls]
        candidates.extend(ty.full_path for ty in sql_graph.types)
        candidates.extend(en.full_path for en in sql_graph.enums)
        candidates.extend(item.full_path for item in sql_graph.externs)
        candidates.extend(schema.module_path for schema in sql_graph.schemas)
        return candidates

    def _connect_requires(self, entity: SqlGraphEntity, index: int, requires):
        for ref in requires:
            target = self.find_positioning_ref_target(ref)
            if target is None:
                raise UnresolvedReferenceError(
                    str(ref),
                    requester=entity.source_identifier(),
                    location=entity.location,
                    what="positioning reference",
                    candidates=self._positioning_candidates(),
                )
            self._add_edge(target, index)

    def connect_extension_sqls(self):
        for item, index in self._sql_graph.extension_sqls.items():
            self._connect_requires(item, index, item.requires)

    # ------------------------------------------------------------------
    # Type usage
    # ------------------------------------------------------------------

    def _connect_type_reference(
        self,
        entity: SqlGraphEntity,
        index: int,
        reference: TypeReference,
        relationship: SqlGraphRelationship,
    ):
        sql_graph = self._sql_graph
        found = False

        type_index = sql_graph.find_type_node(reference)
        if type_index is not None:
            self._add_edge(type_index, index, relationship)
            found = True

        owner = self._graph[type_index] if type_index is not None else None
        if not isinstance(owner, (TypeEntity, EnumEntity)):
            for identifier in (reference.type_name, reference.type_id):
                declared_index = sql_graph.has_sql_declared_entity(identifier, TYPE_DECLARATIONS)
                if declared_index is not None:
                    self._add_edge(declared_index, index)
                    found = True
                    break

        if not found:
            raise UnresolvedReferenceError(
                reference.type_name,
                requester=entity.source_identifier(),
                location=entity.location,
                what="type",
            )

        # Fail at build time rather than render time if no SQL spelling exists
        sql_graph.sql_type_for(reference, entity)

    def connect_externs(self):
        for item, index in self._sql_graph.externs.items():
            self._connect_requires(item, index, item.requires)
            for reference, is_return in item.type_references():
                relationship = (
                    SqlGraphRelationship.REQUIRED_BY_RETURN
                    if is_return
                    else SqlGraphRelationship.REQUIRED_BY_ARG
                )
                self._connect_type_reference(item, index, reference, relationship)
            if item.operator is not None and len(item.args) != 2:
                raise SqlGraphError(
                    f"Operator `{item.operator.opname}` on `{item.full_path}` ({item.location}) "
                    f"needs exactly two arguments, got {len(item.args)}"
                )

    def connect_types(self):
        """Type -> each conversion function, which must exist."""
        sql_graph = self._sql_graph
        for ty, index in sql_graph.types.items():
            for role, path in ty.io_function_paths():
                fn_index = sql_graph.find_extern(path)
                if fn_index is None:
                    raise UnresolvedReferenceError(
                        path,
                        requester=ty.source_identifier(),
                        location=ty.location,
                        what=f"{role.lower()} function",
                        candidates=[item.full_path for item in sql_graph.externs],
                    )
                self._add_edge(index, fn_index)

    def connect_inlined_functions(self):
        """
        Whatever precedes a type's conversion function also precedes the type.

        The functions render inside the type's own fragment, so anything
        they depend on must be emitted before the type.
        """
        for ty, index in self._sql_graph.types.items():
            for _role, path in ty.io_function_paths():
                fn_index = self._sql_graph.find_extern(path)
                for pred in self._graph.predecessors(fn_index):
                    if pred != index:
                        self._add_edge(pred, index)

    # ------------------------------------------------------------------
    # Operator classes and aggregates
    # ------------------------------------------------------------------

    def _find_type_or_enum(self, type_id: str) -> Optional[int]:
        for ty, index in self._sql_graph.types.items():
            if ty.id_matches(type_id):
                return index
        for en, index in self._sql_graph.enums.items():
            if en.id_matches(type_id):
                return index
        return None

    def _connect_operator_class(self, entity, index: int):
        sql_graph = self._sql_graph
        type_index = self._find_type_or_enum(entity.type_id)
        if type_index is None:
            raise UnresolvedReferenceError(
                entity.type_id,
                requester=entity.source_identifier(),
                location=entity.location,
                what="type or enum",
            )
        self._add_edge(type_index, index)

        for suffix in entity.REQUIRED_SUFFIXES + entity.OPTIONAL_SUFFIXES:
            fn_name = entity.function_name(suffix)
            fn_index = sql_graph.find_extern_in_module(entity.module_path, fn_name)
            if fn_index is not None:
                self._add_edge(fn_index, index)
            elif suffix in entity.REQUIRED_SUFFIXES:
                raise UnresolvedReferenceError(
                    fn_name,
                    requester=entity.source_identifier(),
                    location=entity.location,
                    what="support function",
                    candidates=[item.name for item in sql_graph.externs],
                )

    def connect_ords(self):
        for item, index in self._sql_graph.ords.items():
            self._connect_operator_class(item, index)

    def connect_hashes(self):
        for item, index in self._sql_graph.hashes.items():
            self._connect_operator_class(item, index)

    def connect_aggregates(self):
        sql_graph = self._sql_graph
        for aggregate, index in sql_graph.aggregates.items():
            self._connect_type_reference(
                aggregate, index, aggregate.state, SqlGraphRelationship.REQUIRED_BY
            )
            for arg in list(aggregate.args) + list(aggregate.direct_args or ()):
                self._connect_type_reference(
                    aggregate, index, arg.type, SqlGraphRelationship.REQUIRED_BY_ARG
                )
            if aggregate.mstate is not None:
                self._connect_type_reference(
                    aggregate, index, aggregate.mstate, SqlGraphRelationship.REQUIRED_BY
                )

            for clause, fn_name in aggregate.callbacks():
                path = join_path(aggregate.module_path, fn_name)
                fn_index = sql_graph.find_extern(path)
                if fn_index is None:
                    raise UnresolvedReferenceError(
                        path,
                        requester=aggregate.source_identifier(),
                        location=aggregate.location,
                        what=f"{clause.upper()} function",
                        candidates=[item.full_path for item in sql_graph.externs],
                    )
                self._add_edge(fn_index, index)

            if aggregate.sortop is not None:
                for item, fn_index in sql_graph.externs.items():
                    if item.operator is not None and item.operator.opname == aggregate.sortop:
                        self._add_edge(fn_index, index)


__all__ = ["EdgeConnector"]
