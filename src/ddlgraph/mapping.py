"""
Type mapping table.

Maps a source type identity to the literal SQL type that should appear in
rendered DDL. The table is seeded with caller-supplied base mappings,
grows as Type/Enum entities are registered during the build, and is then
threaded explicitly into rendering. There is no module-level registry.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import ConfigurationConflictError
from .models import SqlDeclaredKind, TypeReference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TypeMapping:
    """Identity based mapping: ``type_id`` renders as ``sql``."""

    type_id: str
    sql: str
    type_name: Optional[str] = None


@dataclass(frozen=True)
class SourceOnlyMapping:
    """Fallback mapping keyed by the literal source spelling of a type."""

    source: str
    sql: str


class TypeMappingTable:
    """
    Registry of type identity -> SQL type.

    Lookups follow a fixed order:
    1. the reference's explicit ``sql_type``
    2. source-only mappings keyed by literal spelling
    3. identity mappings (base table plus registered types)
    4. types or enums declared by custom SQL ``creates`` lists

    Example:
        table = TypeMappingTable([TypeMapping("i32", "integer")])
        table.register("ext::Dog", "Dog", owner="ext::Dog")
        table.sql_for(TypeReference("ext::Dog", "ext::Dog"))  # "Dog"
    """

    def __init__(
        self,
        mappings: Iterable[TypeMapping] = (),
        source_mappings: Iterable[SourceOnlyMapping] = (),
    ):
        self._by_id: Dict[str, str] = {}
        self._owners: Dict[str, str] = {}
        self._by_source: Dict[str, str] = {}
        self._declared: Dict[str, str] = {}

        for mapping in mappings:
            self.register(mapping.type_id, mapping.sql, owner=mapping.type_name or mapping.type_id)
        for source_mapping in source_mappings:
            self._by_source[source_mapping.source] = source_mapping.sql

    def register(self, type_id: str, sql: str, owner: Optional[str] = None):
        """
        Register a type identity.

        Raises:
            ConfigurationConflictError: if ``type_id`` is already mapped
        """
        owner = owner or type_id
        if type_id in self._by_id:
            raise ConfigurationConflictError(
                f"Cannot map `{type_id}` twice",
                first=owner,
                second=self._owners[type_id],
            )
        self._by_id[type_id] = sql
        self._owners[type_id] = owner
        logger.debug("Mapped type %s -> %s", type_id, sql)

    def declare(self, identifier: str, sql: str, kind: SqlDeclaredKind):
        """Record a type created by hand-written SQL."""
        if kind in (SqlDeclaredKind.TYPE, SqlDeclaredKind.ENUM):
            self._declared[identifier] = sql

    def __contains__(self, type_id: str) -> bool:
        return type_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, type_id: str) -> Optional[str]:
        return self._by_id.get(type_id)

    def sql_for(self, reference: TypeReference) -> Optional[str]:
        """Resolve the SQL text for a type reference, or None if unknown."""
        if reference.sql_type:
            return reference.sql_type
        if reference.type_name in self._by_source:
            return self._by_source[reference.type_name]
        if reference.type_id in self._by_id:
            return self._by_id[reference.type_id]
        if reference.type_name in self._declared:
            return self._declared[reference.type_name]
        return self._declared.get(reference.type_id)

    def known_names(self) -> List[str]:
        return sorted(set(self._by_id) | set(self._by_source) | set(self._declared))


__all__ = ["TypeMapping", "SourceOnlyMapping", "TypeMappingTable"]
