"""
Value types shared by the SQL entity model.

Contains the small, immutable building blocks that entities are made of:
- Entity kinds and edge relationships
- Positioning references (``requires``) and SQL-declared entities (``creates``)
- Function arguments, return shapes, extern attributes and operator options
- Aggregate callback option enums

Everything here is a frozen dataclass or an Enum so that entities built
from them are hashable and comparable by content.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

PATH_SEPARATOR = "::"


def split_path(path: str) -> Tuple[str, str]:
    """Split ``a::b::c`` into (``a::b``, ``c``). The module part may be empty."""
    segments = path.split(PATH_SEPARATOR)
    return PATH_SEPARATOR.join(segments[:-1]), segments[-1]


def join_path(module_path: str, name: str) -> str:
    if not module_path:
        return name
    return f"{module_path}{PATH_SEPARATOR}{name}"


# ============================================================================
# Graph vocabulary
# ============================================================================


class EntityKind(Enum):
    """Kind of entity, declared in global sort order."""

    ROOT = "root"
    SCHEMA = "schema"
    CUSTOM_SQL = "custom_sql"
    FUNCTION = "function"
    TYPE = "type"
    BUILTIN_TYPE = "builtin_type"
    ENUM = "enum"
    ORD = "ord"
    HASH = "hash"
    AGGREGATE = "aggregate"

    @property
    def rank(self) -> int:
        return list(EntityKind).index(self)


class SqlGraphRelationship(Enum):
    """Why one node must be emitted before another."""

    REQUIRED_BY = "required_by"
    REQUIRED_BY_ARG = "required_by_arg"
    REQUIRED_BY_RETURN = "required_by_return"


# ============================================================================
# Cross references
# ============================================================================


@dataclass(frozen=True, order=True)
class PositioningRef:
    """
    An explicit "emit after" reference.

    A path reference (``by_name=False``) is matched heuristically against
    types, enums, functions and schemas. A name reference matches the
    logical ``name`` of another custom SQL block.
    """

    value: str
    by_name: bool = False

    @classmethod
    def path(cls, value: str) -> "PositioningRef":
        return cls(value=value, by_name=False)

    @classmethod
    def name(cls, value: str) -> "PositioningRef":
        return cls(value=value, by_name=True)

    def __str__(self) -> str:
        if self.by_name:
            return f'"{self.value}"'
        return self.value


class SqlDeclaredKind(Enum):
    TYPE = "Type"
    ENUM = "Enum"
    FUNCTION = "Function"


@dataclass(frozen=True)
class SqlDeclared:
    """An entity that a custom SQL block declares it creates."""

    kind: SqlDeclaredKind
    identifier: str

    @property
    def name(self) -> str:
        return split_path(self.identifier)[1]

    @property
    def sql(self) -> str:
        return self.name

    def matches(self, identifier: str, kinds: Tuple[SqlDeclaredKind, ...] = ()) -> bool:
        if kinds and self.kind not in kinds:
            return False
        return self.identifier == identifier

    def __str__(self) -> str:
        return f"{self.kind.value}({self.identifier})"


# ============================================================================
# Functions
# ============================================================================


@dataclass(frozen=True)
class TypeReference:
    """
    A use of a type in a signature.

    ``type_id`` is the stable identity used to find a Type/Enum entity;
    ``type_name`` is the literal source spelling, which also keys
    BuiltinType nodes. ``sql_type`` overrides the mapping table when set.
    """

    type_id: str
    type_name: str
    sql_type: Optional[str] = None


@dataclass(frozen=True)
class FunctionArgument:
    """One positional argument of a function."""

    pattern: str
    type: TypeReference
    default: Optional[str] = None
    optional: bool = False
    variadic: bool = False


@dataclass(frozen=True)
class TableColumn:
    name: str
    type: TypeReference


class ReturnKind(Enum):
    NONE = "none"
    TYPE = "type"
    SETOF = "setof"
    TABLE = "table"
    TRIGGER = "trigger"


@dataclass(frozen=True)
class FunctionReturn:
    """Return shape of a function. Only the fields its ``kind`` needs are set."""

    kind: ReturnKind = ReturnKind.NONE
    type: Optional[TypeReference] = None
    columns: Tuple[TableColumn, ...] = ()

    @classmethod
    def void(cls) -> "FunctionReturn":
        return cls(ReturnKind.NONE)

    @classmethod
    def scalar(cls, type: TypeReference) -> "FunctionReturn":
        return cls(ReturnKind.TYPE, type=type)

    @classmethod
    def setof(cls, type: TypeReference) -> "FunctionReturn":
        return cls(ReturnKind.SETOF, type=type)

    @classmethod
    def table(cls, *columns: TableColumn) -> "FunctionReturn":
        return cls(ReturnKind.TABLE, columns=tuple(columns))

    @classmethod
    def trigger(cls) -> "FunctionReturn":
        return cls(ReturnKind.TRIGGER)

    def type_references(self) -> Tuple[TypeReference, ...]:
        if self.kind in (ReturnKind.TYPE, ReturnKind.SETOF) and self.type is not None:
            return (self.type,)
        if self.kind == ReturnKind.TABLE:
            return tuple(column.type for column in self.columns)
        return ()


class ExternAttribute(Enum):
    """Attributes rendered on the function line, in the order declared."""

    CREATE_OR_REPLACE = "create_or_replace"
    IMMUTABLE = "immutable"
    STABLE = "stable"
    VOLATILE = "volatile"
    STRICT = "strict"
    SECURITY_DEFINER = "security_definer"
    SECURITY_INVOKER = "security_invoker"
    PARALLEL_SAFE = "parallel_safe"
    PARALLEL_UNSAFE = "parallel_unsafe"
    PARALLEL_RESTRICTED = "parallel_restricted"

    @property
    def sql(self) -> str:
        return self.value.replace("_", " ").upper()


@dataclass(frozen=True)
class OperatorOptions:
    """A SQL operator declared on top of a two-argument function."""

    opname: str
    commutator: Optional[str] = None
    negator: Optional[str] = None
    restrict: Optional[str] = None
    join: Optional[str] = None
    hashes: bool = False
    merges: bool = False


# ============================================================================
# Aggregates
# ============================================================================


class ParallelOption(Enum):
    SAFE = "SAFE"
    RESTRICTED = "RESTRICTED"
    UNSAFE = "UNSAFE"


class FinalizeModify(Enum):
    READ_ONLY = "READ_ONLY"
    SHAREABLE = "SHAREABLE"
    READ_WRITE = "READ_WRITE"


@dataclass(frozen=True)
class AggregateArgument:
    """An aggregate input (or direct) argument; ``name`` is optional in SQL."""

    type: TypeReference
    name: Optional[str] = None
    variadic: bool = False


__all__ = [
    "PATH_SEPARATOR",
    "split_path",
    "join_path",
    "EntityKind",
    "SqlGraphRelationship",
    "PositioningRef",
    "SqlDeclaredKind",
    "SqlDeclared",
    "TypeReference",
    "FunctionArgument",
    "TableColumn",
    "ReturnKind",
    "FunctionReturn",
    "ExternAttribute",
    "OperatorOptions",
    "ParallelOption",
    "FinalizeModify",
    "AggregateArgument",
]
