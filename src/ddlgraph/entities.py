"""
SQL graph entities.

Each entity is a frozen dataclass describing one database-visible object
discovered in extension source. The set of entity classes is closed:

- ExtensionRoot: extension-level control metadata, the graph root
- SchemaEntity: a namespace
- CustomSqlEntity: hand-written SQL with positioning metadata
- FunctionEntity: an extern function, optionally declaring an operator
- TypeEntity: a varlena type with input/output conversion functions
- EnumEntity: an enum type
- OrdEntity / HashEntity: btree and hash operator classes
- AggregateEntity: a user-defined aggregate
- BuiltinType: placeholder for a type that needs no CREATE statement

Entities reference each other by identity (module paths, type ids),
never by object. All of them are hashable and carry a content-based
sort key so graph construction is independent of input order.
"""

from dataclasses import dataclass
from typing import ClassVar, List, Optional, Tuple, Union

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
    SqlDeclared,
    SqlDeclaredKind,
    TypeReference,
    join_path,
)


class SqlGraphEntityMixin:
    """Identity helpers shared by every entity class."""

    kind: ClassVar[EntityKind]
    name: str
    module_path: str
    file: str
    line: int

    @property
    def full_path(self) -> str:
        return join_path(self.module_path, self.name)

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}"

    def source_identifier(self) -> str:
        """Fully-qualified source name, used in comments and errors."""
        return self.full_path

    def dot_identifier(self) -> str:
        """Label used for the node in a Graphviz rendering."""
        return f"{self.kind.value} {self.full_path}"

    def sort_key(self) -> Tuple:
        return (self.module_path, self.name, self.file, self.line)


@dataclass(frozen=True)
class ExtensionRoot(SqlGraphEntityMixin):
    """Extension control metadata; ``schema`` is the default schema."""

    kind: ClassVar[EntityKind] = EntityKind.ROOT

    name: str
    schema: Optional[str] = None
    relocatable: bool = False
    comment: Optional[str] = None
    default_version: Optional[str] = None
    module_pathname: str = "MODULE_PATHNAME"
    superuser: Optional[bool] = None
    module_path: str = ""
    file: str = ""
    line: int = 0

    def dot_identifier(self) -> str:
        return "root"


@dataclass(frozen=True)
class SchemaEntity(SqlGraphEntityMixin):
    """A schema; entities whose module path equals ``module_path`` live in it."""

    kind: ClassVar[EntityKind] = EntityKind.SCHEMA

    name: str
    module_path: str
    file: str = ""
    line: int = 0

    def source_identifier(self) -> str:
        return self.module_path


@dataclass(frozen=True)
class CustomSqlEntity(SqlGraphEntityMixin):
    """
    Hand-written SQL.

    ``name`` is the logical name other blocks use in name references.
    At most one block per build may be ``bootstrap`` and one ``finalize``.
    """

    kind: ClassVar[EntityKind] = EntityKind.CUSTOM_SQL

    module_path: str
    name: str
    sql: str
    file: str = ""
    line: int = 0
    requires: Tuple[PositioningRef, ...] = ()
    creates: Tuple[SqlDeclared, ...] = ()
    bootstrap: bool = False
    finalize: bool = False

    def declares(
        self, identifier: str, kinds: Tuple[SqlDeclaredKind, ...] = ()
    ) -> Optional[SqlDeclared]:
        for declared in self.creates:
            if declared.matches(identifier, kinds):
                return declared
        return None

    def dot_identifier(self) -> str:
        return f"sql {self.name}"


@dataclass(frozen=True)
class FunctionEntity(SqlGraphEntityMixin):
    """
    An extern function.

    ``name`` is the SQL-visible name; ``unaliased_name`` is the source
    name when the function was renamed for SQL. The C symbol is always
    ``<unaliased>_wrapper``.
    """

    kind: ClassVar[EntityKind] = EntityKind.FUNCTION

    name: str
    module_path: str
    file: str = ""
    line: int = 0
    args: Tuple[FunctionArgument, ...] = ()
    returns: FunctionReturn = FunctionReturn()
    attributes: Tuple[ExternAttribute, ...] = ()
    requires: Tuple[PositioningRef, ...] = ()
    unaliased_name: Optional[str] = None
    schema: Optional[str] = None
    search_path: Optional[Tuple[str, ...]] = None
    cost: Optional[str] = None
    operator: Optional[OperatorOptions] = None

    @property
    def source_name(self) -> str:
        return self.unaliased_name or self.name

    @property
    def full_path(self) -> str:
        return join_path(self.module_path, self.source_name)

    def dot_identifier(self) -> str:
        return f"fn {self.full_path}"

    def type_references(self) -> List[Tuple[TypeReference, bool]]:
        """Every (type, is_return) used in the signature, arguments first."""
        refs = [(arg.type, False) for arg in self.args]
        refs.extend((ref, True) for ref in self.returns.type_references())
        return refs


class _MappedTypeMixin(SqlGraphEntityMixin):
    type_id: str
    extra_ids: Tuple[str, ...]
    array_ids: Tuple[str, ...]

    def id_matches(self, type_id: str) -> bool:
        return type_id == self.type_id or type_id in self.extra_ids or type_id in self.array_ids

    def mappings(self) -> List[Tuple[str, str]]:
        """(type identity, SQL type) pairs this type contributes to the mapping table."""
        pairs = [(self.type_id, self.name)]
        pairs.extend((extra, self.name) for extra in self.extra_ids)
        pairs.extend((array, f"{self.name}[]") for array in self.array_ids)
        return pairs


@dataclass(frozen=True)
class TypeEntity(_MappedTypeMixin):
    """
    A user-defined base type.

    The input/output functions (and optional send/receive functions) are
    FunctionEntity objects in their own right; they are located by path,
    defaulting to this type's module path.
    """

    kind: ClassVar[EntityKind] = EntityKind.TYPE

    name: str
    module_path: str
    type_id: str
    in_fn: str
    out_fn: str
    file: str = ""
    line: int = 0
    in_fn_module_path: Optional[str] = None
    out_fn_module_path: Optional[str] = None
    send_fn: Optional[str] = None
    send_fn_module_path: Optional[str] = None
    receive_fn: Optional[str] = None
    receive_fn_module_path: Optional[str] = None
    extra_ids: Tuple[str, ...] = ()
    array_ids: Tuple[str, ...] = ()

    @property
    def in_fn_path(self) -> str:
        return join_path(self.in_fn_module_path or self.module_path, self.in_fn)

    @property
    def out_fn_path(self) -> str:
        return join_path(self.out_fn_module_path or self.module_path, self.out_fn)

    @property
    def send_fn_path(self) -> Optional[str]:
        if self.send_fn is None:
            return None
        return join_path(self.send_fn_module_path or self.module_path, self.send_fn)

    @property
    def receive_fn_path(self) -> Optional[str]:
        if self.receive_fn is None:
            return None
        return join_path(self.receive_fn_module_path or self.module_path, self.receive_fn)

    def io_function_paths(self) -> List[Tuple[str, str]]:
        """(role, path) for every conversion function, in emission order."""
        paths = [("INPUT", self.in_fn_path), ("OUTPUT", self.out_fn_path)]
        if self.receive_fn_path:
            paths.append(("RECEIVE", self.receive_fn_path))
        if self.send_fn_path:
            paths.append(("SEND", self.send_fn_path))
        return paths

    def dot_identifier(self) -> str:
        return f"type {self.full_path}"


@dataclass(frozen=True)
class EnumEntity(_MappedTypeMixin):
    kind: ClassVar[EntityKind] = EntityKind.ENUM

    name: str
    module_path: str
    type_id: str
    variants: Tuple[str, ...] = ()
    file: str = ""
    line: int = 0
    extra_ids: Tuple[str, ...] = ()
    array_ids: Tuple[str, ...] = ()

    def dot_identifier(self) -> str:
        return f"enum {self.full_path}"


class _OperatorClassMixin(SqlGraphEntityMixin):
    type_id: str

    def function_name(self, suffix: str) -> str:
        """Conventional support function name, e.g. ``dog_cmp``."""
        return f"{self.name.lower()}_{suffix}"


@dataclass(frozen=True)
class OrdEntity(_OperatorClassMixin):
    """A btree operator class over a type or enum."""

    kind: ClassVar[EntityKind] = EntityKind.ORD

    REQUIRED_SUFFIXES: ClassVar[Tuple[str, ...]] = ("cmp",)
    OPTIONAL_SUFFIXES: ClassVar[Tuple[str, ...]] = ("lt", "le", "eq", "gt", "ge")

    name: str
    module_path: str
    type_id: str
    file: str = ""
    line: int = 0

    def dot_identifier(self) -> str:
        return f"ord {self.full_path}"


@dataclass(frozen=True)
class HashEntity(_OperatorClassMixin):
    """A hash operator class over a type or enum."""

    kind: ClassVar[EntityKind] = EntityKind.HASH

    REQUIRED_SUFFIXES: ClassVar[Tuple[str, ...]] = ("hash",)
    OPTIONAL_SUFFIXES: ClassVar[Tuple[str, ...]] = ("eq",)

    name: str
    module_path: str
    type_id: str
    file: str = ""
    line: int = 0

    def dot_identifier(self) -> str:
        return f"hash {self.full_path}"


@dataclass(frozen=True)
class AggregateEntity(SqlGraphEntityMixin):
    """
    A user-defined aggregate.

    Callback fields hold function names resolved relative to the
    aggregate's module path. ``initcond``/``minitcond`` are literals and
    ``sortop`` names an operator, so none of those three are functions.
    """

    kind: ClassVar[EntityKind] = EntityKind.AGGREGATE

    FUNCTION_CALLBACKS: ClassVar[Tuple[str, ...]] = (
        "sfunc",
        "finalfunc",
        "combinefunc",
        "serialfunc",
        "deserialfunc",
        "msfunc",
        "minvfunc",
        "mfinalfunc",
    )

    name: str
    module_path: str
    state: TypeReference
    sfunc: str
    file: str = ""
    line: int = 0
    args: Tuple[AggregateArgument, ...] = ()
    direct_args: Optional[Tuple[AggregateArgument, ...]] = None
    mstate: Optional[TypeReference] = None
    finalfunc: Optional[str] = None
    finalfunc_modify: Optional[FinalizeModify] = None
    combinefunc: Optional[str] = None
    serialfunc: Optional[str] = None
    deserialfunc: Optional[str] = None
    initcond: Optional[str] = None
    msfunc: Optional[str] = None
    minvfunc: Optional[str] = None
    mfinalfunc: Optional[str] = None
    mfinalfunc_modify: Optional[FinalizeModify] = None
    minitcond: Optional[str] = None
    sortop: Optional[str] = None
    parallel: Optional[ParallelOption] = None
    hypothetical: bool = False

    def callbacks(self) -> List[Tuple[str, str]]:
        """(clause, function name) for every callback that is set."""
        return [
            (clause, getattr(self, clause))
            for clause in self.FUNCTION_CALLBACKS
            if getattr(self, clause) is not None
        ]

    def type_references(self) -> List[TypeReference]:
        refs = [self.state]
        refs.extend(arg.type for arg in self.args)
        refs.extend(arg.type for arg in self.direct_args or ())
        if self.mstate is not None:
            refs.append(self.mstate)
        return refs

    def dot_identifier(self) -> str:
        return f"aggregate {self.full_path}"


@dataclass(frozen=True)
class BuiltinType(SqlGraphEntityMixin):
    """A type that exists without a CREATE statement, keyed by its literal text."""

    kind: ClassVar[EntityKind] = EntityKind.BUILTIN_TYPE

    type_name: str
    module_path: str = ""
    file: str = ""
    line: int = 0

    @property
    def name(self) -> str:  # type: ignore[override]
        return self.type_name

    def dot_identifier(self) -> str:
        return self.type_name


SqlGraphEntity = Union[
    ExtensionRoot,
    SchemaEntity,
    CustomSqlEntity,
    FunctionEntity,
    TypeEntity,
    EnumEntity,
    OrdEntity,
    HashEntity,
    AggregateEntity,
    BuiltinType,
]


def entity_sort_key(entity: SqlGraphEntity) -> Tuple:
    """Total, content-based order used before any graph node is created."""
    return (entity.kind.rank, entity.sort_key(), repr(entity))


__all__ = [
    "SqlGraphEntity",
    "SqlGraphEntityMixin",
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
    "entity_sort_key",
]
