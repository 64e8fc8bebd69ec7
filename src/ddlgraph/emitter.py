"""
Topological SQL emitter.

Sorts a finished SqlEntityGraph and asks each node's renderer for its SQL
fragment. Renderers are plain functions registered per EntityKind in
``RENDERERS``; each receives the whole graph so it can look up the
schema of anything it references by name.

Identifier and string literal quoting goes through sqlglot's PostgreSQL
generator.
"""

import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Tuple

from sqlglot import exp

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
from .errors import SqlGraphError, UnresolvedReferenceError
from .models import EntityKind, ExternAttribute, ReturnKind, TypeReference, join_path
from .sql_graph import IMPLICIT_SCHEMAS

if TYPE_CHECKING:
    from .sql_graph import SqlEntityGraph

logger = logging.getLogger(__name__)

DIALECT = "postgres"

Renderer = Callable[["SqlEntityGraph", int, SqlGraphEntity], str]


def quote_identifier(name: str) -> str:
    return exp.to_identifier(name, quoted=True).sql(dialect=DIALECT)


def quote_literal(value: str) -> str:
    return exp.Literal.string(value).sql(dialect=DIALECT)


def location_header(entity: SqlGraphEntity, identifier: Optional[str] = None) -> str:
    """The two traceability comment lines every statement starts with."""
    return f"-- {entity.location}\n-- {identifier or entity.source_identifier()}\n"


def render_list(items: Sequence[Tuple[str, Optional[str]]]) -> str:
    """
    Tab-indented, comma-separated lines with optional trailing comments.

    ``[("a int", "i32"), ("b int", None)]`` renders as::

        \ta int, /* i32 */
        \tb int
    """
    lines = []
    for position, (text, comment) in enumerate(items):
        line = f"\t{text}"
        if position < len(items) - 1:
            line += ","
        if comment:
            line += f" /* {comment} */"
        lines.append(line)
    return "\n".join(lines)


def _type_sql(
    sql_graph: "SqlEntityGraph", entity: SqlGraphEntity, reference: TypeReference
) -> str:
    """Schema-qualified SQL type text for a reference used by ``entity``."""
    type_index = sql_graph.find_type_node(reference)
    if type_index is None:
        raise UnresolvedReferenceError(
            reference.type_name,
            requester=entity.source_identifier(),
            location=entity.location,
            what="type",
        )
    prefix = ""
    if not isinstance(sql_graph[type_index], BuiltinType):
        prefix = sql_graph.schema_prefix_for(type_index)
    return f"{prefix}{sql_graph.sql_type_for(reference, entity)}"


def _function_ref(sql_graph: "SqlEntityGraph", index: int) -> str:
    """``schema."name"`` for the function at ``index``."""
    item = sql_graph[index]
    return f"{sql_graph.function_prefix(index)}{quote_identifier(item.name)}"


# ============================================================================
# Renderers
# ============================================================================


def render_root(sql_graph: "SqlEntityGraph", index: int, control: ExtensionRoot) -> str:
    lines = [f" * {control.name}"]
    if control.default_version:
        lines[0] += f" {control.default_version}"
    if control.comment:
        lines.append(f" * {control.comment}")
    lines.append(" *")
    lines.append(" * Generated by ddlgraph. Statements are ordered by dependency.")
    return "/*\n" + "\n".join(lines) + "\n */"


def render_schema(sql_graph: "SqlEntityGraph", index: int, schema: SchemaEntity) -> str:
    if schema.name in IMPLICIT_SCHEMAS:
        return ""
    return (
        location_header(schema)
        + f"CREATE SCHEMA IF NOT EXISTS {schema.name}; /* {schema.module_path} */"
    )


def render_custom_sql(sql_graph: "SqlEntityGraph", index: int, item: CustomSqlEntity) -> str:
    parts = [location_header(item, item.full_path)]
    if item.bootstrap:
        parts.append("-- bootstrap\n")
    if item.creates:
        parts.append("-- creates:\n")
        parts.extend(f"--   {declared}\n" for declared in item.creates)
    if item.requires:
        parts.append("-- requires:\n")
        parts.extend(f"--   {ref}\n" for ref in item.requires)
    if item.finalize:
        parts.append("-- finalize\n")
    parts.append(item.sql.strip("\n"))
    return "".join(parts)


def owning_type(sql_graph: "SqlEntityGraph", index: int) -> Optional[int]:
    """Index of the Type whose conversion function this is, if any."""
    item = sql_graph[index]
    for neighbor in sql_graph.graph.neighbors_undirected(index):
        ty = sql_graph[neighbor]
        if isinstance(ty, TypeEntity) and any(
            path == item.full_path for _role, path in ty.io_function_paths()
        ):
            return neighbor
    return None


def render_function(sql_graph: "SqlEntityGraph", index: int, item: FunctionEntity) -> str:
    # Conversion functions are emitted inside their type's rendering
    if owning_type(sql_graph, index) is not None:
        return ""
    return render_function_definition(sql_graph, index, item)


def _render_returns(sql_graph: "SqlEntityGraph", item: FunctionEntity) -> str:
    returns = item.returns
    if returns.kind == ReturnKind.NONE:
        return "RETURNS void"
    if returns.kind == ReturnKind.TRIGGER:
        return "RETURNS trigger"
    if returns.kind == ReturnKind.TABLE:
        columns = [
            (
                f"{quote_identifier(column.name)} {_type_sql(sql_graph, item, column.type)}",
                column.type.type_name,
            )
            for column in returns.columns
        ]
        return "RETURNS TABLE (\n" + render_list(columns) + "\n)"

    setof = "SETOF " if returns.kind == ReturnKind.SETOF else ""
    sql_type = _type_sql(sql_graph, item, returns.type)
    return f"RETURNS {setof}{sql_type} /* {returns.type.type_name} */"


def render_function_definition(
    sql_graph: "SqlEntityGraph", index: int, item: FunctionEntity
) -> str:
    """Full CREATE FUNCTION (and CREATE OPERATOR) text for one function."""
    attributes = list(item.attributes)
    # STRICT is implied unless some argument may be NULL
    if ExternAttribute.STRICT not in attributes and not any(arg.optional for arg in item.args):
        attributes.append(ExternAttribute.STRICT)

    create = "CREATE FUNCTION"
    if ExternAttribute.CREATE_OR_REPLACE in attributes:
        create = "CREATE OR REPLACE FUNCTION"

    arguments = ""
    if item.args:
        rendered = []
        for arg in item.args:
            text = quote_identifier(arg.pattern) + " "
            if arg.variadic:
                text += "VARIADIC "
            text += _type_sql(sql_graph, item, arg.type)
            if arg.default is not None:
                text += f" DEFAULT {arg.default}"
            rendered.append((text, arg.type.type_name))
        arguments = "\n" + render_list(rendered) + "\n"

    parts = [location_header(item)]
    if item.requires:
        parts.append("-- requires:\n")
        parts.extend(f"--   {ref}\n" for ref in item.requires)
    parts.append(
        f"{create} {_function_ref(sql_graph, index)}({arguments}) "
        f"{_render_returns(sql_graph, item)}\n"
    )

    attribute_sql = [attr.sql for attr in attributes if attr != ExternAttribute.CREATE_OR_REPLACE]
    if attribute_sql:
        parts.append(" ".join(attribute_sql) + "\n")
    if item.cost is not None:
        parts.append(f"COST {item.cost}\n")
    if item.search_path:
        parts.append(f"SET search_path TO {', '.join(item.search_path)}\n")
    parts.append("LANGUAGE c\n")
    parts.append(
        f"AS {quote_literal(sql_graph.control.module_pathname)}, "
        f"{quote_literal(item.source_name + '_wrapper')};"
    )

    sql = "".join(parts)
    if item.operator is not None:
        sql += "\n\n" + render_operator(sql_graph, index, item)
    return sql


def render_operator(sql_graph: "SqlEntityGraph", index: int, item: FunctionEntity) -> str:
    op = item.operator
    if op is None or len(item.args) != 2:
        raise SqlGraphError(f"`{item.full_path}` does not declare a binary operator")

    left, right = item.args
    options: List[Tuple[str, Optional[str]]] = [
        (f"PROCEDURE = {_function_ref(sql_graph, index)}", None),
        (f"LEFTARG = {_type_sql(sql_graph, item, left.type)}", left.type.type_name),
        (f"RIGHTARG = {_type_sql(sql_graph, item, right.type)}", right.type.type_name),
    ]
    if op.commutator:
        options.append((f"COMMUTATOR = {op.commutator}", None))
    if op.negator:
        options.append((f"NEGATOR = {op.negator}", None))
    if op.restrict:
        options.append((f"RESTRICT = {op.restrict}", None))
    if op.join:
        options.append((f"JOIN = {op.join}", None))
    if op.hashes:
        options.append(("HASHES", None))
    if op.merges:
        options.append(("MERGES", None))

    return (
        location_header(item)
        + f"CREATE OPERATOR {sql_graph.function_prefix(index)}{op.opname} (\n"
        + render_list(options)
        + "\n);"
    )


def render_type(sql_graph: "SqlEntityGraph", index: int, ty: TypeEntity) -> str:
    """
    Shell type, conversion functions, then the complete type.

    This sub-order is fixed: the shell lets the functions mention the
    type, and the full definition needs the functions to exist.
    """
    prefix = sql_graph.schema_prefix_for(index)
    header = location_header(ty)
    fragments = [f"{header}CREATE TYPE {prefix}{ty.name};"]

    options: List[Tuple[str, Optional[str]]] = [("INTERNALLENGTH = variable", None)]
    for role, path in ty.io_function_paths():
        fn_index = sql_graph.find_extern(path)
        if fn_index is None:
            raise UnresolvedReferenceError(
                path, requester=ty.source_identifier(), location=ty.location, what="function"
            )
        fn = sql_graph[fn_index]
        fragments.append(render_function_definition(sql_graph, fn_index, fn))
        options.append((f"{role} = {_function_ref(sql_graph, fn_index)}", path))
    options.append(("STORAGE = extended", None))

    fragments.append(f"{header}CREATE TYPE {prefix}{ty.name} (\n{render_list(options)}\n);")
    return "\n\n".join(fragments)


def render_enum(sql_graph: "SqlEntityGraph", index: int, en: EnumEntity) -> str:
    variants = render_list([(quote_literal(variant), None) for variant in en.variants])
    return (
        location_header(en)
        + f"CREATE TYPE {sql_graph.schema_prefix_for(index)}{en.name} AS ENUM (\n{variants}\n);"
    )


def _operator_class_target(sql_graph: "SqlEntityGraph", index: int, entity) -> str:
    for neighbor in sql_graph.graph.predecessors(index):
        target = sql_graph[neighbor]
        if isinstance(target, (TypeEntity, EnumEntity)) and target.id_matches(entity.type_id):
            return f"{sql_graph.schema_prefix_for(neighbor)}{target.name}"
    raise UnresolvedReferenceError(
        entity.type_id,
        requester=entity.source_identifier(),
        location=entity.location,
        what="type or enum",
    )


def _support_function(sql_graph: "SqlEntityGraph", entity, suffix: str) -> str:
    fn_name = entity.function_name(suffix)
    fn_index = sql_graph.find_extern_in_module(entity.module_path, fn_name)
    if fn_index is None:
        raise UnresolvedReferenceError(
            fn_name,
            requester=entity.source_identifier(),
            location=entity.location,
            what="support function",
        )
    return _function_ref(sql_graph, fn_index)


def render_ord(sql_graph: "SqlEntityGraph", index: int, item: OrdEntity) -> str:
    prefix = sql_graph.schema_prefix_for(index)
    target = _operator_class_target(sql_graph, index, item)
    family = f"{prefix}{item.name}_btree_ops"
    cmp_fn = _support_function(sql_graph, item, "cmp")
    operators = render_list(
        [
            ("OPERATOR 1 <", None),
            ("OPERATOR 2 <=", None),
            ("OPERATOR 3 =", None),
            ("OPERATOR 4 >=", None),
            ("OPERATOR 5 >", None),
            (f"FUNCTION 1 {cmp_fn}({target}, {target})", None),
        ]
    )
    return (
        location_header(item)
        + f"CREATE OPERATOR FAMILY {family} USING btree;\n"
        + f"CREATE OPERATOR CLASS {family} DEFAULT FOR TYPE {target}\n"
        + f"USING btree FAMILY {family} AS\n"
        + f"{operators};"
    )


def render_hash(sql_graph: "SqlEntityGraph", index: int, item: HashEntity) -> str:
    prefix = sql_graph.schema_prefix_for(index)
    target = _operator_class_target(sql_graph, index, item)
    family = f"{prefix}{item.name}_hash_ops"
    hash_fn = _support_function(sql_graph, item, "hash")
    operators = render_list(
        [
            (f"OPERATOR 1 = ({target}, {target})", None),
            (f"FUNCTION 1 {hash_fn}({target})", None),
        ]
    )
    return (
        location_header(item)
        + f"CREATE OPERATOR FAMILY {family} USING hash;\n"
        + f"CREATE OPERATOR CLASS {family} DEFAULT FOR TYPE {target}\n"
        + f"USING hash FAMILY {family} AS\n"
        + f"{operators};"
    )


def render_aggregate(sql_graph: "SqlEntityGraph", index: int, item: AggregateEntity) -> str:
    def arguments(args) -> List[Tuple[str, Optional[str]]]:
        rendered = []
        for arg in args:
            text = ""
            if arg.variadic:
                text += "VARIADIC "
            if arg.name:
                text += quote_identifier(arg.name) + " "
            text += _type_sql(sql_graph, item, arg.type)
            rendered.append((text, arg.type.type_name))
        return rendered

    if item.direct_args is not None:
        signature = (
            render_list(arguments(item.direct_args))
            + "\n\tORDER BY\n"
            + render_list(arguments(item.args))
        )
    elif item.args:
        signature = render_list(arguments(item.args))
    else:
        signature = "\t*"

    def callback(fn_name: str) -> Tuple[str, str]:
        path = join_path(item.module_path, fn_name)
        fn_index = sql_graph.find_extern(path)
        if fn_index is None:
            raise UnresolvedReferenceError(
                path, requester=item.source_identifier(), location=item.location, what="function"
            )
        return _function_ref(sql_graph, fn_index), path

    options: List[Tuple[str, Optional[str]]] = []
    sfunc, sfunc_path = callback(item.sfunc)
    options.append((f"SFUNC = {sfunc}", sfunc_path))
    options.append((f"STYPE = {_type_sql(sql_graph, item, item.state)}", item.state.type_name))
    if item.finalfunc:
        finalfunc, path = callback(item.finalfunc)
        options.append((f"FINALFUNC = {finalfunc}", path))
    if item.finalfunc_modify:
        options.append((f"FINALFUNC_MODIFY = {item.finalfunc_modify.value}", None))
    if item.combinefunc:
        combinefunc, path = callback(item.combinefunc)
        options.append((f"COMBINEFUNC = {combinefunc}", path))
    if item.serialfunc:
        serialfunc, path = callback(item.serialfunc)
        options.append((f"SERIALFUNC = {serialfunc}", path))
    if item.deserialfunc:
        deserialfunc, path = callback(item.deserialfunc)
        options.append((f"DESERIALFUNC = {deserialfunc}", path))
    if item.initcond is not None:
        options.append((f"INITCOND = {quote_literal(item.initcond)}", None))
    if item.msfunc:
        msfunc, path = callback(item.msfunc)
        options.append((f"MSFUNC = {msfunc}", path))
    if item.minvfunc:
        minvfunc, path = callback(item.minvfunc)
        options.append((f"MINVFUNC = {minvfunc}", path))
    if item.mstate is not None:
        mstate = _type_sql(sql_graph, item, item.mstate)
        options.append((f"MSTYPE = {mstate}", item.mstate.type_name))
    if item.mfinalfunc:
        mfinalfunc, path = callback(item.mfinalfunc)
        options.append((f"MFINALFUNC = {mfinalfunc}", path))
    if item.mfinalfunc_modify:
        options.append((f"MFINALFUNC_MODIFY = {item.mfinalfunc_modify.value}", None))
    if item.minitcond is not None:
        options.append((f"MINITCOND = {quote_literal(item.minitcond)}", None))
    if item.sortop:
        options.append((f"SORTOP = {item.sortop}", None))
    if item.parallel:
        options.append((f"PARALLEL = {item.parallel.value}", None))
    if item.hypothetical:
        options.append(("HYPOTHETICAL", None))

    return (
        location_header(item)
        + f"CREATE AGGREGATE {sql_graph.schema_prefix_for(index)}{item.name} (\n"
        + f"{signature}\n)\n(\n{render_list(options)}\n);"
    )


def render_builtin(sql_graph: "SqlEntityGraph", index: int, item: BuiltinType) -> str:
    return ""


RENDERERS: Dict[EntityKind, Renderer] = {
    EntityKind.ROOT: render_root,
    EntityKind.SCHEMA: render_schema,
    EntityKind.CUSTOM_SQL: render_custom_sql,
    EntityKind.FUNCTION: render_function,
    EntityKind.TYPE: render_type,
    EntityKind.BUILTIN_TYPE: render_builtin,
    EntityKind.ENUM: render_enum,
    EntityKind.ORD: render_ord,
    EntityKind.HASH: render_hash,
    EntityKind.AGGREGATE: render_aggregate,
}


def render_node(sql_graph: "SqlEntityGraph", index: int) -> str:
    entity = sql_graph[index]
    return RENDERERS[entity.kind](sql_graph, index, entity)


def render_script(sql_graph: "SqlEntityGraph") -> str:
    """
    Render every node in topological order.

    Empty fragments are skipped; the rest are separated by one blank line
    and the script ends with a newline.

    Raises:
        CyclicDependencyError: if the graph has a cycle
    """
    order = sql_graph.graph.topological_sort()
    fragments = []
    for index in order:
        fragment = render_node(sql_graph, index)
        if fragment:
            fragments.append(fragment)
    logger.debug("Rendered %d of %d nodes", len(fragments), len(order))
    return "\n\n".join(fragments) + "\n"


__all__ = [
    "RENDERERS",
    "quote_identifier",
    "quote_literal",
    "render_list",
    "render_node",
    "render_script",
    "render_function_definition",
]
