"""
YAML manifest loader.

A manifest is the on-disk form of an extracted entity collection: the
extension control metadata, the base type mapping tables and one list per
entity kind. JSON is valid YAML, so JSON manifests load the same way.

Example manifest::

    extension:
      name: demo
      schema: demo
      default_version: "1.0"
    type_mappings:
      - {type_id: i32, sql: integer}
    functions:
      - name: add_one
        module_path: demo
        file: src/lib.rs
        line: 12
        args:
          - {pattern: value, type: i32}
        returns: {kind: type, type: i32}
        attributes: [immutable, parallel_safe]

A type may be written as a bare string (used as both identity and
literal spelling) or as a mapping with ``type_id``, ``type_name`` and an
optional ``sql_type``.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

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
from .errors import ManifestError
from .graph_builder import SqlGraphBuilder
from .mapping import SourceOnlyMapping, TypeMapping
from .models import (
    AggregateArgument,
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
    TableColumn,
    TypeReference,
)
from .sql_graph import SqlEntityGraph

logger = logging.getLogger(__name__)

_DECLARED_PATTERN = re.compile(r"^\s*(Type|Enum|Function)\s*\(\s*([^)]+?)\s*\)\s*$")


@dataclass
class Manifest:
    """Everything needed to build one extension's SQL entity graph."""

    entities: List[SqlGraphEntity] = field(default_factory=list)
    type_mappings: List[TypeMapping] = field(default_factory=list)
    source_mappings: List[SourceOnlyMapping] = field(default_factory=list)

    def build(self) -> SqlEntityGraph:
        return SqlGraphBuilder(self.entities, self.type_mappings, self.source_mappings).build()


def load_manifest(file_path: Union[str, Path]) -> Manifest:
    """
    Load a manifest from a YAML (or JSON) file.

    Raises:
        ManifestError: If the file is missing, unparsable or malformed
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise ManifestError("Manifest file not found", path=str(file_path))

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML syntax: {e}", path=str(file_path)) from e

    manifest = parse_manifest(data, source=str(file_path))
    logger.info("Loaded %d entities from %s", len(manifest.entities), file_path)
    return manifest


def parse_manifest(data: Any, source: Optional[str] = None) -> Manifest:
    """Build a Manifest from already-decoded data."""
    if not isinstance(data, dict):
        raise ManifestError("Manifest must contain a mapping at the top level", path=source)
    if "extension" not in data:
        raise ManifestError("Manifest is missing the `extension` section", path=source)

    parser = _ManifestParser(source)
    return parser.parse(data)


class _ManifestParser:
    def __init__(self, source: Optional[str]):
        self._source = source

    def _error(self, message: str) -> ManifestError:
        return ManifestError(message, path=self._source)

    def parse(self, data: Dict[str, Any]) -> Manifest:
        manifest = Manifest()
        manifest.entities.append(self._build(ExtensionRoot, data["extension"], "extension"))

        for position, item in enumerate(data.get("type_mappings") or []):
            manifest.type_mappings.append(
                self._build(TypeMapping, item, f"type_mappings[{position}]")
            )
        for position, item in enumerate(data.get("source_mappings") or []):
            manifest.source_mappings.append(
                self._build(SourceOnlyMapping, item, f"source_mappings[{position}]")
            )

        sections: Dict[str, Callable[[Dict[str, Any], str], SqlGraphEntity]] = {
            "schemas": lambda item, where: self._build(SchemaEntity, item, where),
            "custom_sql": self._custom_sql,
            "functions": self._function,
            "types": self._type,
            "enums": self._enum,
            "ords": lambda item, where: self._build(OrdEntity, item, where),
            "hashes": lambda item, where: self._build(HashEntity, item, where),
            "aggregates": self._aggregate,
        }
        unknown = set(data) - set(sections) - {"extension", "type_mappings", "source_mappings"}
        if unknown:
            raise self._error(f"Unknown manifest sections: {', '.join(sorted(unknown))}")

        for section, parse_item in sections.items():
            for position, item in enumerate(data.get(section) or []):
                where = f"{section}[{position}]"
                if not isinstance(item, dict):
                    raise self._error(f"{where}: expected a mapping")
                manifest.entities.append(parse_item(dict(item), where))

        return manifest

    def _build(self, cls, item: Any, where: str):
        if not isinstance(item, dict):
            raise self._error(f"{where}: expected a mapping")
        try:
            return cls(**item)
        except TypeError as e:
            raise self._error(f"{where}: {e}") from e

    # ------------------------------------------------------------------
    # Shared value parsers
    # ------------------------------------------------------------------

    def _type_ref(self, value: Any, where: str) -> TypeReference:
        if isinstance(value, str):
            return TypeReference(type_id=value, type_name=value)
        if isinstance(value, dict):
            type_id = value.get("type_id") or value.get("type_name")
            type_name = value.get("type_name") or type_id
            if not type_id:
                raise self._error(f"{where}: type needs `type_id` or `type_name`")
            return TypeReference(
                type_id=type_id, type_name=type_name, sql_type=value.get("sql_type")
            )
        raise self._error(f"{where}: expected a type name or mapping, got {value!r}")

    def _requires(self, values: Any, where: str) -> tuple:
        refs = []
        for value in values or []:
            if isinstance(value, str):
                refs.append(PositioningRef.path(value))
            elif isinstance(value, dict) and "name" in value:
                refs.append(PositioningRef.name(value["name"]))
            elif isinstance(value, dict) and "path" in value:
                refs.append(PositioningRef.path(value["path"]))
            else:
                raise self._error(f"{where}.requires: cannot interpret {value!r}")
        return tuple(refs)

    def _enum_value(self, enum_cls, value: Any, where: str):
        normalized = str(value).strip().replace(" ", "_")
        for member in enum_cls:
            if member.value.lower() == normalized.lower():
                return member
        choices = ", ".join(member.value for member in enum_cls)
        raise self._error(f"{where}: unknown value {value!r} (expected one of {choices})")

    # ------------------------------------------------------------------
    # Entity parsers
    # ------------------------------------------------------------------

    def _custom_sql(self, item: Dict[str, Any], where: str) -> CustomSqlEntity:
        item["requires"] = self._requires(item.get("requires"), where)
        creates = []
        for value in item.get("creates") or []:
            if isinstance(value, str):
                match = _DECLARED_PATTERN.match(value)
                if not match:
                    raise self._error(
                        f"{where}.creates: expected `Type(path)`, `Enum(path)` or "
                        f"`Function(path)`, got {value!r}"
                    )
                kind, identifier = match.groups()
            elif isinstance(value, dict) and "kind" in value and "identifier" in value:
                kind, identifier = value["kind"], value["identifier"]
            else:
                raise self._error(f"{where}.creates: cannot interpret {value!r}")
            creates.append(
                SqlDeclared(self._enum_value(SqlDeclaredKind, kind, where), identifier)
            )
        item["creates"] = tuple(creates)
        return self._build(CustomSqlEntity, item, where)

    def _function(self, item: Dict[str, Any], where: str) -> FunctionEntity:
        args = []
        for position, arg in enumerate(item.get("args") or []):
            arg_where = f"{where}.args[{position}]"
            if not isinstance(arg, dict) or "pattern" not in arg or "type" not in arg:
                raise self._error(f"{arg_where}: needs `pattern` and `type`")
            arg = dict(arg)
            arg["type"] = self._type_ref(arg["type"], arg_where)
            args.append(self._build(FunctionArgument, arg, arg_where))
        item["args"] = tuple(args)

        item["returns"] = self._returns(item.get("returns"), f"{where}.returns")
        item["attributes"] = tuple(
            self._enum_value(ExternAttribute, attr, f"{where}.attributes")
            for attr in item.get("attributes") or []
        )
        item["requires"] = self._requires(item.get("requires"), where)
        if item.get("search_path") is not None:
            item["search_path"] = tuple(item["search_path"])
        if item.get("cost") is not None:
            item["cost"] = str(item["cost"])
        if item.get("operator") is not None:
            item["operator"] = self._build(OperatorOptions, item["operator"], f"{where}.operator")
        return self._build(FunctionEntity, item, where)

    def _returns(self, value: Any, where: str) -> FunctionReturn:
        if value is None:
            return FunctionReturn.void()
        if isinstance(value, str):
            if value in ("void", "none"):
                return FunctionReturn.void()
            if value == "trigger":
                return FunctionReturn.trigger()
            return FunctionReturn.scalar(self._type_ref(value, where))
        if not isinstance(value, dict):
            raise self._error(f"{where}: expected a type or mapping")

        kind = self._enum_value(ReturnKind, value.get("kind", "type"), where)
        if kind == ReturnKind.TABLE:
            columns = []
            for position, column in enumerate(value.get("columns") or []):
                column_where = f"{where}.columns[{position}]"
                if not isinstance(column, dict) or "name" not in column or "type" not in column:
                    raise self._error(f"{column_where}: needs `name` and `type`")
                column_type = self._type_ref(column["type"], column_where)
                columns.append(TableColumn(name=column["name"], type=column_type))
            return FunctionReturn.table(*columns)
        if kind in (ReturnKind.TYPE, ReturnKind.SETOF):
            return FunctionReturn(kind, type=self._type_ref(value.get("type"), where))
        return FunctionReturn(kind)

    def _type(self, item: Dict[str, Any], where: str) -> TypeEntity:
        for key in ("extra_ids", "array_ids"):
            item[key] = tuple(item.get(key) or ())
        return self._build(TypeEntity, item, where)

    def _enum(self, item: Dict[str, Any], where: str) -> EnumEntity:
        for key in ("variants", "extra_ids", "array_ids"):
            item[key] = tuple(item.get(key) or ())
        return self._build(EnumEntity, item, where)

    def _aggregate(self, item: Dict[str, Any], where: str) -> AggregateEntity:
        def arguments(values, key):
            parsed = []
            for position, value in enumerate(values or []):
                arg_where = f"{where}.{key}[{position}]"
                if isinstance(value, dict) and "type" in value:
                    parsed.append(
                        AggregateArgument(
                            type=self._type_ref(value["type"], arg_where),
                            name=value.get("name"),
                            variadic=bool(value.get("variadic", False)),
                        )
                    )
                else:
                    parsed.append(AggregateArgument(type=self._type_ref(value, arg_where)))
            return tuple(parsed)

        if "state" not in item:
            raise self._error(f"{where}: aggregate needs a `state` type")
        item["state"] = self._type_ref(item["state"], f"{where}.state")
        item["args"] = arguments(item.get("args"), "args")
        if item.get("direct_args") is not None:
            item["direct_args"] = arguments(item["direct_args"], "direct_args")
        if item.get("mstate") is not None:
            item["mstate"] = self._type_ref(item["mstate"], f"{where}.mstate")
        if item.get("parallel") is not None:
            item["parallel"] = self._enum_value(ParallelOption, item["parallel"], where)
        for key in ("finalfunc_modify", "mfinalfunc_modify"):
            if item.get(key) is not None:
                item[key] = self._enum_value(FinalizeModify, item[key], where)
        return self._build(AggregateEntity, item, where)


__all__ = ["Manifest", "load_manifest", "parse_manifest"]
