"""
Tests for loading entity manifests from YAML.
"""

import pytest

from ddlgraph import (
    AggregateEntity,
    CustomSqlEntity,
    EnumEntity,
    ExtensionRoot,
    ExternAttribute,
    FunctionEntity,
    ManifestError,
    OrdEntity,
    ParallelOption,
    PositioningRef,
    ReturnKind,
    SchemaEntity,
    SqlDeclared,
    SqlDeclaredKind,
    TypeEntity,
    TypeReference,
    load_manifest,
    parse_manifest,
)

DEMO_MANIFEST = """
extension:
  name: demo
  schema: demo
  default_version: "1.0"
  comment: Dogs in the database
type_mappings:
  - {type_id: i32, sql: integer}
  - {type_id: "&core::ffi::CStr", sql: cstring}
source_mappings:
  - {source: "&str", sql: text}
schemas:
  - {name: animals, module_path: "demo::animals", file: src/animals.rs, line: 1}
custom_sql:
  - name: seed
    module_path: demo
    sql: "CREATE TABLE seeds (id int);"
    file: src/lib.rs
    line: 3
    bootstrap: true
    creates: ["Type(demo::Seed)"]
  - name: after_seed
    module_path: demo
    sql: "SELECT 1;"
    requires:
      - {name: seed}
      - "demo::animals::Dog"
types:
  - name: Dog
    module_path: "demo::animals"
    type_id: "demo::animals::Dog"
    in_fn: dog_in
    out_fn: dog_out
    file: src/animals.rs
    line: 10
functions:
  - name: dog_in
    module_path: "demo::animals"
    file: src/animals.rs
    line: 11
    args:
      - {pattern: input, type: "&core::ffi::CStr"}
    returns: "demo::animals::Dog"
  - name: dog_out
    module_path: "demo::animals"
    file: src/animals.rs
    line: 12
    args:
      - {pattern: dog, type: "demo::animals::Dog"}
    returns: {kind: type, type: "&core::ffi::CStr"}
  - name: add_one
    module_path: demo
    file: src/lib.rs
    line: 20
    args:
      - {pattern: value, type: i32}
    returns: i32
    attributes: [immutable, parallel safe]
    cost: 5
  - name: rows
    module_path: demo
    returns:
      kind: table
      columns:
        - {name: id, type: i32}
        - {name: label, type: {type_id: "alloc::string::String", type_name: "&str"}}
  - name: demo_sum_state
    module_path: demo
    args:
      - {pattern: acc, type: i32}
      - {pattern: value, type: i32}
    returns: i32
  - name: color_cmp
    module_path: demo
    args:
      - {pattern: a, type: "demo::Color"}
      - {pattern: b, type: "demo::Color"}
    returns: i32
enums:
  - {name: Color, module_path: demo, type_id: "demo::Color", variants: [red, green]}
ords:
  - {name: Color, module_path: demo, type_id: "demo::Color"}
aggregates:
  - name: DemoSum
    module_path: demo
    state: i32
    sfunc: demo_sum_state
    args: [i32]
    initcond: "0"
    parallel: safe
"""


@pytest.fixture
def manifest_path(tmp_path):
    path = tmp_path / "demo.yaml"
    path.write_text(DEMO_MANIFEST)
    return path


def entities_of(manifest, cls):
    return [entity for entity in manifest.entities if isinstance(entity, cls)]


class TestLoadManifest:
    def test_extension(self, manifest_path):
        manifest = load_manifest(manifest_path)
        (root,) = entities_of(manifest, ExtensionRoot)
        assert root.name == "demo"
        assert root.schema == "demo"
        assert root.default_version == "1.0"

    def test_mappings(self, manifest_path):
        manifest = load_manifest(manifest_path)
        assert [m.type_id for m in manifest.type_mappings] == ["i32", "&core::ffi::CStr"]
        assert manifest.source_mappings[0].source == "&str"

    def test_entity_counts(self, manifest_path):
        manifest = load_manifest(manifest_path)
        assert len(entities_of(manifest, SchemaEntity)) == 1
        assert len(entities_of(manifest, CustomSqlEntity)) == 2
        assert len(entities_of(manifest, TypeEntity)) == 1
        assert len(entities_of(manifest, FunctionEntity)) == 6
        assert len(entities_of(manifest, EnumEntity)) == 1
        assert len(entities_of(manifest, OrdEntity)) == 1
        assert len(entities_of(manifest, AggregateEntity)) == 1

    def test_custom_sql_positioning(self, manifest_path):
        manifest = load_manifest(manifest_path)
        seed, after_seed = entities_of(manifest, CustomSqlEntity)

        assert seed.bootstrap is True
        assert seed.creates == (SqlDeclared(SqlDeclaredKind.TYPE, "demo::Seed"),)
        assert after_seed.requires == (
            PositioningRef.name("seed"),
            PositioningRef.path("demo::animals::Dog"),
        )

    def test_function_fields(self, manifest_path):
        manifest = load_manifest(manifest_path)
        functions = {fn.name: fn for fn in entities_of(manifest, FunctionEntity)}

        add_one = functions["add_one"]
        assert add_one.args[0].type == TypeReference("i32", "i32")
        assert add_one.returns.kind == ReturnKind.TYPE
        assert add_one.attributes == (ExternAttribute.IMMUTABLE, ExternAttribute.PARALLEL_SAFE)
        assert add_one.cost == "5"

        rows = functions["rows"]
        assert rows.returns.kind == ReturnKind.TABLE
        assert rows.returns.columns[1].type == TypeReference("alloc::string::String", "&str")

        assert functions["dog_out"].returns.type.type_id == "&core::ffi::CStr"

    def test_aggregate_fields(self, manifest_path):
        (aggregate,) = entities_of(load_manifest(manifest_path), AggregateEntity)
        assert aggregate.state == TypeReference("i32", "i32")
        assert aggregate.args[0].type.type_id == "i32"
        assert aggregate.parallel == ParallelOption.SAFE

    def test_build_and_render(self, manifest_path):
        sql = load_manifest(manifest_path).build().to_sql()

        assert "CREATE SCHEMA IF NOT EXISTS animals;" in sql
        assert "CREATE TYPE animals.Dog;" in sql
        assert "CREATE TYPE demo.Color AS ENUM" in sql
        assert "CREATE AGGREGATE demo.DemoSum" in sql
        assert sql.index("CREATE TABLE seeds") < sql.index("CREATE TYPE animals.Dog;")


class TestManifestErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError, match="not found"):
            load_manifest(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("extension: [unclosed\n")
        with pytest.raises(ManifestError, match="Invalid YAML"):
            load_manifest(path)

    def test_top_level_must_be_mapping(self):
        with pytest.raises(ManifestError, match="mapping"):
            parse_manifest(["not", "a", "mapping"])

    def test_extension_required(self):
        with pytest.raises(ManifestError, match="extension"):
            parse_manifest({"functions": []})

    def test_unknown_section(self):
        with pytest.raises(ManifestError, match="tables"):
            parse_manifest({"extension": {"name": "demo"}, "tables": []})

    def test_unknown_field_names_location(self):
        data = {
            "extension": {"name": "demo"},
            "functions": [{"name": "f", "module_path": "demo", "colour": "red"}],
        }
        with pytest.raises(ManifestError, match=r"functions\[0\]"):
            parse_manifest(data, source="demo.yaml")

    def test_bad_attribute(self):
        data = {
            "extension": {"name": "demo"},
            "functions": [{"name": "f", "module_path": "demo", "attributes": ["speedy"]}],
        }
        with pytest.raises(ManifestError, match="speedy"):
            parse_manifest(data)

    def test_bad_creates(self):
        data = {
            "extension": {"name": "demo"},
            "custom_sql": [
                {"name": "x", "module_path": "demo", "sql": "", "creates": ["Table(x)"]}
            ],
        }
        with pytest.raises(ManifestError, match="creates"):
            parse_manifest(data)

    def test_aggregate_needs_state(self):
        data = {
            "extension": {"name": "demo"},
            "aggregates": [{"name": "agg", "module_path": "demo", "sfunc": "f"}],
        }
        with pytest.raises(ManifestError, match="state"):
            parse_manifest(data)

    def test_error_includes_source(self):
        with pytest.raises(ManifestError) as exc_info:
            parse_manifest({"functions": []}, source="demo.yaml")
        assert str(exc_info.value).startswith("demo.yaml: ")
        assert exc_info.value.to_dict()["path"] == "demo.yaml"
