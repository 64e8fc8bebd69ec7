"""
Tests for SQL rendering and statement ordering.

Most assertions check that a statement appears and that it comes after
the statements it depends on, rather than comparing whole scripts.
"""

import dataclasses
import random

import pytest

from ddlgraph import (
    AggregateArgument,
    AggregateEntity,
    CyclicDependencyError,
    EnumEntity,
    ExternAttribute,
    FunctionArgument,
    FunctionEntity,
    FunctionReturn,
    HashEntity,
    OperatorOptions,
    OrdEntity,
    ParallelOption,
    PositioningRef,
    SchemaEntity,
    SqlDeclared,
    SqlDeclaredKind,
    TableColumn,
    TypeEntity,
)
from ddlgraph.emitter import quote_identifier, quote_literal, render_list

from entity_factories import (
    BOOL,
    CSTRING,
    I32,
    TEXT,
    build,
    custom_sql,
    extension_root,
    function,
    position,
    type_ref,
    varlena_type,
)

DOG = type_ref("demo", "Dog")


class TestHelpers:
    def test_quote_identifier(self):
        assert quote_identifier("dog_in") == '"dog_in"'

    def test_quote_literal_escapes_quotes(self):
        assert quote_literal("it's") == "'it''s'"

    def test_render_list(self):
        assert render_list([("a integer", "i32"), ("b bool", None)]) == (
            "\ta integer, /* i32 */\n\tb bool"
        )


class TestScript:
    def test_root_comment_comes_first(self):
        sql = build(custom_sql("seed")).to_sql()
        assert sql.startswith("/*\n * demo 1.0\n")
        assert sql.endswith("\n")

    def test_root_comment_includes_extension_comment(self):
        sql = build(root=extension_root(comment="Dogs in the database")).to_sql()
        assert " * Dogs in the database\n" in sql

    def test_custom_sql_is_traceable(self):
        sql = build(custom_sql("seed", sql="SELECT 1;", line=12)).to_sql()
        assert "-- src/lib.rs:12\n-- demo::seed\nSELECT 1;" in sql

    def test_bootstrap_first_and_finalize_last(self):
        sql = build(
            custom_sql("last", sql="SELECT 'last';", finalize=True),
            function("f", [("x", I32)], I32),
            custom_sql("first", sql="SELECT 'first';", bootstrap=True),
            *varlena_type(),
        ).to_sql()

        first = position(sql, "SELECT 'first';")
        assert first < position(sql, "CREATE TYPE Dog;")
        assert first < position(sql, 'CREATE FUNCTION "f"')
        assert sql.endswith("SELECT 'last';\n")

    def test_requires_orders_custom_sql(self):
        sql = build(
            custom_sql(
                "a_consumer",
                sql="SELECT * FROM seeds;",
                requires=[PositioningRef.name("z_seed")],
            ),
            custom_sql("z_seed", sql="CREATE TABLE seeds (id int);"),
        ).to_sql()
        assert position(sql, "CREATE TABLE seeds") < position(sql, "SELECT * FROM seeds;")

    def test_cycle_is_reported(self):
        sql_graph = build(
            custom_sql("a", requires=[PositioningRef.name("b")]),
            custom_sql("b", requires=[PositioningRef.name("a")]),
        )
        with pytest.raises(CyclicDependencyError) as exc_info:
            sql_graph.to_sql()
        assert exc_info.value.node in ("demo::a", "demo::b")

    def test_output_independent_of_input_order(self):
        color = EnumEntity(
            name="Color", module_path="demo", type_id="demo::Color", variants=("red", "green")
        )
        entities = [
            *varlena_type(),
            color,
            function("paint", [("dog", DOG), ("color", type_ref("demo", "Color"))]),
            function("f", [("x", I32)], I32),
            custom_sql("seed"),
            SchemaEntity(name="demo_schema", module_path="demo::schema"),
            function("in_schema", module_path="demo::schema"),
        ]
        expected = build(*entities).to_sql()

        rng = random.Random(11)
        for _ in range(5):
            shuffled = list(entities)
            rng.shuffle(shuffled)
            assert build(*shuffled).to_sql() == expected


class TestFunctions:
    def test_builtin_arguments_and_return(self):
        sql = build(function("add_one", [("x", I32)], I32, line=4)).to_sql()
        assert (
            "-- src/lib.rs:4\n"
            "-- demo::add_one\n"
            'CREATE FUNCTION "add_one"(\n'
            '\t"x" integer /* i32 */\n'
            ") RETURNS integer /* i32 */\n"
            "STRICT\n"
            "LANGUAGE c\n"
            "AS 'MODULE_PATHNAME', 'add_one_wrapper';"
        ) in sql

    def test_void_function_without_arguments(self):
        sql = build(function("noop")).to_sql()
        assert 'CREATE FUNCTION "noop"() RETURNS void\n' in sql

    def test_source_mapped_type(self):
        sql = build(function("greet", [("name", TEXT)], TEXT)).to_sql()
        assert '\t"name" text /* &str */\n) RETURNS text /* &str */' in sql

    def test_wrapper_uses_unaliased_name(self):
        sql = build(function("sql_name", unaliased_name="rust_name")).to_sql()
        assert 'CREATE FUNCTION "sql_name"()' in sql
        assert "'rust_name_wrapper';" in sql

    def test_attributes(self):
        fn = function(
            "pure",
            [("x", I32)],
            I32,
            attributes=(ExternAttribute.IMMUTABLE, ExternAttribute.PARALLEL_SAFE),
            cost="10",
            search_path=("demo", "public"),
        )
        sql = build(fn).to_sql()
        assert "IMMUTABLE PARALLEL SAFE STRICT\nCOST 10\nSET search_path TO demo, public\n" in sql

    def test_optional_argument_is_not_strict(self):
        fn = FunctionEntity(
            name="maybe",
            module_path="demo",
            args=(FunctionArgument("x", I32, optional=True, default="NULL"),),
        )
        sql = build(fn).to_sql()
        assert '\t"x" integer DEFAULT NULL /* i32 */' in sql
        assert "STRICT" not in sql

    def test_create_or_replace(self):
        fn = function("f", attributes=(ExternAttribute.CREATE_OR_REPLACE,))
        sql = build(fn).to_sql()
        assert 'CREATE OR REPLACE FUNCTION "f"()' in sql
        assert "CREATE OR REPLACE\n" not in sql

    def test_table_return(self):
        fn = FunctionEntity(
            name="rows",
            module_path="demo",
            returns=FunctionReturn.table(TableColumn("id", I32), TableColumn("ok", BOOL)),
        )
        sql = build(fn).to_sql()
        assert 'RETURNS TABLE (\n\t"id" integer, /* i32 */\n\t"ok" bool /* bool */\n)' in sql

    def test_setof_return(self):
        fn = FunctionEntity(name="numbers", module_path="demo", returns=FunctionReturn.setof(I32))
        assert "RETURNS SETOF integer /* i32 */" in build(fn).to_sql()

    def test_operator(self):
        fn = function(
            "int_gt",
            [("a", I32), ("b", I32)],
            BOOL,
            operator=OperatorOptions(opname=">", commutator="<", negator="<="),
        )
        sql = build(fn).to_sql()
        assert (
            "CREATE OPERATOR > (\n"
            '\tPROCEDURE = "int_gt",\n'
            "\tLEFTARG = integer, /* i32 */\n"
            "\tRIGHTARG = integer, /* i32 */\n"
            "\tCOMMUTATOR = <,\n"
            "\tNEGATOR = <=\n"
            ");"
        ) in sql
        assert position(sql, 'CREATE FUNCTION "int_gt"') < position(sql, "CREATE OPERATOR >")


class TestTypes:
    def test_type_sub_order(self):
        sql = build(*varlena_type()).to_sql()
        shell = position(sql, "CREATE TYPE Dog;")
        dog_in = position(sql, 'CREATE FUNCTION "dog_in"')
        dog_out = position(sql, 'CREATE FUNCTION "dog_out"')
        full = position(sql, "CREATE TYPE Dog (")
        assert shell < dog_in < full
        assert shell < dog_out < full

    def test_conversion_functions_are_emitted_once(self):
        sql = build(*varlena_type()).to_sql()
        assert sql.count('CREATE FUNCTION "dog_in"') == 1
        assert sql.count('CREATE FUNCTION "dog_out"') == 1

    def test_conversion_function_signature(self):
        sql = build(*varlena_type()).to_sql()
        assert (
            'CREATE FUNCTION "dog_in"(\n'
            '\t"input" cstring /* &core::ffi::CStr */\n'
            ") RETURNS Dog /* demo::Dog */\n"
        ) in sql

    def test_full_type_definition(self):
        sql = build(*varlena_type()).to_sql()
        assert (
            "CREATE TYPE Dog (\n"
            "\tINTERNALLENGTH = variable,\n"
            '\tINPUT = "dog_in", /* demo::dog_in */\n'
            '\tOUTPUT = "dog_out", /* demo::dog_out */\n'
            "\tSTORAGE = extended\n"
            ");"
        ) in sql

    def test_users_of_a_type_come_after_it(self):
        sql = build(
            function("adopt", [("dog", DOG)], BOOL, line=1),
            *varlena_type(line=50),
        ).to_sql()
        assert position(sql, "CREATE TYPE Dog (") < position(sql, 'CREATE FUNCTION "adopt"')

    def test_enum(self):
        color = EnumEntity(
            name="Color", module_path="demo", type_id="demo::Color", variants=("red", "green")
        )
        sql = build(color, function("paint", [("color", type_ref("demo", "Color"))])).to_sql()
        assert "CREATE TYPE Color AS ENUM (\n\t'red',\n\t'green'\n);" in sql
        assert '\t"color" Color /* demo::Color */' in sql
        assert position(sql, "AS ENUM") < position(sql, 'CREATE FUNCTION "paint"')

    def test_type_declared_by_custom_sql(self):
        creator = custom_sql(
            "complex_type",
            sql="CREATE TYPE Complex AS (x float8, y float8);",
            creates=(SqlDeclared(SqlDeclaredKind.TYPE, "demo::Complex"),),
            line=90,
        )
        fn = function("magnitude", [("value", type_ref("demo", "Complex"))], line=1)
        sql = build(fn, creator).to_sql()

        assert '\t"value" Complex /* demo::Complex */' in sql
        assert "-- creates:\n--   Type(demo::Complex)\n" in sql
        assert position(sql, "CREATE TYPE Complex AS") < position(sql, '"magnitude"')

    def test_conversion_function_requirements_come_before_type(self):
        dog, dog_in, dog_out = varlena_type()
        dog_in = dataclasses.replace(dog_in, requires=(PositioningRef.name("helper"),))
        helper = custom_sql(
            "helper",
            sql="CREATE FUNCTION helper() RETURNS void AS $$ $$ LANGUAGE sql;",
            requires=[PositioningRef.path("demo::Color")],
            line=80,
        )
        color = EnumEntity(name="Color", module_path="demo", type_id="demo::Color", line=90)
        sql = build(dog, dog_in, dog_out, helper, color).to_sql()

        enum = position(sql, "CREATE TYPE Color AS ENUM")
        helper_fn = position(sql, "CREATE FUNCTION helper()")
        assert enum < helper_fn < position(sql, "CREATE TYPE Dog;")
        assert helper_fn < position(sql, 'CREATE FUNCTION "dog_in"')

    def test_conversion_function_names_are_quoted(self):
        ref = type_ref("demo", "Dog")
        sql = build(
            TypeEntity(
                name="Dog",
                module_path="demo",
                type_id=ref.type_id,
                in_fn="Dog_In",
                out_fn="Dog_Out",
            ),
            function("Dog_In", [("input", CSTRING)], ref, line=2),
            function("Dog_Out", [("dog", ref)], CSTRING, line=3),
        ).to_sql()

        assert 'CREATE FUNCTION "Dog_In"(' in sql
        assert '\tINPUT = "Dog_In", /* demo::Dog_In */\n' in sql
        assert '\tOUTPUT = "Dog_Out", /* demo::Dog_Out */\n' in sql


class TestSchemas:
    def test_schema_statement_and_qualification(self):
        sql = build(
            SchemaEntity(name="animals", module_path="demo::animals", file="src/animals.rs"),
            *varlena_type(module_path="demo::animals"),
            function("adopt", [("dog", type_ref("demo::animals", "Dog"))]),
        ).to_sql()

        assert (
            "-- src/animals.rs:0\n-- demo::animals\n"
            "CREATE SCHEMA IF NOT EXISTS animals; /* demo::animals */"
        ) in sql
        assert "CREATE TYPE animals.Dog;" in sql
        assert 'CREATE FUNCTION animals."dog_in"' in sql
        assert '\tINPUT = animals."dog_in", /* demo::animals::dog_in */' in sql
        assert '\t"dog" animals.Dog /* demo::animals::Dog */' in sql
        assert 'CREATE FUNCTION "adopt"' in sql
        assert position(sql, "CREATE SCHEMA") < position(sql, "CREATE TYPE animals.Dog;")

    def test_conversion_functions_in_another_schema(self):
        dog_ref = type_ref("demo::animals", "Dog")
        sql = build(
            SchemaEntity(name="animals", module_path="demo::animals", line=1),
            SchemaEntity(name="io", module_path="demo::io", line=2),
            TypeEntity(
                name="Dog",
                module_path="demo::animals",
                type_id=dog_ref.type_id,
                in_fn="dog_in",
                out_fn="dog_out",
                in_fn_module_path="demo::io",
                out_fn_module_path="demo::io",
            ),
            function("dog_in", [("input", CSTRING)], dog_ref, module_path="demo::io"),
            function("dog_out", [("dog", dog_ref)], CSTRING, module_path="demo::io"),
        ).to_sql()

        assert "CREATE TYPE animals.Dog;" in sql
        assert 'CREATE FUNCTION io."dog_in"' in sql
        assert '\tINPUT = io."dog_in", /* demo::io::dog_in */\n' in sql
        shell = position(sql, "CREATE TYPE animals.Dog;")
        assert position(sql, "CREATE SCHEMA IF NOT EXISTS io;") < shell
        assert position(sql, "CREATE SCHEMA IF NOT EXISTS animals;") < shell

    def test_public_schema_is_implicit(self):
        sql = build(
            SchemaEntity(name="public", module_path="demo"),
            function("f"),
        ).to_sql()
        assert "CREATE SCHEMA" not in sql
        assert 'CREATE FUNCTION "f"()' in sql

    def test_root_schema(self):
        sql = build(function("f", [("x", I32)], I32), root=extension_root(schema="ext")).to_sql()
        assert 'CREATE FUNCTION ext."f"(' in sql
        # builtin types are never qualified
        assert '\t"x" integer /* i32 */' in sql

    def test_relocatable_extension(self):
        sql = build(*varlena_type(), root=extension_root(relocatable=True)).to_sql()
        assert "CREATE TYPE @extname@.Dog;" in sql
        assert 'CREATE FUNCTION @extname@."dog_in"' in sql

    def test_explicit_function_schema(self):
        sql = build(function("f", schema="pg_temp"), root=extension_root(schema="ext")).to_sql()
        assert 'CREATE FUNCTION pg_temp."f"()' in sql


class TestOperatorClasses:
    @pytest.fixture
    def dog_entities(self):
        return [
            *varlena_type(),
            function("dog_cmp", [("a", DOG), ("b", DOG)], I32, line=30),
            function("dog_eq", [("a", DOG), ("b", DOG)], BOOL, line=31),
            function("dog_hash", [("value", DOG)], I32, line=32),
        ]

    def test_ord(self, dog_entities):
        ord_ = OrdEntity(name="Dog", module_path="demo", type_id="demo::Dog", line=40)
        sql = build(*dog_entities, ord_).to_sql()

        assert "CREATE OPERATOR FAMILY Dog_btree_ops USING btree;\n" in sql
        assert "CREATE OPERATOR CLASS Dog_btree_ops DEFAULT FOR TYPE Dog\n" in sql
        assert "USING btree FAMILY Dog_btree_ops AS\n\tOPERATOR 1 <," in sql
        assert '\tFUNCTION 1 "dog_cmp"(Dog, Dog);' in sql
        assert position(sql, 'CREATE FUNCTION "dog_cmp"') < position(sql, "OPERATOR FAMILY")

    def test_hash(self, dog_entities):
        hash_ = HashEntity(name="Dog", module_path="demo", type_id="demo::Dog", line=41)
        sql = build(*dog_entities, hash_).to_sql()

        assert "CREATE OPERATOR FAMILY Dog_hash_ops USING hash;\n" in sql
        assert '\tOPERATOR 1 = (Dog, Dog),\n\tFUNCTION 1 "dog_hash"(Dog);' in sql
        assert position(sql, 'CREATE FUNCTION "dog_hash"') < position(sql, "Dog_hash_ops")


class TestAggregates:
    @pytest.fixture
    def state_fn(self):
        return function("demo_sum_state", [("acc", I32), ("value", I32)], I32, line=60)

    def test_simple_aggregate(self, state_fn):
        aggregate = AggregateEntity(
            name="DemoSum",
            module_path="demo",
            state=I32,
            sfunc="demo_sum_state",
            args=(AggregateArgument(I32),),
            initcond="0",
        )
        sql = build(state_fn, aggregate).to_sql()

        assert (
            "CREATE AGGREGATE DemoSum (\n"
            "\tinteger /* i32 */\n"
            ")\n"
            "(\n"
            '\tSFUNC = "demo_sum_state", /* demo::demo_sum_state */\n'
            "\tSTYPE = integer, /* i32 */\n"
            "\tINITCOND = '0'\n"
            ");"
        ) in sql
        assert position(sql, '"demo_sum_state"(') < position(sql, "CREATE AGGREGATE")

    def test_no_arguments_renders_star(self, state_fn):
        aggregate = AggregateEntity(
            name="CountAll", module_path="demo", state=I32, sfunc="demo_sum_state"
        )
        sql = build(state_fn, aggregate).to_sql()
        assert "CREATE AGGREGATE CountAll (\n\t*\n)" in sql

    def test_ordered_set_aggregate(self, state_fn):
        aggregate = AggregateEntity(
            name="Pick",
            module_path="demo",
            state=I32,
            sfunc="demo_sum_state",
            args=(AggregateArgument(I32, name="value"),),
            direct_args=(AggregateArgument(I32, name="rank"),),
            parallel=ParallelOption.SAFE,
            hypothetical=True,
        )
        sql = build(state_fn, aggregate).to_sql()
        assert (
            'CREATE AGGREGATE Pick (\n\t"rank" integer /* i32 */\n'
            '\tORDER BY\n\t"value" integer /* i32 */\n)'
        ) in sql
        assert "\tPARALLEL = SAFE,\n\tHYPOTHETICAL\n);" in sql

    def test_callbacks_reference_functions(self, state_fn):
        final_fn = function("demo_sum_final", [("acc", I32)], I32, line=61)
        aggregate = AggregateEntity(
            name="DemoSum",
            module_path="demo",
            state=I32,
            sfunc="demo_sum_state",
            finalfunc="demo_sum_final",
            sortop=">",
        )
        sql = build(state_fn, final_fn, aggregate).to_sql()

        assert '\tFINALFUNC = "demo_sum_final", /* demo::demo_sum_final */\n' in sql
        assert "\tSORTOP = >\n);" in sql
        assert position(sql, '"demo_sum_final"(') < position(sql, "CREATE AGGREGATE")
