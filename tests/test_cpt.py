"""
Tests for the CPT schema compiler

Tests cover:
- Statement tokenizing (modifiers, headers, descriptions, arguments)
- Kind keywords and reusable shapes
- Compile errors
"""
import pytest

from cptwiki.exceptions import CompileError
from cptwiki.models import ClassDefinition, PrimitiveKind, Rule, ShapeDefinition
from cptwiki.schema import compile_schema
from cptwiki.schema.cpt import (
    CPTCompiler,
    camel_to_phrase,
    parse_statement,
    split_statements,
)


# =============================================================================
# Tokenizing
# =============================================================================

class TestSplitStatements:
    """Tests for statement splitting."""

    def test_line_breaks_are_spaces(self):
        code = "title TEXTSHORT\n  QUERY;\nbody TEXTLONG;\n"
        assert split_statements(code) == ["title TEXTSHORT   QUERY", "body TEXTLONG"]

    def test_empty_statements_are_dropped(self):
        assert split_statements(" ; ;a INT;; ") == ["a INT"]


class TestParseStatement:
    """Tests for parse_statement."""

    def test_all_modifiers(self):
        statement = parse_statement("""names {NAME}[] QUERY * "Localized Names" 'Official names'""")
        assert statement.name == "names"
        assert statement.shape_name == "NAME"
        assert statement.array_depth == 1
        assert statement.flags == ("QUERY", "*")
        assert statement.header == "Localized Names"
        assert statement.description == "Official names"

    def test_description_runs_to_last_quote(self):
        statement = parse_statement("note TEXTLONG 'It's the composer's note'")
        assert statement.description == "It's the composer's note"

    def test_matrix(self):
        assert parse_statement("grid INT[][]").array_depth == 2

    def test_arguments_are_captured(self):
        statement = parse_statement("author ID(author)[]")
        assert statement.arguments_text == "author"
        assert statement.array_depth == 1

    def test_three_dimensions_rejected(self):
        with pytest.raises(CompileError, match="array dimensions"):
            parse_statement("cube INT[][][]")

    def test_unknown_modifier_rejected(self):
        with pytest.raises(CompileError, match="unknown modifier"):
            parse_statement("title TEXTSHORT SEARCHABLE")

    def test_missing_kind_rejected(self):
        with pytest.raises(CompileError, match="expected 'name KIND'"):
            parse_statement("title")

    def test_unterminated_header_rejected(self):
        with pytest.raises(CompileError, match="unterminated display name"):
            parse_statement('title TEXTSHORT "Title')

    @pytest.mark.parametrize("text", [
        "name TEXTSHORT 'a' QUERY 'b'",
        "name TEXTSHORT 'a' 'b'",
        """name TEXTSHORT 'a' "Name" * 'b'""",
    ])
    def test_second_description_rejected(self, text):
        with pytest.raises(CompileError, match="description given twice"):
            parse_statement(text)

    def test_modifier_after_description(self):
        statement = parse_statement("name TEXTSHORT 'The name' QUERY")
        assert statement.flags == ("QUERY",)
        assert statement.description == "The name"


class TestCamelToPhrase:
    """Tests for default display names."""

    @pytest.mark.parametrize("name,expected", [
        ("title", "Title"),
        ("swfMusicNumbers", "Swf Music Numbers"),
        ("unofficialNames", "Unofficial Names"),
        ("ostURL", "Ost URL"),
    ])
    def test_phrases(self, name, expected):
        assert camel_to_phrase(name) == expected


# =============================================================================
# Compiling
# =============================================================================

class TestCompile:
    """Tests for compile_schema."""

    def test_primitive_array_with_query(self):
        structure = compile_schema("tags TEXT[] QUERY;")
        assert len(structure) == 1
        prop = structure.get("tags")
        assert prop.kind == PrimitiveKind.SHORT_TEXT
        assert prop.array_depth == 1
        assert prop.is_queryable is True
        assert prop.is_openly_editable is False

    @pytest.mark.parametrize("keyword,kind", [
        ("TEXTSHORT", PrimitiveKind.SHORT_TEXT),
        ("TEXT", PrimitiveKind.SHORT_TEXT),
        ("TEXTLONG", PrimitiveKind.LONG_TEXT),
        ("INT", PrimitiveKind.INTEGER),
        ("BOOLEAN", PrimitiveKind.BOOLEAN),
        ("DATE", PrimitiveKind.DATE),
        ("FILE", PrimitiveKind.FILE_REF),
    ])
    def test_kind_keywords(self, keyword, kind):
        assert compile_schema(f"field {keyword};").get("field").kind == kind

    def test_property_order_is_declaration_order(self):
        structure = compile_schema("b INT; a INT; c INT;")
        assert structure.names() == ["b", "a", "c"]

    def test_header_and_default_display_name(self):
        structure = compile_schema('swfNumbers INT[]; link TEXTSHORT "YouTube Link";')
        assert structure.get("swfNumbers").display_name == "Swf Numbers"
        assert structure.get("link").display_name == "YouTube Link"

    def test_reference_argument(self):
        prop = compile_schema("authors ID(author)[];").get("authors")
        assert prop.kind == PrimitiveKind.REFERENCE
        assert prop.referenced_class == "author"

    def test_reference_without_class_rejected(self):
        with pytest.raises(CompileError, match="ID expects"):
            compile_schema("author ID;")

    def test_select_options(self):
        prop = compile_schema('season SELECT([spring "Spring"] [fall "Fall"]);').get("season")
        assert prop.kind == PrimitiveKind.CHOICE
        assert prop.arguments == ("spring", "fall")
        assert [o.text for o in prop.options] == ["Spring", "Fall"]

    def test_select_without_options_rejected(self):
        with pytest.raises(CompileError, match="SELECT expects"):
            compile_schema("season SELECT(spring);")

    def test_plain_kind_rejects_arguments(self):
        with pytest.raises(CompileError, match="does not take arguments"):
            compile_schema("count INT(5);")

    def test_unknown_kind(self):
        with pytest.raises(CompileError, match="Unknown kind 'FLOAT'"):
            compile_schema("ratio FLOAT;")

    def test_duplicate_property(self):
        with pytest.raises(CompileError, match="Duplicate property 'title'"):
            compile_schema("title TEXTSHORT; title TEXTLONG;")

    def test_root_rules_attached(self):
        rule = Rule(check=lambda data: True, message="ok")
        structure = compile_schema("a INT;", rules=(rule,))
        assert structure.rules == (rule,)


# =============================================================================
# Shapes
# =============================================================================

class TestShapes:
    """Tests for reusable shapes."""

    def test_embedded_shape(self):
        shapes = {"NAME": ShapeDefinition("NAME", "name TEXTSHORT QUERY; note TEXTLONG;")}
        prop = compile_schema("names {NAME}[];", shapes).get("names")
        assert prop.is_object
        assert prop.kind is None
        assert prop.structure.names() == ["name", "note"]
        assert prop.structure.name == "NAME"

    def test_shape_compiled_once_and_shared(self):
        shapes = {"NAME": ShapeDefinition("NAME", "name TEXTSHORT;")}
        structure = compile_schema("a {NAME}; b {NAME}[];", shapes)
        assert structure.get("a").structure is structure.get("b").structure

    def test_nested_shapes(self):
        shapes = {
            "OUTER": ShapeDefinition("OUTER", "inner {INNER}[];"),
            "INNER": ShapeDefinition("INNER", "v INT;"),
        }
        prop = compile_schema("o {OUTER};", shapes).get("o")
        assert prop.structure.get("inner").structure.get("v").kind == PrimitiveKind.INTEGER

    def test_undefined_shape(self):
        with pytest.raises(CompileError, match="Undefined shape"):
            compile_schema("x {NOPE};")

    def test_shape_takes_no_arguments(self):
        shapes = {"NAME": ShapeDefinition("NAME", "name TEXTSHORT;")}
        with pytest.raises(CompileError, match="shapes do not take arguments"):
            compile_schema("x {NAME}(a);", shapes)

    def test_dependency_order(self):
        compiler = CPTCompiler({
            "A": ShapeDefinition("A", "b {B};"),
            "B": ShapeDefinition("B", "c {C};"),
            "C": ShapeDefinition("C", "v INT;"),
        })
        assert compiler.dependency_order() == ["C", "B", "A"]

    def test_cyclic_shapes_rejected(self):
        compiler = CPTCompiler({
            "A": ShapeDefinition("A", "b {B};"),
            "B": ShapeDefinition("B", "a {A};"),
        })
        with pytest.raises(CompileError, match="Cyclic"):
            compiler.compile_all_shapes()

    def test_cycle_reached_directly(self):
        compiler = CPTCompiler({"SELF": ShapeDefinition("SELF", "me {SELF};")})
        with pytest.raises(CompileError, match="Cyclic"):
            compiler.compile_shape("SELF")

    def test_undefined_shape_inside_shape(self):
        compiler = CPTCompiler({"A": ShapeDefinition("A", "x {MISSING};")})
        with pytest.raises(CompileError, match="undefined shape"):
            compiler.dependency_order()

    def test_compile_class_marks_class_in_error(self):
        compiler = CPTCompiler()
        with pytest.raises(CompileError) as exc_info:
            compiler.compile_class(ClassDefinition("song", "Song", "title WHAT;"))
        assert exc_info.value.details["class"] == "song"

    def test_compile_class(self):
        compiler = CPTCompiler()
        descriptor = compiler.compile_class(ClassDefinition("page", "Page", "text TEXTLONG *;", is_static=True))
        assert descriptor.key == "page"
        assert descriptor.is_static
        assert descriptor.structure.get("text").is_openly_editable
