"""
Tests for query execution.
"""

import pytest

from treemd.parser import parse_markdown
from treemd.query import (
    DivisionByZero,
    Engine,
    InvalidArity,
    InvalidRegex,
    ParseError,
    PropertyNotFound,
    UnknownFunction,
    execute,
    parse,
)
from treemd.query.ast import SingleIndex, SliceIndex
from treemd.query.executor import ExecutionContext, apply_index
from treemd.query.value import CodeValue, DocumentValue, HeadingValue


def run(markdown: str, query: str):
    return Engine(parse_markdown(markdown)).execute(query)


class TestDocumentRoot:
    """Test the identity query and the execution context."""

    def test_identity_returns_document(self):
        results = run("# A\n\nSome words here\n", ".")

        assert len(results) == 1
        assert isinstance(results[0], DocumentValue)
        assert results[0].heading_count == 1

    def test_document_properties(self, query):
        assert query(". | .heading_count") == [6.0]

    def test_context_inventories(self, sample_doc):
        context = ExecutionContext.from_document(sample_doc)

        assert len(context.headings) == 6
        assert [c.language for c in context.code_blocks] == ["bash", "python", "rust"]
        assert len(context.links) == 4
        assert len(context.images) == 1
        assert len(context.tables) == 1
        assert len(context.lists) == 2

    def test_heading_values(self, sample_doc):
        context = ExecutionContext.from_document(sample_doc)
        installation = context.headings[1]

        assert isinstance(installation, HeadingValue)
        assert installation.line == 5
        assert installation.index == 1
        assert installation.content.startswith("Run this:")
        assert "### From source" in installation.content
        assert installation.raw_md.startswith("## Installation\n")
        assert "## Usage" not in installation.raw_md

    def test_execute_accepts_parsed_query(self, sample_doc):
        assert execute(sample_doc, parse(".h1 | text")) == ["Project", "Appendix"]

    def test_empty_document(self):
        assert run("", ".h") == []
        assert run("", "[.h] | count") == [0.0]


class TestSelectors:
    """Test element selection, filters and indexing."""

    def test_heading_levels(self):
        markdown = "# H1\n## H2\n### H3"

        results = run(markdown, ".h2")
        assert len(results) == 1
        assert results[0].level == 2
        assert len(run(markdown, ".h")) == 3

    def test_headings_in_document_order(self, query):
        assert query(".h | text") == [
            "Project", "Installation", "From source", "Usage", "Appendix", "Notes",
        ]

    def test_index_first_last_and_out_of_range(self, query):
        assert query(".h2[0] | text") == ["Installation"]
        assert query(".h2[-1] | text") == ["Notes"]
        assert query(".h2[5]") == []

    def test_slices(self, query):
        assert query(".h2[1:3] | text") == ["Usage", "Notes"]
        assert query(".h2[:1] | text") == ["Installation"]
        assert query(".h2[-2:] | text") == ["Usage", "Notes"]
        assert query(".h2[2:1]") == []
        assert query(".h2[-10:1] | text") == ["Installation"]

    def test_fuzzy_filter(self):
        assert [h.text for h in run("# Hello\n## World\n## Goodbye", ".h2[World]")] == ["World"]

    def test_fuzzy_filter_is_case_insensitive(self, query):
        assert query(".h[SOURCE] | text") == ["From source"]

    def test_exact_filter(self, query):
        assert query('.h["source"]') == []
        assert query('.h["from source"] | text') == ["From source"]

    def test_regex_filter(self, query):
        assert query(".h[/^[A-Z][a-z]+$/] | text") == [
            "Project", "Installation", "Usage", "Appendix", "Notes",
        ]

    def test_filter_then_index(self, query):
        assert query(".h[o][2] | text") == ["From source"]

    def test_code_language_filter(self, query):
        results = query(".code[rust]")

        assert len(results) == 1
        assert isinstance(results[0], CodeValue)
        assert results[0].content == "fn main() {}"

    def test_link_type_filter(self, query):
        assert query(".link[external] | url") == ["https://example.com"]
        assert query(".link[anchor] | url") == ["#installation"]
        assert query(".link[wikilink] | text") == ["Wiki Page"]

    def test_other_element_kinds(self, query):
        assert query(".img | .src") == ["logo.png"]
        assert query(".img | .title") == ["The logo"]
        assert query(".table | .alignments") == [["left", "right"]]
        assert query(".list | .ordered") == [True, False]
        assert query(".list[1] | .items | .[] | .checked") == [True, False]

    def test_unsupported_kinds_are_empty(self, query):
        assert query(".blockquote") == []
        assert query(".p") == []

    def test_apply_index_negative_clamping(self):
        values = [1, 2, 3]

        assert apply_index(values, SingleIndex(-3)) == [1]
        assert apply_index(values, SingleIndex(-4)) == []
        assert apply_index(values, SliceIndex(1, 10)) == [2, 3]


class TestHierarchy:
    """Test parent/child heading relations and section scoping."""

    MARKDOWN = "# H1\n## H2a\n### H3x\n## H2b"

    def test_direct_children(self):
        assert [h.text for h in run(self.MARKDOWN, ".h1 > .h2")] == ["H2a", "H2b"]

    def test_descendants(self):
        assert [h.text for h in run(self.MARKDOWN, ".h1 >> .h3")] == ["H3x"]

    def test_direct_skips_headings_behind_intermediate_level(self):
        assert run(self.MARKDOWN, ".h1 > .h3") == []
        assert [h.text for h in run(self.MARKDOWN, ".h2 > .h3")] == ["H3x"]

    def test_skipped_level_is_still_a_direct_child(self):
        assert [h.text for h in run("# A\n### Deep\n## B", ".h1 > .h3")] == ["Deep"]

    def test_children_of_every_parent(self, query):
        assert query(".h1 > .h2 | text") == ["Installation", "Usage", "Notes"]
        assert query(".h1[Appendix] > .h2 | text") == ["Notes"]

    def test_any_level_child(self, query):
        assert query(".h1[Project] >> .h | text") == ["Installation", "From source", "Usage"]
        assert query(".h1[Project] > .h | text") == ["Installation", "Usage"]

    def test_child_filter_and_index_after_collection(self, query):
        assert query(".h1 > .h2[-1] | text") == ["Notes"]
        assert query(".h1 > .h2[s] | text") == ["Installation", "Usage", "Notes"]

    def test_chained(self, query):
        assert query(".h1 > .h2 > .h3 | text") == ["From source"]

    def test_code_in_section(self, query):
        assert query(".h2[Installation] >> .code | lang") == ["bash", "python"]
        assert query(".h2[Installation] > .code | lang") == ["bash"]
        assert query(".h2[Usage] >> .code | lang") == ["rust"]
        assert query(".h1[Appendix] >> .code") == []

    def test_links_in_section(self, query):
        assert len(query(".h1[Project] >> .link")) == 4
        assert query(".h2[Usage] > .link | text") == ["install", "guide"]

    def test_other_elements_in_section(self, query):
        assert query(".h2[Usage] >> .table | .headers") == [["Name", "Value"]]
        assert query(".h2[Usage] >> .img | .src") == ["logo.png"]
        assert query(".h2[Usage] >> .list | .ordered") == [True, False]

    def test_non_heading_parent_yields_nothing(self, query):
        assert query(".code > .h2") == []


class TestPipelines:
    """Test pipes, multiple pipelines and short-circuiting."""

    def test_pipe(self, query):
        assert query(".h2 | text") == ["Installation", "Usage", "Notes"]

    def test_multiple_pipelines_concatenate(self, query):
        assert query(".h1 | text, .h3 | text") == ["Project", "Appendix", "From source"]

    def test_empty_stage_short_circuits(self, query):
        assert query(".h4 | text") == []

    def test_collect_into_array(self, query):
        assert query("[.h2] | count") == [3.0]
        assert query("[.h2 | text]") == [["Installation", "Usage", "Notes"]]

    def test_index_into_array(self, query):
        assert query("[.h2] | .[1] | text") == ["Usage"]
        assert query("[.h2] | .[] | .level") == [2.0, 2.0, 2.0]

    def test_object_construction(self, query):
        assert query(".h2[0] | {text, level}") == [{"text": "Installation", "level": 2.0}]

    def test_object_value_with_many_results_is_array(self, query):
        assert query("{names: (.h1 | text)}") == [{"names": ["Project", "Appendix"]}]

    def test_property_chain(self, query):
        assert query(".h2[0].text") == ["Installation"]


class TestOperators:
    """Test arithmetic, comparison and logic."""

    def test_arithmetic(self):
        assert run("", "1 + 2 * 3") == [7.0]
        assert run("", "(1 + 2) * 3") == [9.0]
        assert run("", "7 % 3") == [1.0]
        assert run("", "-(2)") == [-2.0]

    def test_division_by_zero(self):
        with pytest.raises(DivisionByZero):
            run("", "1 / 0")
        with pytest.raises(DivisionByZero):
            run("", "5 % 0")

    def test_string_repeat(self):
        assert run("", '"ab" * 3') == ["ababab"]
        assert run("", '2 * "x"') == ["xx"]
        assert run("", '"ab" * -1') == [""]

    def test_string_repeat_by_non_finite_count(self):
        assert run("", '"a" * ("inf" | tonumber)') == [None]
        assert run("", '("nan" | tonumber) * "a"') == [None]

    def test_mixed_type_arithmetic(self):
        assert run("", '"a" - 1') == [None]
        assert run("", '-"a"') == [None]
        assert run("", '"a" + 1') == ["a1"]
        assert run("", "[1] + [2]") == [[1.0, 2.0]]
        assert run("", '"x" ~ 1') == ["x1"]

    def test_number_equality_uses_epsilon(self):
        assert run("", "0.1 + 0.2 == 0.3") == [True]
        assert run("", "1 == 1.0") == [True]

    def test_comparisons(self):
        assert run("", '"a" < "b"') == [True]
        assert run("", "10 > 9") == [True]
        assert run("", '"10" > "9"') == [False]
        assert run("", "2 != 3") == [True]

    def test_null_only_equals_null(self):
        assert run("", 'null == ""') == [False]
        assert run("", 'null != ""') == [True]
        assert run("", "null == null") == [True]
        assert run("", "null < 0") == [True]

    def test_untitled_image_is_not_empty_title(self):
        markdown = '![plain](a.png)\n![titled](b.png "")\n'

        assert run(markdown, '.img | select(.title == null) | text') == ["plain"]
        assert run(markdown, '.img | select(.title == "") | text') == ["titled"]

    def test_alternative(self):
        assert run("", 'null // "x"') == ["x"]
        assert run("", "false // 1") == [1.0]
        assert run("", "0 // 1") == [0.0]

    def test_logic(self):
        assert run("", "true and null") == [False]
        assert run("", "false or 0") == [True]
        assert run("", "!null") == [True]

    def test_empty_operand_is_null(self, query):
        assert query(".h4 // \"none\"") == ["none"]


class TestConditionals:
    """Test if/then/else and truthiness."""

    @pytest.mark.parametrize("condition,expected", [
        ("0", "t"),
        ('""', "t"),
        ("[]", "t"),
        ("{}", "t"),
        ("null", "f"),
        ("false", "f"),
    ])
    def test_truthiness(self, condition, expected):
        assert run("", f'if {condition} then "t" else "f" end') == [expected]

    def test_missing_else_yields_null(self):
        assert run("", "if false then 1 end") == [None]

    def test_elif(self, query):
        assert query(
            '.h | if .level == 1 then "top" elif .level == 2 then "mid" else "low" end'
        ) == ["top", "mid", "low", "mid", "top", "mid"]


class TestErrors:
    """Test evaluation errors."""

    def test_unknown_function_suggests(self, query):
        with pytest.raises(UnknownFunction) as exc_info:
            query("cunt")

        assert "count" in exc_info.value.suggestions
        assert "did you mean" in str(exc_info.value)

    def test_arity_is_checked(self, query):
        with pytest.raises(InvalidArity):
            query("[.h] | limit()")
        with pytest.raises(InvalidArity):
            query("[.h] | limit(1, 2)")
        with pytest.raises(InvalidArity):
            query("stats(1)")

    def test_property_not_found(self, query):
        with pytest.raises(PropertyNotFound, match="on document"):
            query(".nope")
        with pytest.raises(PropertyNotFound, match="on object"):
            query("{a: 1} | .b")

    def test_invalid_regex(self, query):
        with pytest.raises(InvalidRegex):
            query(".h[/[/]")

    def test_catastrophic_regex_rejected(self, query):
        with pytest.raises(InvalidRegex, match="nested quantifiers"):
            query(".h[/(a+)+$/]")

    def test_error_carries_span(self, query):
        with pytest.raises(UnknownFunction) as exc_info:
            query(".h | nope")

        assert exc_info.value.span.start == 5

    def test_error_message_names_position(self, query):
        with pytest.raises(UnknownFunction) as exc_info:
            query(".h | nope")

        assert str(exc_info.value).startswith("unknown function at 5: nope")

    def test_parse_errors_propagate(self, query):
        with pytest.raises(ParseError):
            query(".h2[")
