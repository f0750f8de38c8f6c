"""
Tests for built-in query functions and the function registry.
"""

import time
from unittest.mock import MagicMock, patch

import pytest

from treemd.parser import parse_markdown
from treemd.query import Arity, Engine, Function, FunctionRegistry, InvalidRegex, get_default_registry
from treemd.query import functions
from treemd.query.functions import compile_regex, regex_search


def run(query: str, markdown: str = ""):
    return Engine(parse_markdown(markdown)).execute(query)


class TestCollectionFunctions:
    """Test collection functions."""

    def test_count(self):
        assert run("[1, 2, 3] | count") == [3.0]
        assert run('"abc" | count') == [3.0]
        assert run("null | count") == [0.0]
        assert run("5 | count") == [1.0]
        assert run("{a: 1} | length") == [1.0]

    def test_first_last_nth(self):
        assert run("[1, 2, 3] | first") == [1.0]
        assert run("[1, 2, 3] | last") == [3.0]
        assert run("[] | first") == []
        assert run("[1, 2, 3] | nth(-1)") == [3.0]
        assert run("[1, 2, 3] | nth(5)") == []

    def test_limit_and_skip(self, query):
        assert query("[.h] | limit(2) | .[] | text") == ["Project", "Installation"]
        assert query("[.h] | skip(4) | .[] | text") == ["Appendix", "Notes"]
        assert run("[1, 2] | limit(-1)") == [[]]

    def test_reverse(self):
        assert run("[1, 2, 3] | reverse") == [[3.0, 2.0, 1.0]]
        assert run('"abc" | reverse') == ["cba"]

    def test_sort(self):
        assert run("[3, 1, 2] | sort") == [[1.0, 2.0, 3.0]]
        assert run('["b", null, 1, "a"] | sort') == [[None, 1.0, "a", "b"]]

    def test_sort_by_is_stable(self, query):
        assert query('[.h] | sort_by("level") | .[] | text') == [
            "Project", "Appendix", "Installation", "Usage", "Notes", "From source",
        ]

    def test_group_by(self, query):
        groups = query('[.h] | group_by("level")')[0]

        assert list(groups) == ["1", "2", "3"]
        assert [h.text for h in groups["1"]] == ["Project", "Appendix"]

    def test_unique_and_flatten(self):
        assert run("[1, 1, 2] | unique") == [[1.0, 2.0]]
        assert run("[1, [2, [3]]] | flatten") == [[1.0, 2.0, 3.0]]
        assert run("[1, [2, [3]]] | flatten(1)") == [[1.0, 2.0, [3.0]]]

    def test_min_max_add(self):
        assert run("[3, 1] | min") == [1.0]
        assert run("[3, 1] | max") == [3.0]
        assert run("[] | min") == [None]
        assert run("[1, 2, 3] | add") == [6.0]
        assert run('["a", "b"] | add') == ["ab"]

    def test_keys_values_has(self, query):
        assert run("{a: 1, b: 2} | keys") == [["a", "b"]]
        assert run("{a: 1, b: 2} | values") == [[1.0, 2.0]]
        assert run('{a: 1} | has("a")') == [True]
        assert run("[1] | has(0)") == [True]
        assert query('.h2[0] | has("level")') == [True]
        assert query(".code[0] | keys") == [[
            "language", "lang", "content", "text", "start_line", "end_line", "line",
        ]]


class TestStringFunctions:
    """Test string functions."""

    def test_text_of_markdown_values(self, query):
        assert query(".code[0] | text") == ["pip install treemd"]
        assert query(".link[0] | text") == ["link"]
        assert query(".img | text") == ["Logo"]

    def test_case_and_trim(self):
        assert run('"abc" | upper') == ["ABC"]
        assert run('"ABC" | lower') == ["abc"]
        assert run('"  x " | trim') == ["x"]

    def test_split_and_join(self):
        assert run('"a,b" | split(",")') == [["a", "b"]]
        assert run('"ab" | split("")') == [["a", "b"]]
        assert run('["a", "b"] | join("-")') == ["a-b"]
        assert run('["a", 1] | join') == ["a1"]

    def test_replace_and_slugify(self):
        assert run('"a-b-c" | replace("-"; "+")') == ["a+b+c"]
        assert run('"Hello World" | slugify') == ["hello-world"]

    def test_lines_words_chars(self):
        assert run('"a\\nb" | lines') == [2.0]
        assert run('"a b  c" | words') == [3.0]
        assert run('"ab" | chars') == [2.0]
        assert run('"" | words') == [0.0]

    def test_counts_of_markdown_values(self, query):
        assert query(".code[rust] | chars") == [12.0]
        assert query(".list[1] | lines") == [2.0]

    def test_conversions(self):
        assert run('"42" | tonumber') == [42.0]
        assert run('"x" | tonumber') == [None]
        assert run("3 | tostring") == ["3"]
        assert run("[1, 2] | tostring") == ["[1,2]"]

    def test_type(self, query):
        assert run("1 | type") == ["number"]
        assert run("null | type") == ["null"]
        assert run("[] | type") == ["array"]
        assert query(".h2[0] | type") == ["heading"]
        assert query(". | type") == ["document"]


class TestFilterFunctions:
    """Test filter and predicate functions."""

    def test_select(self, query):
        assert query(".h | select(.level > 1) | text") == [
            "Installation", "From source", "Usage", "Notes",
        ]

    def test_where_contains(self, query):
        assert query('.h | where(contains("Install")) | text') == ["Installation"]
        assert query('.h | where(contains("install")) | text') == []

    def test_contains_on_collections(self):
        assert run("[1, 2] | contains(2)") == [True]
        assert run('{a: 1} | contains("a")') == [True]

    def test_prefix_suffix(self, query):
        assert query('.h | where(startswith("U")) | text') == ["Usage"]
        assert query('.h | where(endswith("tes")) | text') == ["Notes"]

    def test_matches(self, query):
        assert query('.h | select(matches("^[A-Z][a-z]+$")) | text') == [
            "Project", "Installation", "Usage", "Appendix", "Notes",
        ]

    def test_matches_rejects_bad_pattern(self):
        with pytest.raises(InvalidRegex):
            run('"x" | matches("(")')

    def test_any_all_not(self):
        assert run("[1, null, 2] | any") == [True]
        assert run("[1, null] | all") == [False]
        assert run("[] | all") == [True]
        assert run("null | not") == [True]


class TestContentFunctions:
    """Test content accessors."""

    def test_content(self, query):
        assert query(".code[rust] | content") == ["fn main() {}"]
        assert query('.h["Notes"] | content') == [""]

    def test_md(self, query):
        assert query(".code[bash] | md") == ["```bash\npip install treemd\n```"]
        assert query(".h2[Notes] | md") == ["## Notes\n"]

    def test_url_and_lang(self, query):
        assert query(".link | url") == [
            "https://example.com", "Wiki Page", "#installation", "docs/guide.md#start",
        ]
        assert query(".img | src") == ["logo.png"]
        assert query(".code | lang") == ["bash", "python", "rust"]
        assert query(".h2[0] | url") == [None]


class TestAggregationFunctions:
    """Test whole-document aggregations."""

    def test_stats(self, query):
        stats = query("stats")[0]

        assert stats["headings"] == 6
        assert stats["code_blocks"] == 3
        assert stats["links"] == 4
        assert stats["images"] == 1
        assert stats["tables"] == 1
        assert stats["lists"] == 2
        assert stats["words"] > 0

    def test_levels(self, query):
        assert query("levels") == [{"h1": 2.0, "h2": 3.0, "h3": 1.0}]

    def test_langs(self, query):
        assert query("langs") == [{"bash": 1.0, "python": 1.0, "rust": 1.0}]
        assert run("langs", "```\nplain\n```\n") == [{"none": 1.0}]

    def test_types(self, query):
        assert query("types") == [{"external": 1.0, "wikilink": 1.0, "anchor": 1.0, "relative": 1.0}]

    def test_aggregation_ignores_input(self, query):
        assert query(".h2 | levels") == query("levels") * 3


class TestRegistry:
    """Test the function registry."""

    def test_default_registry_has_builtins(self):
        registry = get_default_registry()

        for name in ["count", "select", "text", "stats", "group_by"]:
            assert registry.get_function(name) is not None

    def test_aliases_resolve(self):
        registry = get_default_registry()

        assert registry.get_function("where") is registry.get_function("select")
        assert registry.get_function("length") is registry.get_function("count")

    def test_duplicate_registration_rejected(self):
        registry = FunctionRegistry()
        registry.register(Function("one", lambda args, ctx: [1.0]))

        with pytest.raises(ValueError):
            registry.register(Function("one", lambda args, ctx: [2.0]))

    def test_custom_registry(self):
        registry = FunctionRegistry()
        registry.register(Function("double", lambda args, ctx: [args[0] * 2], aliases=["twice"]))
        engine = Engine(parse_markdown(""), registry=registry)

        assert engine.execute("3 | twice") == [6.0]

    def test_suggestions(self):
        suggestions = get_default_registry().suggest_function("selct")

        assert suggestions[0] == "select"
        assert len(suggestions) <= 5

    def test_by_category(self):
        categories = get_default_registry().by_category()

        assert {"collection", "string", "filter", "content", "aggregation"} <= set(categories)

    def test_arity(self):
        assert Arity.exact(1).accepts(1)
        assert not Arity.exact(1).accepts(2)
        assert Arity.between(0, 1).accepts(0)
        assert Arity.at_least(1).accepts(10)


class TestRegexGuard:
    """Test the regex compilation guard."""

    def test_valid_pattern_compiles(self):
        assert compile_regex(r"^v\d+").search("v12")

    def test_too_long(self):
        with pytest.raises(InvalidRegex, match="longer than"):
            compile_regex("a" * 1000)

    def test_nested_quantifier(self):
        with pytest.raises(InvalidRegex, match="nested quantifiers"):
            compile_regex("(a*)*b")

    def test_alternation_backtracking_is_not_caught_statically(self):
        # No nested quantifier, so only the match timeout protects this one
        assert compile_regex("^(a|a)+$").pattern == "^(a|a)+$"

    def test_search_timeout_becomes_invalid_regex(self):
        pattern = MagicMock(pattern="^(a|a)+$")
        pattern.search.side_effect = TimeoutError("regex timed out")

        with pytest.raises(InvalidRegex, match="timed out"):
            regex_search(pattern, "a" * 34 + "!")
        assert pattern.search.call_args.kwargs["timeout"] == functions.REGEX_TIMEOUT

    @pytest.mark.parametrize("expression", [
        '.h[/^(a|a)+$/]',
        '.h | matches("^(a|a)+$")',
    ])
    def test_timeout_applies_to_filters_and_matches(self, expression):
        pattern = MagicMock(pattern="^(a|a)+$")
        pattern.search.side_effect = TimeoutError("regex timed out")

        with patch("treemd.query.functions._compile", return_value=pattern):
            with pytest.raises(InvalidRegex, match="timed out"):
                run(expression, "# " + "a" * 34 + "!\n")

    def test_backtracking_pattern_finishes_quickly(self, monkeypatch):
        monkeypatch.setattr(functions, "REGEX_TIMEOUT", 0.1)
        started = time.monotonic()

        try:
            result = run('.h[/^(a|a)+$/]', "# " + "a" * 34 + "!\n")
        except InvalidRegex as e:
            assert "timed out" in str(e)
        else:
            assert result == []
        assert time.monotonic() - started < 5
