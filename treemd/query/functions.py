"""
Built-in functions for the tql query language.

Functions are grouped by category:
- collection: count, first, last, limit, skip, sort, unique, group_by, ...
- string: text, upper, lower, split, join, replace, slugify, ...
- filter: select, contains, startswith, matches, any, all, not
- content: content, md, url, lang
- aggregation: stats, levels, langs, types (read the whole document)

Every implementation has the signature `(args, context) -> list`. For
functions that consume the piped value, `args[0]` is that value and the
written arguments follow.
"""

import functools
import json
import logging
import math
from typing import Any, Dict, List

import regex

from ..constants import MAX_REGEX_LENGTH, REGEX_TIMEOUT
from ..parser.content import slugify as slugify_text
from .errors import InvalidRegex
from .registry import Arity, Function, FunctionRegistry
from .value import (
    CodeValue, DocumentValue, HeadingValue, ImageValue, LinkValue,
    add_values, get_property, is_number, is_truthy, kind, property_names,
    sort_key, to_json, to_markdown, to_text, values_equal,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Regex guard
# =============================================================================

# A quantified group that itself contains an unbounded quantifier, e.g. (a+)+
_NESTED_QUANTIFIER = regex.compile(r"\((?:[^()\\]|\\.)*[+*](?:[^()\\]|\\.)*\)[+*{]")


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> "regex.Pattern":
    return regex.compile(pattern)


def compile_regex(pattern: str, span=None) -> "regex.Pattern":
    """
    Compile a user-supplied pattern, rejecting oversized or catastrophic ones.

    Raises:
        InvalidRegex: if the pattern is too long, has nested unbounded
            quantifiers, or does not compile
    """
    if len(pattern) > MAX_REGEX_LENGTH:
        raise InvalidRegex(pattern, f"pattern longer than {MAX_REGEX_LENGTH} characters", span)
    if _NESTED_QUANTIFIER.search(pattern):
        raise InvalidRegex(pattern, "nested quantifiers are not allowed", span)
    try:
        return _compile(pattern)
    except regex.error as e:
        raise InvalidRegex(pattern, str(e), span)


def regex_search(pattern: "regex.Pattern", text: str, span=None) -> bool:
    """
    Search `text` with a compiled pattern under REGEX_TIMEOUT.

    Backtracking that the static checks miss, e.g. ^(a|a)+$, is cut off
    by the timeout.

    Raises:
        InvalidRegex: if the search does not finish in time
    """
    try:
        return pattern.search(text, timeout=REGEX_TIMEOUT) is not None
    except TimeoutError:
        logger.debug(f"Regex /{pattern.pattern}/ timed out on {len(text)} characters")
        raise InvalidRegex(pattern.pattern, f"match timed out after {REGEX_TIMEOUT:g}s", span)


# =============================================================================
# Helpers
# =============================================================================

def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def _as_int(value: Any, default: int = 0) -> int:
    number = value if is_number(value) else None
    if number is None:
        try:
            number = float(to_text(value))
        except ValueError:
            return default
    if not math.isfinite(number):
        return default
    return int(number)


def _key_text(value: Any) -> str:
    """Stable identity for de-duplication."""
    return json.dumps(to_json(value), sort_keys=True, ensure_ascii=False)


# =============================================================================
# Collection
# =============================================================================

def fn_count(args, ctx):
    value = args[0]
    if isinstance(value, (list, dict, str)):
        return [float(len(value))]
    if value is None:
        return [0.0]
    return [1.0]


def fn_first(args, ctx):
    value = args[0]
    if isinstance(value, list):
        return value[:1]
    return [value]


def fn_last(args, ctx):
    value = args[0]
    if isinstance(value, list):
        return value[-1:]
    return [value]


def fn_limit(args, ctx):
    n = max(_as_int(args[1]), 0)
    return [_as_list(args[0])[:n]]


def fn_skip(args, ctx):
    n = max(_as_int(args[1]), 0)
    return [_as_list(args[0])[n:]]


def fn_nth(args, ctx):
    items = _as_list(args[0])
    n = _as_int(args[1])
    if n < 0:
        n += len(items)
    if 0 <= n < len(items):
        return [items[n]]
    return []


def fn_reverse(args, ctx):
    value = args[0]
    if isinstance(value, str):
        return [value[::-1]]
    return [list(reversed(_as_list(value)))]


def fn_sort(args, ctx):
    return [sorted(_as_list(args[0]), key=sort_key)]


def fn_sort_by(args, ctx):
    key = to_text(args[1])
    return [sorted(_as_list(args[0]), key=lambda item: sort_key(get_property(item, key)))]


def fn_unique(args, ctx):
    seen = set()
    result = []
    for item in _as_list(args[0]):
        marker = _key_text(item)
        if marker not in seen:
            seen.add(marker)
            result.append(item)
    return [result]


def _flatten(items: List[Any], depth: int) -> List[Any]:
    result = []
    for item in items:
        if isinstance(item, list) and depth > 0:
            result.extend(_flatten(item, depth - 1))
        else:
            result.append(item)
    return result


def fn_flatten(args, ctx):
    depth = _as_int(args[1], 1) if len(args) > 1 else 1_000_000
    return [_flatten(_as_list(args[0]), depth)]


def fn_group_by(args, ctx):
    key = to_text(args[1])
    groups: Dict[str, List[Any]] = {}
    for item in _as_list(args[0]):
        groups.setdefault(to_text(get_property(item, key)), []).append(item)
    return [groups]


def fn_min(args, ctx):
    items = _as_list(args[0])
    return [min(items, key=sort_key) if items else None]


def fn_max(args, ctx):
    items = _as_list(args[0])
    return [max(items, key=sort_key) if items else None]


def fn_add(args, ctx):
    items = _as_list(args[0])
    if not items:
        return [None]
    total = items[0]
    for item in items[1:]:
        total = add_values(total, item)
    return [total]


def fn_keys(args, ctx):
    value = args[0]
    if isinstance(value, list):
        return [[float(i) for i in range(len(value))]]
    return [property_names(value)]


def fn_values(args, ctx):
    value = args[0]
    if isinstance(value, dict):
        return [list(value.values())]
    if isinstance(value, list):
        return [value]
    return [[get_property(value, name) for name in property_names(value)]]


def fn_has(args, ctx):
    value, key = args[0], args[1]
    if isinstance(value, list):
        index = _as_int(key, -1)
        return [0 <= index < len(value)]
    return [to_text(key) in property_names(value)]


# =============================================================================
# String
# =============================================================================

def fn_text(args, ctx):
    return [to_text(args[0])]


def fn_upper(args, ctx):
    return [to_text(args[0]).upper()]


def fn_lower(args, ctx):
    return [to_text(args[0]).lower()]


def fn_trim(args, ctx):
    return [to_text(args[0]).strip()]


def fn_split(args, ctx):
    text = to_text(args[0])
    sep = to_text(args[1]) if len(args) > 1 else None
    if sep == "":
        return [list(text)]
    return [text.split(sep)]


def fn_join(args, ctx):
    sep = to_text(args[1]) if len(args) > 1 else ""
    return [sep.join(to_text(item) for item in _as_list(args[0]))]


def fn_replace(args, ctx):
    return [to_text(args[0]).replace(to_text(args[1]), to_text(args[2]))]


def fn_slugify(args, ctx):
    return [slugify_text(to_text(args[0]))]


def fn_lines(args, ctx):
    return [float(len(to_text(args[0]).splitlines()))]


def fn_words(args, ctx):
    return [float(len(to_text(args[0]).split()))]


def fn_chars(args, ctx):
    return [float(len(to_text(args[0])))]


def fn_tostring(args, ctx):
    value = args[0]
    if isinstance(value, str):
        return [value]
    return [to_text(value)]


def fn_tonumber(args, ctx):
    value = args[0]
    if is_number(value):
        return [float(value)]
    try:
        return [float(to_text(value).strip())]
    except ValueError:
        return [None]


def fn_type(args, ctx):
    return [kind(args[0])]


# =============================================================================
# Filter
# =============================================================================

def fn_select(args, ctx):
    return [args[0]] if is_truthy(args[1]) else []


def fn_contains(args, ctx):
    value, needle = args[0], args[1]
    if isinstance(value, list):
        return [any(values_equal(item, needle) for item in value)]
    if isinstance(value, dict):
        return [to_text(needle) in value]
    return [to_text(needle) in to_text(value)]


def fn_startswith(args, ctx):
    return [to_text(args[0]).startswith(to_text(args[1]))]


def fn_endswith(args, ctx):
    return [to_text(args[0]).endswith(to_text(args[1]))]


def fn_matches(args, ctx):
    pattern = compile_regex(to_text(args[1]))
    return [regex_search(pattern, to_text(args[0]))]


def fn_any(args, ctx):
    value = args[0]
    if isinstance(value, list):
        return [any(is_truthy(item) for item in value)]
    return [is_truthy(value)]


def fn_all(args, ctx):
    value = args[0]
    if isinstance(value, list):
        return [all(is_truthy(item) for item in value)]
    return [is_truthy(value)]


def fn_not(args, ctx):
    return [not is_truthy(args[0])]


# =============================================================================
# Content
# =============================================================================

def fn_content(args, ctx):
    value = args[0]
    if isinstance(value, (DocumentValue, HeadingValue, CodeValue)):
        return [value.content]
    return [to_text(value)]


def fn_md(args, ctx):
    return [to_markdown(args[0])]


def fn_url(args, ctx):
    value = args[0]
    if isinstance(value, LinkValue):
        return [value.url]
    if isinstance(value, ImageValue):
        return [value.src]
    return [None]


def fn_lang(args, ctx):
    value = args[0]
    if isinstance(value, CodeValue):
        return [value.language]
    return [None]


# =============================================================================
# Aggregation
# =============================================================================

def fn_stats(args, ctx):
    return [{
        "headings": float(len(ctx.headings)),
        "code_blocks": float(len(ctx.code_blocks)),
        "links": float(len(ctx.links)),
        "images": float(len(ctx.images)),
        "tables": float(len(ctx.tables)),
        "lists": float(len(ctx.lists)),
        "words": float(ctx.document.word_count),
    }]


def fn_levels(args, ctx):
    counts: Dict[str, float] = {}
    for level in sorted({h.level for h in ctx.headings}):
        counts[f"h{level}"] = float(sum(1 for h in ctx.headings if h.level == level))
    return [counts]


def fn_langs(args, ctx):
    counts: Dict[str, float] = {}
    for code in ctx.code_blocks:
        name = code.language or "none"
        counts[name] = counts.get(name, 0.0) + 1
    return [counts]


def fn_types(args, ctx):
    counts: Dict[str, float] = {}
    for link in ctx.links:
        counts[link.link_type] = counts.get(link.link_type, 0.0) + 1
    return [counts]


# =============================================================================
# Registration
# =============================================================================

BUILTINS = [
    # collection
    Function("count", fn_count, aliases=["length", "len", "size"], category="collection",
             description="Number of items, characters or keys"),
    Function("first", fn_first, aliases=["head"], category="collection",
             description="First element of an array"),
    Function("last", fn_last, category="collection",
             description="Last element of an array"),
    Function("limit", fn_limit, Arity.exact(1), aliases=["take"], category="collection",
             description="First N elements"),
    Function("skip", fn_skip, Arity.exact(1), aliases=["drop"], category="collection",
             description="All but the first N elements"),
    Function("nth", fn_nth, Arity.exact(1), category="collection",
             description="Element at index N (negative counts from the end)"),
    Function("reverse", fn_reverse, category="collection",
             description="Reverse an array or string"),
    Function("sort", fn_sort, category="collection",
             description="Sort an array"),
    Function("sort_by", fn_sort_by, Arity.exact(1), category="collection",
             description="Sort an array by a property name"),
    Function("unique", fn_unique, category="collection",
             description="Remove duplicates, keeping the first"),
    Function("flatten", fn_flatten, Arity.between(0, 1), category="collection",
             description="Flatten nested arrays (optionally to a depth)"),
    Function("group_by", fn_group_by, Arity.exact(1), category="collection",
             description="Group an array into an object keyed by a property"),
    Function("min", fn_min, category="collection",
             description="Smallest element"),
    Function("max", fn_max, category="collection",
             description="Largest element"),
    Function("add", fn_add, category="collection",
             description="Sum numbers or concatenate strings/arrays"),
    Function("keys", fn_keys, category="collection",
             description="Object keys or property names"),
    Function("values", fn_values, category="collection",
             description="Object values"),
    Function("has", fn_has, Arity.exact(1), category="collection",
             description="Whether a key or property exists"),

    # string
    Function("text", fn_text, category="string",
             description="Text representation"),
    Function("upper", fn_upper, category="string", description="Uppercase"),
    Function("lower", fn_lower, category="string", description="Lowercase"),
    Function("trim", fn_trim, category="string",
             description="Strip surrounding whitespace"),
    Function("split", fn_split, Arity.between(0, 1), category="string",
             description="Split on a separator (whitespace by default)"),
    Function("join", fn_join, Arity.between(0, 1), category="string",
             description="Join array items with a separator"),
    Function("replace", fn_replace, Arity.exact(2), category="string",
             description="Replace all occurrences"),
    Function("slugify", fn_slugify, category="string",
             description="URL-friendly anchor slug"),
    Function("lines", fn_lines, category="string", description="Count lines"),
    Function("words", fn_words, category="string", description="Count words"),
    Function("chars", fn_chars, category="string", description="Count characters"),
    Function("tostring", fn_tostring, category="string",
             description="Convert to string"),
    Function("tonumber", fn_tonumber, category="string",
             description="Parse a number (null if not numeric)"),
    Function("type", fn_type, category="string",
             description="Type name of the value"),

    # filter
    Function("select", fn_select, Arity.exact(1), aliases=["where", "filter"], category="filter",
             description="Keep the value when the condition is truthy"),
    Function("contains", fn_contains, Arity.exact(1), aliases=["includes"], category="filter",
             description="Substring, array element or object key test"),
    Function("startswith", fn_startswith, Arity.exact(1), category="filter",
             description="Text starts with a prefix"),
    Function("endswith", fn_endswith, Arity.exact(1), category="filter",
             description="Text ends with a suffix"),
    Function("matches", fn_matches, Arity.exact(1), category="filter",
             description="Text matches a regex"),
    Function("any", fn_any, category="filter",
             description="Any array item is truthy"),
    Function("all", fn_all, category="filter",
             description="All array items are truthy"),
    Function("not", fn_not, category="filter", description="Negate truthiness"),

    # content
    Function("content", fn_content, category="content",
             description="Body content of a heading section, code block or document"),
    Function("md", fn_md, category="content", description="Raw markdown"),
    Function("url", fn_url, aliases=["href", "src"], category="content",
             description="Link URL or image source"),
    Function("lang", fn_lang, category="content",
             description="Code block language"),

    # aggregation
    Function("stats", fn_stats, takes_input=False, category="aggregation",
             description="Element counts for the document"),
    Function("levels", fn_levels, takes_input=False, category="aggregation",
             description="Heading counts per level"),
    Function("langs", fn_langs, takes_input=False, category="aggregation",
             description="Code block counts per language"),
    Function("types", fn_types, takes_input=False, category="aggregation",
             description="Link counts per type"),
]


def register_builtins(registry: FunctionRegistry) -> None:
    """Register every built-in function."""
    for function in BUILTINS:
        registry.register(function)
