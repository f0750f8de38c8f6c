"""
Constants for treemd.

These constants are used by the parser and the query engine for
sensible defaults. Some are also available via the config system.
"""

# Markdown structure
MAX_HEADING_LEVEL = 6

# Link type tags, as exposed by `.link[...]` and the `types` function
LINK_TYPES = ("anchor", "external", "relative", "wikilink")

# Bare words inside `.code[...]` that are read as a language filter
# instead of a fuzzy content filter.
KNOWN_LANGUAGES = frozenset({
    "bash", "c", "clojure", "cpp", "csharp", "cs", "css", "dart", "diff",
    "dockerfile", "elixir", "erlang", "go", "graphql", "haskell", "html",
    "ini", "java", "javascript", "js", "json", "jsx", "julia", "kotlin",
    "lua", "make", "makefile", "markdown", "md", "mermaid", "nix", "ocaml",
    "perl", "php", "powershell", "ps1", "py", "python", "r", "rb", "ruby",
    "rs", "rust", "scala", "sh", "shell", "sql", "swift", "text", "toml",
    "ts", "tsx", "typescript", "txt", "xml", "yaml", "yml", "zig", "zsh",
})

# Regex guards for `[/re/]` filters and `matches()`
MAX_REGEX_LENGTH = 512
# Seconds a single match may run before it is abandoned
REGEX_TIMEOUT = 1.0

# Function name suggestions
MAX_SUGGESTIONS = 5
SUGGESTION_CUTOFF = 0.6
