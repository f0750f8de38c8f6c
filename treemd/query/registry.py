"""
Function registry for the tql query language.

Each built-in is a Function entry: a canonical name, aliases, an arity
over the *written* arguments, whether it consumes the piped value, and
the callable implementing it. The shared default registry is built
lazily and is not mutated afterwards; build your own FunctionRegistry to
add functions in isolation.
"""

import difflib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..constants import MAX_SUGGESTIONS, SUGGESTION_CUTOFF

logger = logging.getLogger(__name__)

# (args, context) -> results
FunctionImpl = Callable[[List[Any], Any], List[Any]]


@dataclass(frozen=True)
class Arity:
    """Accepted number of written arguments."""
    minimum: int
    maximum: Optional[int]

    @classmethod
    def exact(cls, n: int) -> "Arity":
        return cls(n, n)

    @classmethod
    def at_least(cls, n: int) -> "Arity":
        return cls(n, None)

    @classmethod
    def between(cls, low: int, high: int) -> "Arity":
        return cls(low, high)

    def accepts(self, count: int) -> bool:
        if count < self.minimum:
            return False
        return self.maximum is None or count <= self.maximum

    def describe(self) -> str:
        if self.maximum is None:
            return f"at least {self.minimum}"
        if self.minimum == self.maximum:
            return str(self.minimum)
        return f"{self.minimum} to {self.maximum}"


@dataclass
class Function:
    """
    A registered function.

    Attributes:
        name: Canonical name
        func: Implementation, called as func(args, context)
        arity: Accepted written argument count
        takes_input: Whether the piped value is prepended to the arguments
        aliases: Alternative names resolving to this entry
        description: One-line help text
        category: Help grouping (collection, string, filter, ...)
    """
    name: str
    func: FunctionImpl
    arity: Arity = field(default_factory=lambda: Arity.exact(0))
    takes_input: bool = True
    aliases: List[str] = field(default_factory=list)
    description: str = ""
    category: str = "general"

    def call(self, args: List[Any], context: Any) -> List[Any]:
        return self.func(args, context)


class FunctionRegistry:
    """Name and alias lookup for query functions."""

    def __init__(self):
        self._functions: Dict[str, Function] = {}
        self._lookup: Dict[str, Function] = {}

    def register(self, function: Function) -> None:
        """
        Register a function under its name and aliases.

        Raises:
            ValueError: if the name or an alias is already taken
        """
        for name in [function.name] + list(function.aliases):
            if name in self._lookup:
                raise ValueError(f"Function name already registered: {name}")
        self._functions[function.name] = function
        for name in [function.name] + list(function.aliases):
            self._lookup[name] = function

    def get_function(self, name: str) -> Optional[Function]:
        """Exact lookup by name or alias."""
        return self._lookup.get(name)

    def names(self) -> List[str]:
        """All callable names, aliases included, sorted."""
        return sorted(self._lookup)

    def functions(self) -> List[Function]:
        """Canonical entries in registration order."""
        return list(self._functions.values())

    def by_category(self) -> Dict[str, List[Function]]:
        grouped: Dict[str, List[Function]] = {}
        for function in self._functions.values():
            grouped.setdefault(function.category, []).append(function)
        return grouped

    def suggest_function(self, name: str) -> List[str]:
        """
        Suggest known names for a misspelled one.

        Close matches by similarity ratio come first, then names sharing
        a prefix or containing the input. At most MAX_SUGGESTIONS.
        """
        candidates = self.names()
        suggestions = difflib.get_close_matches(
            name, candidates, n=MAX_SUGGESTIONS, cutoff=SUGGESTION_CUTOFF
        )

        lowered = name.lower()
        if lowered:
            for candidate in candidates:
                if candidate.startswith(lowered) or lowered in candidate:
                    suggestions.append(candidate)

        seen = set()
        unique = []
        for suggestion in suggestions:
            if suggestion not in seen:
                seen.add(suggestion)
                unique.append(suggestion)
        return unique[:MAX_SUGGESTIONS]


# Global registry instance
_default_registry: Optional[FunctionRegistry] = None


def get_default_registry() -> FunctionRegistry:
    """Get the shared registry with all built-in functions."""
    global _default_registry
    if _default_registry is None:
        from .functions import register_builtins

        registry = FunctionRegistry()
        register_builtins(registry)
        logger.debug(f"Built function registry with {len(registry.names())} names")
        _default_registry = registry
    return _default_registry
