"""Naming-convention predicates for dataLayer keys and event names."""

import re
from typing import Any, Callable, Dict, Optional, Pattern, Union


SNAKE = "snake"
CAMEL = "camel"
PASCAL = "pascal"
NAMESPACED = "namespaced"

# Conventions that may be configured as the preferred case
PREFERRED_CASES = (SNAKE, CAMEL, PASCAL)

_COMMON_PATTERNS: Dict[str, Pattern[str]] = {
    SNAKE: re.compile(r"[a-z0-9_]+"),
    CAMEL: re.compile(r"[a-z0-9]+(?:[A-Z][a-z0-9]+)*"),
    PASCAL: re.compile(r"[A-Z][a-z0-9]+(?:[A-Z][a-z0-9]+)*"),
    # Prefix match: a leading segment followed by a literal dot
    NAMESPACED: re.compile(r"[a-zA-Z0-9_]+\."),
}


def get_common_pattern(name: str) -> Union[Pattern[str], str]:
    """Return the compiled pattern for a named convention.

    An unrecognized name is returned unchanged; callers are expected to
    treat that as a configuration error.
    """
    return _COMMON_PATTERNS.get(name, name)


def _test(name: str, value: Any) -> bool:
    if not isinstance(value, str):
        return False
    pattern = _COMMON_PATTERNS[name]
    if name == NAMESPACED:
        return pattern.match(value) is not None
    return pattern.fullmatch(value) is not None


def is_snake_case(value: Any) -> bool:
    return _test(SNAKE, value)


def is_camel_case(value: Any) -> bool:
    return _test(CAMEL, value)


def is_pascal_case(value: Any) -> bool:
    return _test(PASCAL, value)


def is_namespaced(value: Any) -> bool:
    """True for values like ``checkout.step_completed``."""
    return _test(NAMESPACED, value)


_PREDICATES: Dict[str, Callable[[Any], bool]] = {
    SNAKE: is_snake_case,
    CAMEL: is_camel_case,
    PASCAL: is_pascal_case,
    NAMESPACED: is_namespaced,
}


def is_known_case(name: Any) -> bool:
    return isinstance(name, str) and name in PREFERRED_CASES


def get_case_predicate(name: str) -> Optional[Callable[[Any], bool]]:
    """Predicate for a named convention, or None when unrecognized."""
    return _PREDICATES.get(name)


class CaseMatcher:
    """Case predicates bound to a configured preferred convention."""

    def __init__(self, preferred_case: str = SNAKE):
        self.preferred_case = preferred_case
        self._preferred = get_case_predicate(preferred_case) if is_known_case(preferred_case) else None

    @property
    def is_valid(self) -> bool:
        """Whether the preferred case names a supported convention."""
        return self._preferred is not None

    def is_preferred_case(self, value: Any) -> bool:
        if self._preferred is None:
            raise ValueError(f"Unrecognized case convention: {self.preferred_case!r}")
        return self._preferred(value)

    is_snake_case = staticmethod(is_snake_case)
    is_camel_case = staticmethod(is_camel_case)
    is_pascal_case = staticmethod(is_pascal_case)
    is_namespaced = staticmethod(is_namespaced)
