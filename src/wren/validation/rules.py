"""Built-in field rules for path, query, and body validation.

A rule is a callable taking the field's string form and returning an
error message, or ``None`` when the value is acceptable::

    def rule(value: str) -> str | None: ...

Parameterized rules are factories that return a rule::

    @app.get("/users/:id", params={"id": [required, integer]})
    @app.get("/search", query={"q": [required, max_length(100)]})

Any callable with that signature can sit in a rules list.
"""

import re
import uuid as _uuid
from collections.abc import Callable
from typing import TypeAlias

Rule: TypeAlias = Callable[[str], str | None]


def required(value: str) -> str | None:
    """Field must be present and not blank."""
    if not value.strip():
        return "This field is required"
    return None


def max_length(n: int) -> Rule:
    """At most *n* characters."""

    def check(value: str) -> str | None:
        return f"Must be at most {n} characters" if len(value) > n else None

    return check


def min_length(n: int) -> Rule:
    """At least *n* characters."""

    def check(value: str) -> str | None:
        return f"Must be at least {n} characters" if len(value) < n else None

    return check


def integer(value: str) -> str | None:
    """A whole number, e.g. a numeric path id."""
    try:
        int(value)
    except (ValueError, TypeError):
        return "Must be a whole number"
    return None


def number(value: str) -> str | None:
    try:
        float(value)
    except (ValueError, TypeError):
        return "Must be a number"
    return None


def between(low: float, high: float) -> Rule:
    """Numeric value within ``[low, high]``."""

    def check(value: str) -> str | None:
        try:
            parsed = float(value)
        except (ValueError, TypeError):
            return "Must be a number"
        if not low <= parsed <= high:
            return f"Must be between {low:g} and {high:g}"
        return None

    return check


def uuid(value: str) -> str | None:
    """A canonical UUID string."""
    try:
        _uuid.UUID(value)
    except ValueError:
        return "Must be a valid UUID"
    return None


def one_of(*choices: str) -> Rule:
    allowed = frozenset(choices)

    def check(value: str) -> str | None:
        if value not in allowed:
            return f"Must be one of: {', '.join(sorted(allowed))}"
        return None

    return check


def matches(pattern: str, message: str | None = None) -> Rule:
    """Whole value must match the regex *pattern*."""
    compiled = re.compile(pattern)

    def check(value: str) -> str | None:
        if compiled.fullmatch(value) is None:
            return message or f"Must match pattern: {pattern}"
        return None

    return check


_SLUG_RE = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


def slug(value: str) -> str | None:
    """Lower-case words joined by hyphens: ``my-first-post``."""
    if _SLUG_RE.fullmatch(value) is None:
        return "Must be a lower-case slug"
    return None
