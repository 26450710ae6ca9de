"""Request validation — composable field rules and pluggable schemas.

Usage::

    from wren.validation import required, integer, max_length

    @app.get("/users/:id", params={"id": [required, integer]})
    async def show(id: str): ...

    @app.post("/posts", body={"title": [required, max_length(200)]})
    async def create(body: dict): ...

Failures become a 422 response listing the field errors.
"""

from collections.abc import Mapping
from typing import Any

from wren.validation.result import ValidationResult
from wren.validation.rules import (
    Rule,
    between,
    integer,
    matches,
    max_length,
    min_length,
    number,
    one_of,
    required,
    slug,
    uuid,
)
from wren.validation.schema import RuleValidator, SchemaValidator, check

__all__ = [
    "Rule",
    "RuleValidator",
    "SchemaValidator",
    "ValidationResult",
    "between",
    "check",
    "integer",
    "matches",
    "max_length",
    "min_length",
    "number",
    "one_of",
    "required",
    "slug",
    "uuid",
    "validate",
]


def validate(data: Mapping[str, Any], rules: Mapping[str, list[Rule]]) -> ValidationResult:
    """Check each field in *rules* against *data*.

    Values are checked in their string form; a missing field reads as
    ``""``. After a failed ``required`` check the field's other rules are
    skipped. Fields not named in *rules* pass through untouched.

    Example::

        result = validate({"id": "abc"}, {"id": [required, integer]})
        # result.errors == {"id": ["Must be a whole number"]}
    """
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = dict(data)

    for field_name, field_rules in rules.items():
        raw = data.get(field_name)
        value = "" if raw is None else raw if isinstance(raw, str) else str(raw)

        field_errors: list[str] = []
        for rule in field_rules:
            error = rule(value)
            if error is None:
                continue
            field_errors.append(error)
            if rule is required:
                break
        if field_errors:
            errors[field_name] = field_errors

    return ValidationResult(data=None if errors else cleaned, errors=errors)
