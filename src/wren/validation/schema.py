"""Schema validators — the seam between the pipeline and validation.

The pipeline never inspects a schema itself. It hands ``(schema, value)``
to a ``SchemaValidator`` and gets back a ``ValidationResult``. The default
``RuleValidator`` understands two kinds of schema:

- a rules dict, ``{"field": [rule, ...]}``, checked with ``validate()``
- a callable, ``schema(value)``, returning the cleaned value or raising
  ``ValueError`` / ``TypeError`` with a message

Plug in another validator (a dataclass or model library, say) by passing
any object with a matching ``validate`` method to ``App(validator=...)``.
"""

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from wren.validation.result import ValidationResult


@runtime_checkable
class SchemaValidator(Protocol):
    """Anything that can check a value against a schema."""

    def validate(self, schema: Any, value: Any) -> ValidationResult: ...


class RuleValidator:
    """Default validator: rules dicts and callable schemas."""

    __slots__ = ()

    def validate(self, schema: Any, value: Any) -> ValidationResult:
        if isinstance(schema, Mapping):
            from wren.validation import validate

            if value is None:
                value = {}
            if not isinstance(value, Mapping):
                return ValidationResult(errors={"": ["Expected an object"]})
            return validate(value, schema)

        if callable(schema):
            try:
                cleaned = schema(value)
            except (ValueError, TypeError) as exc:
                return ValidationResult(errors={"": [str(exc) or "Invalid value"]})
            return ValidationResult(data=cleaned)

        msg = f"Unsupported schema {schema!r}: expected a rules dict or a callable"
        raise TypeError(msg)


def check(validator: SchemaValidator, schema: Any, value: Any) -> ValidationResult:
    """Run *validator*, treating a missing schema as "anything goes"."""
    if schema is None:
        return ValidationResult(data=value)
    return validator.validate(schema, value)
