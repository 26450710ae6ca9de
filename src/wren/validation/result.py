"""Validation result — immutable container for validated data or errors."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """The outcome of validating one request part against a schema.

    The result is falsy when invalid, so you can write::

        result = validate(query, rules)
        if not result:
            raise ValidationError(result.errors, "query")

    ``data`` holds the cleaned value: a dict of the validated fields for
    rule schemas, or whatever a callable schema returned.

    ``errors`` maps field names to lists of error messages::

        {"title": ["This field is required"],
         "email": ["Must be a valid email address"]}

    Errors that don't belong to a single field are filed under ``""``.
    """

    data: Any = None
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        """True if validation passed with no errors."""
        return not self.errors

    def __bool__(self) -> bool:
        return self.is_valid
