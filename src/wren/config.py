"""Application configuration.

AppConfig is a frozen dataclass — immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, strict_negotiation=True)
    """

    debug: bool = False

    # Content negotiation
    default_media_type: str = "application/json"
    representations: tuple[str, ...] = ("application/json",)
    strict_negotiation: bool = False  # 406 instead of falling back to the default

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB

    # Background tasks (per task, seconds; None for no limit)
    background_timeout: float | None = 30.0

    # Error payloads
    include_error_path: bool = True

    # Logging
    log_level: str = "info"
