"""Content negotiation — pick a representation from an ``Accept`` header.

Implements the proactive negotiation rules of RFC 7231 section 5.3.2:
media ranges with optional ``q`` weights, matched against the media types
a route can produce. Pure functions over immutable values, safe to call
from any number of concurrent requests.

"Not acceptable" is a result, not an exception. The pipeline decides
whether ``acceptable=False`` is fatal (strict routes answer 406) or
whether the default representation is served anyway.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass

# Specificity ranks, most specific last
ANY = 0  # */*
TYPE_WILDCARD = 1  # text/*
EXACT = 2  # text/html

SHORTHANDS: dict[str, str] = {
    "json": "application/json",
    "html": "text/html",
    "xml": "application/xml",
    "text": "text/plain",
}


@dataclass(frozen=True, slots=True)
class MediaRange:
    """One comma-separated unit of an ``Accept`` header."""

    type: str
    subtype: str
    quality: float
    position: int

    @property
    def specificity(self) -> int:
        if self.type == "*":
            return ANY
        if self.subtype == "*":
            return TYPE_WILDCARD
        return EXACT

    def matches(self, media_type: str) -> bool:
        """Whether this range covers *media_type* (parameters ignored)."""
        if self.type == "*":
            return True
        main, _, sub = _essence(media_type).partition("/")
        if self.subtype == "*":
            return main == self.type
        return main == self.type and sub == self.subtype


@dataclass(frozen=True, slots=True)
class NegotiationResult:
    """The representation chosen for one request."""

    selected: str
    quality: float
    acceptable: bool


def _essence(media_type: str) -> str:
    """``"Application/JSON; charset=utf-8"`` -> ``"application/json"``."""
    return media_type.split(";", 1)[0].strip().lower()


def _parse_quality(params: Sequence[str]) -> float:
    """Read the ``q`` parameter; anything invalid counts as 1.0."""
    for param in params:
        name, sep, value = param.partition("=")
        if not sep or name.strip().lower() != "q":
            continue
        try:
            quality = float(value.strip())
        except ValueError:
            return 1.0
        if not math.isfinite(quality) or not 0.0 <= quality <= 1.0:
            return 1.0
        return quality
    return 1.0


def parse_accept(header: str) -> list[MediaRange]:
    """Parse an ``Accept`` header into media ranges, in header order.

    Units without a ``type/subtype`` form are skipped. A malformed or
    out-of-range ``q`` does not disqualify its range; the range keeps
    the default weight of 1.0.
    """
    ranges: list[MediaRange] = []
    for unit in header.split(","):
        parts = [p.strip() for p in unit.split(";")]
        main, sep, sub = parts[0].lower().partition("/")
        main, sub = main.strip(), sub.strip()
        if not sep or not main or not sub:
            continue
        if main == "*" and sub != "*":
            continue
        ranges.append(
            MediaRange(
                type=main,
                subtype=sub,
                quality=_parse_quality(parts[1:]),
                position=len(ranges),
            )
        )
    return ranges


def negotiate(
    accept: str | None,
    supported: Sequence[str],
    default: str,
) -> NegotiationResult:
    """Select the best of *supported* for the client's *accept* header.

    - No header (or only whitespace), no parseable range, or nothing
      supported: the default, fully acceptable.
    - Otherwise every (range, representation) pair where the range covers
      the representation is eligible. The highest quality wins; ties go to
      the range listed first in the header, then to representation order.
    - A ``q=0`` range refuses what it covers: those representations are
      not eligible under any less specific range, and zero-quality pairs
      never win.
    - Nothing eligible: the default, with ``acceptable=False``.

    Examples::

        negotiate(None, ["application/json"], "application/json")
        # -> NegotiationResult("application/json", 1.0, True)

        negotiate("text/html;q=0.8, application/json;q=0.8",
                  ["application/json", "text/html"], "application/json")
        # -> NegotiationResult("text/html", 0.8, True)
    """
    if not supported or accept is None or not accept.strip():
        return NegotiationResult(selected=default, quality=1.0, acceptable=True)

    ranges = parse_accept(accept)
    if not ranges:
        return NegotiationResult(selected=default, quality=1.0, acceptable=True)

    # Highest specificity at which each representation was refused (q=0)
    refused: dict[int, int] = {}
    for media_range in ranges:
        if media_range.quality > 0:
            continue
        for index, media_type in enumerate(supported):
            if media_range.matches(media_type):
                refused[index] = max(refused.get(index, ANY), media_range.specificity)

    best: tuple[tuple[float, int, int], str] | None = None
    for media_range in ranges:
        if media_range.quality <= 0:
            continue
        for index, media_type in enumerate(supported):
            if not media_range.matches(media_type):
                continue
            if index in refused and refused[index] >= media_range.specificity:
                continue
            key = (media_range.quality, -media_range.position, -index)
            if best is None or key > best[0]:
                best = (key, media_type)

    if best is None:
        return NegotiationResult(selected=default, quality=0.0, acceptable=False)
    (quality, _, _), selected = best
    return NegotiationResult(selected=selected, quality=quality, acceptable=True)


def expand_shorthand(media_type: str) -> str:
    """``"json"`` -> ``"application/json"``; full types pass through."""
    if "/" in media_type:
        return media_type
    return SHORTHANDS.get(media_type.lower(), f"application/{media_type.lower()}")


class Accepts:
    """Ergonomic ``Accept`` checks for handlers.

    Usage::

        accepts = Accepts(request.accept)
        if accepts.json():
            return {"users": users}
        fmt = accepts.best("json", "html")  # full media type or None
    """

    __slots__ = ("_header",)

    def __init__(self, header: str | None) -> None:
        self._header = header

    def best(self, *types: str) -> str | None:
        """Best acceptable type among *types*, or ``None``."""
        if not types:
            return None
        candidates = [expand_shorthand(t) for t in types]
        result = negotiate(self._header, candidates, candidates[0])
        return result.selected if result.acceptable else None

    def json(self) -> bool:
        return self.best("json") is not None

    def html(self) -> bool:
        return self.best("html") is not None

    def xml(self) -> bool:
        return self.best("xml") is not None

    def text(self) -> bool:
        return self.best("text") is not None
