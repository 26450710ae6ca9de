"""Path patterns — parse once at registration, match segment by segment.

A pattern is a sequence of segments, each either a literal or a named
capture written with a ``:`` prefix::

    "/users/:id/posts" -> [Segment("users"), Segment(":id", name="id"), Segment("posts")]

Matching never uses regular expressions and never backtracks: a segment
count mismatch or the first literal mismatch ends the attempt, so the cost
is linear in the number of segments.
"""

from dataclasses import dataclass, field

from wren.errors import ConfigurationError

CAPTURE_PREFIX = ":"


@dataclass(frozen=True, slots=True)
class Segment:
    """One ``/``-separated piece of a route pattern.

    Literal:  ``users`` (name=None)
    Capture:  ``:id``   (name="id")
    """

    value: str
    name: str | None = None

    @property
    def is_capture(self) -> bool:
        return self.name is not None


@dataclass(frozen=True, slots=True)
class RoutePattern:
    """A compiled, immutable route pattern."""

    source: str
    segments: tuple[Segment, ...]

    @property
    def shape(self) -> tuple[str | None, ...]:
        """Literal values with captures blanked out.

        Two patterns with the same shape match exactly the same paths,
        whatever their capture names are.
        """
        return tuple(None if seg.is_capture else seg.value for seg in self.segments)

    @property
    def specificity(self) -> tuple[int, ...]:
        """Sort key: literal (0) outranks capture (1), left to right."""
        return tuple(1 if seg.is_capture else 0 for seg in self.segments)

    @property
    def capture_names(self) -> tuple[str, ...]:
        return tuple(seg.name for seg in self.segments if seg.name is not None)

    def __str__(self) -> str:
        return self.source


@dataclass(frozen=True, slots=True)
class PathMatch:
    """Outcome of matching one pattern against one concrete path."""

    matched: bool
    params: dict[str, str] = field(default_factory=dict)


NO_MATCH = PathMatch(matched=False)


def split_path(path: str) -> list[str]:
    """Split a path into segments; the root is the empty list.

    Leading and trailing slashes are ignored. Inner empty segments
    (``/a//b``) are kept so that a capture never matches them.
    """
    stripped = path.strip("/")
    if not stripped:
        return []
    return stripped.split("/")


def parse_pattern(path: str) -> RoutePattern:
    """Compile a route path string into a ``RoutePattern``.

    Examples::

        "/"              -> RoutePattern("/", ())
        "/users"         -> [Segment("users")]
        "/users/:id"     -> [Segment("users"), Segment(":id", name="id")]

    Raises ``ConfigurationError`` for empty capture names, duplicate capture
    names, and brace-style placeholders.
    """
    segments: list[Segment] = []
    seen: set[str] = set()
    for part in split_path(path):
        if part.startswith("{") and part.endswith("}"):
            msg = (
                f"Route path {path!r} uses {{param}} syntax. "
                f"Wren uses :param placeholders, e.g. '/users/:id'."
            )
            raise ConfigurationError(msg)
        if part.startswith(CAPTURE_PREFIX):
            name = part[len(CAPTURE_PREFIX):]
            if not name:
                msg = f"Route path {path!r} has a capture segment without a name."
                raise ConfigurationError(msg)
            if name in seen:
                msg = f"Route path {path!r} declares capture {name!r} more than once."
                raise ConfigurationError(msg)
            seen.add(name)
            segments.append(Segment(value=part, name=name))
        else:
            segments.append(Segment(value=part))
    return RoutePattern(source=path, segments=tuple(segments))


def match_segments(pattern: RoutePattern, parts: list[str]) -> PathMatch:
    """Match pre-split path *parts* against *pattern*."""
    if len(parts) != len(pattern.segments):
        return NO_MATCH
    params: dict[str, str] = {}
    for seg, part in zip(pattern.segments, parts, strict=True):
        if seg.name is None:
            if seg.value != part:
                return NO_MATCH
        elif not part:
            return NO_MATCH
        else:
            params[seg.name] = part
    return PathMatch(matched=True, params=params)


def match_pattern(pattern: RoutePattern | str, path: str) -> PathMatch:
    """Decide whether *path* matches *pattern* and extract captures.

    ``pattern`` may be a compiled ``RoutePattern`` or a pattern string.
    Pure: the same inputs always give the same result.
    """
    if isinstance(pattern, str):
        pattern = parse_pattern(pattern)
    return match_segments(pattern, split_path(path))
