"""Path pattern matching for Kiln.

Two small pattern languages are used by the build configuration:

- Glob patterns select output paths for page rules. ``*`` matches a run of
  non-separator characters, ``?`` a single non-separator character and ``**``
  anything at all. A pattern ending in ``/*`` spans every path beneath its
  prefix, so ``/blog/*`` covers ``/blog/2024/01/15/post.html`` while
  ``/*.xml`` only covers top-level files.
- Route patterns such as ``blog/{year}-{month}-{day}-{title}.html`` name the
  parts of a path. They are used both to parse blog source paths and to
  render permalinks and tag links.

Neither language is a regular expression: every other character is literal.
"""

from __future__ import annotations

import datetime as dt
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache

PLACEHOLDER_RE = re.compile(r"\{([a-z_][a-z0-9_]*)\}")

# Placeholders with a fixed shape; anything else is one path segment or less.
PLACEHOLDER_PATTERNS = {
    "year": r"\d{4}",
    "month": r"\d{2}",
    "day": r"\d{2}",
}
DEFAULT_PLACEHOLDER_PATTERN = r"[^/]+"

DATE_PLACEHOLDERS = ("year", "month", "day")


class RouteMismatch(ValueError):
    """A path does not have the shape of a route pattern.

    Attributes:
        path: The path that failed to match.
        pattern: The route pattern it was matched against.
    """

    def __init__(self, path: str, pattern: str, reason: str | None = None):
        self.path = path
        self.pattern = pattern
        message = f"{path!r} does not match {pattern!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


def normalize_path(path: str) -> str:
    """Return a ``/``-separated path with a single leading slash."""
    cleaned = path.replace("\\", "/")
    return "/" + cleaned.lstrip("/")


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into a regular expression.

    Args:
        pattern: Glob pattern, with or without a leading slash.

    Returns:
        Compiled expression to be used with ``fullmatch``.
    """
    normalized = normalize_path(pattern)
    spans_tail = normalized.endswith("/*") and not normalized.endswith("**")
    body = normalized[:-1] if spans_tail else normalized
    parts: list[str] = []
    index = 0
    while index < len(body):
        if body.startswith("**", index):
            parts.append(".*")
            index += 2
            continue
        char = body[index]
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        index += 1
    if spans_tail:
        parts.append(".+")
    return re.compile("".join(parts))


def glob_match(pattern: str, path: str) -> bool:
    """Check whether an output path matches a glob pattern.

    Examples:
        >>> glob_match("/blog/*", "/blog/2024/01/15/hello.html")
        True

        >>> glob_match("/*.xml", "/feeds/atom.xml")
        False
    """
    return compile_glob(pattern).fullmatch(normalize_path(path)) is not None


def placeholders(pattern: str) -> tuple[str, ...]:
    """Return the placeholder names of a route pattern, in order."""
    return tuple(PLACEHOLDER_RE.findall(pattern))


@lru_cache(maxsize=64)
def compile_route(pattern: str) -> re.Pattern[str]:
    """Compile a route pattern into a regular expression with named groups.

    A placeholder repeated in the pattern must capture the same text each time.
    """
    parts: list[str] = []
    seen: set[str] = set()
    position = 0
    for match in PLACEHOLDER_RE.finditer(pattern):
        parts.append(re.escape(pattern[position : match.start()]))
        name = match.group(1)
        if name in seen:
            parts.append(f"(?P={name})")
        else:
            seen.add(name)
            shape = PLACEHOLDER_PATTERNS.get(name, DEFAULT_PLACEHOLDER_PATTERN)
            parts.append(f"(?P<{name}>{shape})")
        position = match.end()
    parts.append(re.escape(pattern[position:]))
    return re.compile("".join(parts))


def match_route(pattern: str, path: str) -> dict[str, str]:
    """Extract the placeholder values of ``path`` according to ``pattern``.

    Leading slashes are ignored on both sides.

    Raises:
        RouteMismatch: If the path does not have the pattern's shape.
    """
    match = compile_route(pattern.lstrip("/")).fullmatch(path.lstrip("/"))
    if match is None:
        raise RouteMismatch(path, pattern)
    return match.groupdict()


def render_route(pattern: str, values: Mapping[str, str]) -> str:
    """Substitute placeholder values into a route pattern.

    Raises:
        ValueError: If a placeholder has no value.
    """

    def repl(match: re.Match) -> str:
        name = match.group(1)
        if name not in values:
            raise ValueError(f"No value for placeholder {{{name}}} in {pattern!r}")
        return str(values[name])

    return PLACEHOLDER_RE.sub(repl, pattern)


@dataclass(frozen=True)
class BlogRoute:
    """The parts of a blog article extracted from its source path.

    Attributes:
        date: Publication date.
        title: Title slug as written in the source path.
        params: Any further placeholders of the source pattern.
    """

    date: dt.date
    title: str
    params: Mapping[str, str] = field(default_factory=dict)

    @property
    def year(self) -> str:
        return f"{self.date.year:04d}"

    @property
    def month(self) -> str:
        return f"{self.date.month:02d}"

    @property
    def day(self) -> str:
        return f"{self.date.day:02d}"

    def values(self) -> dict[str, str]:
        """Return every placeholder value, suitable for ``render_route``."""
        merged = dict(self.params)
        merged.update(year=self.year, month=self.month, day=self.day, title=self.title)
        return merged


def parse_blog_route(pattern: str, path: str) -> BlogRoute:
    """Parse a blog source path into a :class:`BlogRoute`.

    Raises:
        RouteMismatch: If the path does not match, or the captured date does
            not exist on the calendar.
    """
    values = match_route(pattern, path)
    try:
        published = dt.date(int(values["year"]), int(values["month"]), int(values["day"]))
    except KeyError:
        raise RouteMismatch(path, pattern, "pattern has no date placeholders") from None
    except ValueError as exc:
        raise RouteMismatch(path, pattern, str(exc)) from exc
    params = {
        name: value
        for name, value in values.items()
        if name not in DATE_PLACEHOLDERS and name != "title"
    }
    return BlogRoute(date=published, title=values["title"], params=params)
