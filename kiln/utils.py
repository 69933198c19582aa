"""Utility functions for Kiln.

Key functions:
    slugify: Convert text to a URL slug.
    titleize: Convert a slug or filename to a human-readable title.
    source_path_for: Strip template extensions from a source file path.
    is_internal_path: Check whether a path is a partial or internal file.
    ensure_clean_dir: Ensure a directory exists and is empty.
    find_executable: Locate an executable in PATH or node_modules.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path, PurePosixPath

# Extensions that mark a file as a template; stripped to get its source path.
TEMPLATE_EXTENSIONS = (".md", ".jinja")


def slugify(text: str) -> str:
    """Convert text to a lowercase, hyphen-separated URL slug.

    Examples:
        >>> slugify("Python Tips & Tricks")
        'python-tips-tricks'
    """
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", text)
    return cleaned.strip("-").lower()


def titleize(name: str) -> str:
    """Convert a slug or filename to a human-readable title.

    Examples:
        >>> titleize("hello-world")
        'Hello World'

        >>> titleize("about.html.md")
        'About'
    """
    base = name.split(".", 1)[0]
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def source_path_for(relative: PurePosixPath | Path) -> str:
    """Return the source path of a file: its relative path minus template extensions.

    Args:
        relative: Path of the file relative to the source directory.

    Returns:
        POSIX path string without a leading slash.

    Examples:
        >>> source_path_for(Path("blog/2024-01-15-hello.html.md"))
        'blog/2024-01-15-hello.html'

        >>> source_path_for(Path("feed.xml.jinja"))
        'feed.xml'
    """
    posix = PurePosixPath(*relative.parts)
    name = posix.name
    while name.endswith(TEMPLATE_EXTENSIONS):
        name = name[: name.rfind(".")]
    # "about.md" has no output extension of its own
    if "." not in name:
        name = f"{name}.html"
    return posix.with_name(name).as_posix()


def is_template(path: Path) -> bool:
    """Check whether a file is rendered rather than copied."""
    return path.name.endswith(TEMPLATE_EXTENSIONS)


def is_internal_path(path: Path) -> bool:
    """Check if any component of a path starts with an underscore.

    Such files are partials or otherwise private to the source tree.
    """
    return any(part.startswith("_") for part in path.parts)


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH, then in the project's node_modules/.bin.

    Args:
        name: Executable name, e.g. ``terser`` or ``postcss``.
        project_root: Project whose local Node installation is searched.

    Returns:
        Full path to the executable, or None if it is not installed.
    """
    found = shutil.which(name)
    if found:
        return found
    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)
    return None
