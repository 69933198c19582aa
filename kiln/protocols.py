"""Protocol definitions for Kiln.

These interfaces keep the registries open to new content and asset types
without changes to the build pipeline.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class ContentRenderer(Protocol):
    """Turns the body of one kind of source file into output text."""

    @abstractmethod
    def can_render(self, path: Path) -> bool:
        """Check if this renderer can handle the given source file."""
        ...

    @abstractmethod
    def render(self, content: str) -> str:
        """Render a source body (frontmatter already removed)."""
        ...

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return the source type identifier (e.g. 'markdown', 'jinja')."""
        ...


@runtime_checkable
class AssetProcessor(Protocol):
    """Writes one kind of asset to the output directory."""

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        """Check if this processor can handle the given asset."""
        ...

    @abstractmethod
    def process(self, source: Path, dest: Path) -> bool:
        """Process an asset file.

        Args:
            source: Source asset path.
            dest: Destination path for the processed asset.

        Returns:
            True if processing was successful.
        """
        ...

    @property
    @abstractmethod
    def priority(self) -> int:
        """Return processor priority (higher = checked first)."""
        ...
