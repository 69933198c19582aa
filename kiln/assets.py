"""Asset pipeline for Kiln.

Files under ``source/`` that are not pages (stylesheets, scripts, images,
fonts) are written to the output directory at the same relative path, each
through the processor registered for its type.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from .asset_processors import AssetProcessorRegistry


class AssetPipeline:
    """Writes the assets of a site to the output directory.

    Attributes:
        source_dir: Directory containing the site sources.
        output_dir: Directory where processed assets are written.
        processor_registry: Registry of asset processors.
    """

    def __init__(
        self,
        source_dir: Path,
        output_dir: Path,
        processor_registry: AssetProcessorRegistry,
    ):
        self.source_dir = source_dir
        self.output_dir = output_dir
        self.processor_registry = processor_registry

    def run(self, assets: Iterable[Path]) -> list[Path]:
        """Process every asset.

        Args:
            assets: Asset files, all located under ``source_dir``.

        Returns:
            Destination paths that were written.
        """
        written: list[Path] = []
        for item in assets:
            dest = self.output_dir / item.relative_to(self.source_dir)
            if self.processor_registry.process(item, dest):
                written.append(dest)
        return written
