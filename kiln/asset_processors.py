"""Asset processors for Kiln.

Each processor handles one type of asset:

- CSSProcessor: Autoprefixes CSS through postcss, then minifies it with
  csscompressor in build mode.
- JSProcessor: Minifies JavaScript with terser or rjsmin in build mode.
- StaticAssetProcessor: Copies everything else unchanged.
- AssetProcessorRegistry: Picks the highest-priority processor for a file.

External tools (postcss, terser) are optional: when one is missing or fails
the processor reports it and falls back, so a build never stops on them.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

import csscompressor
import htmlmin
import rjsmin

from .config import AutoprefixerConfig, BuildModeFlags, JsCompressor
from .protocols import AssetProcessor
from .utils import find_executable


def minify_html(html: str) -> str:
    """Collapse whitespace and drop comments from rendered HTML."""
    return htmlmin.minify(html, remove_comments=True, remove_empty_space=True)


class BaseAssetProcessor(ABC):
    """Base class for asset processors."""

    @property
    @abstractmethod
    def priority(self) -> int:
        """Return processor priority (higher = checked first)."""
        ...

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        ...

    @abstractmethod
    def process(self, source: Path, dest: Path) -> bool:
        ...

    def ensure_dest_dir(self, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)


class CSSProcessor(BaseAssetProcessor):
    """Autoprefixes and minifies stylesheets.

    Attributes:
        project_root: Root directory of the project (for node_modules lookups).
        autoprefixer: Autoprefixer options, or None when the extension is off.
        minify: Whether to minify the output.
    """

    def __init__(
        self,
        project_root: Path,
        autoprefixer: AutoprefixerConfig | None = None,
        minify: bool = False,
    ):
        self.project_root = project_root
        self.autoprefixer = autoprefixer
        self.minify = minify

    @property
    def priority(self) -> int:
        return 90

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".css"

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        css = self._autoprefix(source)
        if self.minify:
            css = csscompressor.compress(css)
        dest.write_text(css, encoding="utf-8")
        return True

    def _autoprefix(self, source: Path) -> str:
        css = source.read_text(encoding="utf-8")
        if self.autoprefixer is None:
            return css
        postcss = find_executable("postcss", self.project_root)
        if not postcss:
            print(f"postcss not found; {source.name} is not autoprefixed.")
            return css
        result = subprocess.run(
            [postcss, str(source), "--use", "autoprefixer", "--no-map"],
            capture_output=True,
            text=True,
            env={**os.environ, "BROWSERSLIST": self.autoprefixer.browsers},
        )
        if result.returncode != 0:
            print("Autoprefixer failed:", result.stderr.strip())
            return css
        return result.stdout


class JSProcessor(BaseAssetProcessor):
    """Minifies JavaScript.

    The terser compressor runs the terser executable and falls back to rjsmin
    when terser is missing or fails. Without minification files are copied.

    Attributes:
        project_root: Root directory of the project (for node_modules lookups).
        minify: Whether to minify the output.
        compressor: Which compressor to use.
    """

    def __init__(
        self,
        project_root: Path,
        minify: bool = False,
        compressor: JsCompressor = JsCompressor.RJSMIN,
    ):
        self.project_root = project_root
        self.minify = minify
        self.compressor = compressor

    @property
    def priority(self) -> int:
        return 80

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".js"

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        if not self.minify:
            shutil.copy2(source, dest)
            return True

        if self.compressor is JsCompressor.TERSER:
            terser = find_executable("terser", self.project_root)
            if terser:
                result = subprocess.run(
                    [terser, str(source), "-c", "-m", "-o", str(dest)],
                    capture_output=True,
                    text=True,
                )
                if result.returncode == 0:
                    return True
                print("JS minification failed via terser:", result.stderr.strip())
            else:
                print(f"terser not found; minifying {source.name} with rjsmin.")

        with open(source, encoding="utf-8") as f_in:
            minified = rjsmin.jsmin(f_in.read())
        with open(dest, "w", encoding="utf-8") as f_out:
            f_out.write(minified)
        return True


class StaticAssetProcessor(BaseAssetProcessor):
    """Copies assets that need no processing (images, fonts, ...)."""

    @property
    def priority(self) -> int:
        return 0

    def can_process(self, path: Path) -> bool:
        return True

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        shutil.copy2(source, dest)
        return True


class AssetProcessorRegistry:
    """Processors sorted by priority; the first that accepts a file wins."""

    def __init__(self) -> None:
        self._processors: list[AssetProcessor] = []

    def register(self, processor: AssetProcessor) -> None:
        self._processors.append(processor)
        self._processors.sort(key=lambda p: p.priority, reverse=True)

    def get_processor(self, path: Path) -> AssetProcessor | None:
        for processor in self._processors:
            if processor.can_process(path):
                return processor
        return None

    def process(self, source: Path, dest: Path) -> bool:
        """Process an asset; False when no processor accepts it."""
        processor = self.get_processor(source)
        if processor:
            return processor.process(source, dest)
        return False


def create_default_registry(
    project_root: Path,
    flags: BuildModeFlags,
    autoprefixer: AutoprefixerConfig | None = None,
) -> AssetProcessorRegistry:
    """Create a registry with the default processors.

    Args:
        project_root: Root directory of the project.
        flags: Minification flags in effect for this build.
        autoprefixer: Autoprefixer options, or None when the extension is off.
    """
    registry = AssetProcessorRegistry()
    registry.register(CSSProcessor(project_root, autoprefixer, minify=flags.minify_css))
    registry.register(
        JSProcessor(project_root, minify=flags.minify_js, compressor=flags.js_compressor)
    )
    registry.register(StaticAssetProcessor())
    return registry
