"""Raster conversion adapter for Darkroom.

All interaction with external image tools is isolated here. The rest of the
package only sees two operations, ``identify`` and ``convert``, with typed
arguments; nothing outside this module builds a command line.

Key objects:
- OutputFormat / OUTPUT_FORMATS: The three formats every image is rendered in.
- ConvertOptions: Argument struct for one conversion.
- ImageMagickConverter: RasterConverter backed by the ImageMagick CLI.
- read_dimensions: Pillow-based dimension reader used by the copy fallback.
- ProbeError, ConversionError: Failures raised by the adapter.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from .cache import Dimensions
from .executable_utils import ImageMagickTools, find_imagemagick

logger = logging.getLogger("darkroom.raster")


class ProbeError(Exception):
    """Raised when the dimensions of a source image cannot be determined."""


class ConversionError(Exception):
    """Raised when an external conversion fails, times out or produces nothing."""


@dataclass(frozen=True)
class OutputFormat:
    """A format every source image is rendered in.

    Attributes:
        key: Name used in the cache and in ConvertOptions.
        extension: File extension of generated files.
        coder: ImageMagick coder name, used as an explicit output prefix.
        mime: MIME type for ``<source type>`` and feed enclosures.
    """

    key: str
    extension: str
    coder: str
    mime: str


JPEG = OutputFormat("jpeg", "jpg", "JPEG", "image/jpeg")
WEBP = OutputFormat("webp", "webp", "WEBP", "image/webp")
AVIF = OutputFormat("avif", "avif", "AVIF", "image/avif")

# Full-fidelity format first, then the modern lossy formats
OUTPUT_FORMATS: tuple[OutputFormat, ...] = (JPEG, WEBP, AVIF)
FORMATS_BY_KEY = {fmt.key: fmt for fmt in OUTPUT_FORMATS}


@dataclass(frozen=True)
class ConvertOptions:
    """Arguments for a single conversion.

    Attributes:
        width: Target width in pixels; height follows the aspect ratio.
        format: Output format key (``jpeg``, ``webp`` or ``avif``).
        quality: Encoder quality, 1-100.
        strip_metadata: Remove EXIF, ICC comments and other profiles.
    """

    width: int
    format: str
    quality: int
    strip_metadata: bool = True


class ImageMagickConverter:
    """RasterConverter implementation that shells out to ImageMagick.

    Commands are run as argument lists, never through a shell, and each call
    is bounded by ``timeout`` seconds.

    Attributes:
        timeout: Seconds allowed for one external call.
    """

    def __init__(self, binary: str | None = None, timeout: float = 120):
        """Initialize the converter.

        Args:
            binary: Optional explicit ``magick`` or ``convert`` binary.
            timeout: Seconds allowed for one external call.
        """
        self.binary = binary
        self.timeout = timeout
        self._tools: ImageMagickTools | None = None

    def _resolve(self) -> ImageMagickTools | None:
        if self._tools is None:
            self._tools = find_imagemagick(self.binary)
        return self._tools

    def identify(self, path: Path) -> Dimensions:
        """Return the intrinsic dimensions of the first frame of an image.

        Raises:
            ProbeError: If ImageMagick is missing, fails, times out, or
                prints something that is not ``<width> <height>``.
        """
        tools = self._resolve()
        if tools is None:
            raise ProbeError("ImageMagick not found; install it or set images.imagemagick")
        cmd = [*tools.identify, "-format", "%w %h", f"{path}[0]"]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout
            )
        except subprocess.TimeoutExpired as exc:
            raise ProbeError(f"identify timed out after {self.timeout}s: {path}") from exc
        except OSError as exc:
            raise ProbeError(f"cannot run identify: {exc}") from exc
        if result.returncode != 0:
            raise ProbeError(
                f"identify failed for {path}: {result.stderr.strip() or result.stdout.strip()}"
            )
        parts = result.stdout.strip().split()
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ProbeError(f"unexpected identify output for {path}: {result.stdout!r}")
        return Dimensions(width=int(parts[0]), height=int(parts[1]))

    def command(self, source: Path, dest: Path, options: ConvertOptions) -> list[str]:
        """Build the argument list for one conversion.

        Raises:
            ConversionError: If ImageMagick is missing or the format is unknown.
        """
        tools = self._resolve()
        if tools is None:
            raise ConversionError("ImageMagick not found; install it or set images.imagemagick")
        fmt = FORMATS_BY_KEY.get(options.format)
        if fmt is None:
            raise ConversionError(f"unsupported output format: {options.format}")
        cmd = [
            *tools.convert,
            f"{source}[0]",
            "-auto-orient",
            "-resize",
            f"{options.width}x",
            "-quality",
            str(options.quality),
        ]
        if options.strip_metadata:
            cmd.append("-strip")
        cmd.append(f"{fmt.coder}:{dest}")
        return cmd

    def convert(self, source: Path, dest: Path, options: ConvertOptions) -> None:
        """Write one resized, re-encoded copy of ``source`` to ``dest``.

        Raises:
            ConversionError: On a non-zero exit, a timeout, or missing output.
        """
        cmd = self.command(source, dest, options)
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout
            )
        except subprocess.TimeoutExpired as exc:
            raise ConversionError(
                f"conversion timed out after {self.timeout}s: {dest.name}"
            ) from exc
        except OSError as exc:
            raise ConversionError(f"cannot run ImageMagick: {exc}") from exc
        if result.returncode != 0:
            raise ConversionError(
                f"conversion to {dest.name} failed: {result.stderr.strip() or result.stdout.strip()}"
            )
        if not dest.exists():
            raise ConversionError(f"conversion produced no file: {dest.name}")


def read_dimensions(path: Path) -> Dimensions | None:
    """Read image dimensions with Pillow.

    Args:
        path: Image file to inspect.

    Returns:
        Dimensions, or None if Pillow cannot decode the file.
    """
    try:
        with Image.open(path) as img:
            width, height = img.size
    except (OSError, ValueError) as exc:
        logger.debug("Pillow cannot read %s: %s", path, exc)
        return None
    return Dimensions(width=width, height=height)
