"""Protocol definitions for Darkroom.

This module defines the interfaces the image pipeline depends on, so the
variant generator never knows which external tool produces the files and
tests can substitute an in-process implementation.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .cache import Dimensions
    from .raster import ConvertOptions


@runtime_checkable
class RasterConverter(Protocol):
    """Protocol for probing and converting raster images.

    Implementations wrap an image-processing capability. They write exactly
    one file per ``convert`` call, never delete anything and do not retry;
    retry and fallback policy belongs to the caller.
    """

    @abstractmethod
    def identify(self, path: Path) -> Dimensions:
        """Return the intrinsic dimensions of a source file.

        Args:
            path: Path to the source image.

        Returns:
            Width and height in pixels.

        Raises:
            ProbeError: If the tool is unavailable or the file is unreadable.
        """
        ...

    @abstractmethod
    def convert(self, source: Path, dest: Path, options: ConvertOptions) -> None:
        """Produce one derived file at one width, format and quality.

        Args:
            source: Source image path.
            dest: Destination path; overwritten if it exists.
            options: Width, format, quality and metadata handling.

        Raises:
            ConversionError: If the conversion fails or times out.
        """
        ...
