"""Executable discovery utilities for Darkroom.

This module locates the ImageMagick command-line tools. ImageMagick 7 ships a
single ``magick`` binary with subcommands, while ImageMagick 6 installs
separate ``convert`` and ``identify`` programs; both layouts are supported.

Functions:
    find_executable: Locate an executable in PATH or an extra directory.
    find_imagemagick: Resolve the command prefixes for converting and identifying.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ImageMagickTools:
    """Command prefixes for the two ImageMagick operations.

    Attributes:
        convert: Argument list that starts a conversion.
        identify: Argument list that starts an identify call.
    """

    convert: tuple[str, ...]
    identify: tuple[str, ...]


def find_executable(name: str, search_dir: Path | None = None) -> str | None:
    """Find an executable in PATH or in an extra directory.

    Searches for an executable first in the system PATH, then in
    ``search_dir`` if one is provided (for example ``$MAGICK_HOME/bin``).

    Args:
        name: Name of the executable to find (e.g., 'magick', 'identify').
        search_dir: Optional directory to search after PATH.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('magick')  # System PATH lookup
        '/usr/local/bin/magick'
    """
    found = shutil.which(name)
    if found:
        return found

    if search_dir is not None:
        local = search_dir / name
        if local.exists():
            return str(local)

    return None


def find_imagemagick(explicit: str | None = None) -> ImageMagickTools | None:
    """Resolve the ImageMagick commands available on this machine.

    An explicit binary wins; it is treated as ImageMagick 7 when its name is
    ``magick`` and as the ``convert`` program otherwise.

    Args:
        explicit: Optional path to a ``magick`` or ``convert`` binary.

    Returns:
        The resolved tools, or None when ImageMagick is not installed.
    """
    magick_home = os.environ.get("MAGICK_HOME")
    search_dir = Path(magick_home) / "bin" if magick_home else None

    if explicit:
        if Path(explicit).stem == "magick":
            return ImageMagickTools(convert=(explicit,), identify=(explicit, "identify"))
        identify = find_executable("identify", Path(explicit).parent) or "identify"
        return ImageMagickTools(convert=(explicit,), identify=(identify,))

    magick = find_executable("magick", search_dir)
    if magick:
        return ImageMagickTools(convert=(magick,), identify=(magick, "identify"))

    convert = find_executable("convert", search_dir)
    identify = find_executable("identify", search_dir)
    if convert and identify:
        return ImageMagickTools(convert=(convert,), identify=(identify,))
    return None
