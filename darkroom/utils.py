"""Utility functions for Darkroom.

This module contains small helpers used throughout the Darkroom codebase:
string processing, file type checks, hashing and atomic writes.

Key functions:
    titleize: Convert a slug to a human-readable title.
    extract_date_from_name: Extract date from a slug prefix.
    is_image: Check if a path is a source image the pipeline handles.
    markdown_image_refs: List image references in Markdown text.
    short_hash: Short MD5 hex digest of file contents.
    write_text_atomic: Replace a text file in a single rename.
"""

from __future__ import annotations

import hashlib
import os
import re
from datetime import datetime
from pathlib import Path

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif"}

# ![alt text](image.jpg) or ![alt](image.jpg "title"); names with spaces go in <...>
MARKDOWN_IMAGE_RE = re.compile(
    r"!\[([^\]]*)\]\(\s*(?:<([^>\n]+)>|([^)\s]+))(?:\s+\"[^\"]*\")?\s*\)"
)


def titleize(name: str) -> str:
    """Convert a slug or filename to a human-readable title.

    Removes date prefixes (YYYY-MM-DD), replaces hyphens and underscores
    with spaces, and capitalizes each word.

    Args:
        name: Slug, or filename with or without extension.

    Returns:
        Human-readable title string.

    Examples:
        >>> titleize("2024-01-15-hello-world")
        'Hello World'

        >>> titleize("small-shot")
        'Small Shot'
    """
    base = Path(name).stem if Path(name).suffix == ".md" else name
    if "-" in base:
        parts = base.split("-")
        if len(parts) >= 4 and all(p.isdigit() for p in parts[:3]):
            base = "-".join(parts[3:])
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def extract_date_from_name(name: str) -> datetime | None:
    """Extract a date from a name with YYYY-MM-DD prefix.

    Args:
        name: Slug or filename stem.

    Returns:
        datetime object if a valid date prefix is found, None otherwise.

    Examples:
        >>> extract_date_from_name("2024-01-15-hello-world")
        datetime(2024, 1, 15, 0, 0)

        >>> extract_date_from_name("hello-world")
        None
    """
    parts = name.split("-")
    if len(parts) >= 3 and all(p.isdigit() for p in parts[:3]):
        try:
            return datetime(int(parts[0]), int(parts[1]), int(parts[2]))
        except ValueError:
            return None
    return None


def is_image(path: Path) -> bool:
    """Check if a path is a raster image the pipeline processes.

    Args:
        path: Path to check.

    Returns:
        True if the file has a supported image extension (case-insensitive).
    """
    return path.suffix.lower() in IMAGE_EXTENSIONS


def markdown_image_refs(text: str) -> list[str]:
    """Return image references in Markdown text, in order of appearance.

    Args:
        text: Markdown source.

    Returns:
        List of image sources such as ``photo.jpg``.

    Examples:
        >>> markdown_image_refs("Intro\\n\\n![Sunset](sunset.jpg)")
        ['sunset.jpg']

        >>> markdown_image_refs("![Dusk](<my photo.jpg>)")
        ['my photo.jpg']
    """
    return [match.group(2) or match.group(3) for match in MARKDOWN_IMAGE_RE.finditer(text)]


def short_hash(path: Path, length: int = 8) -> str:
    """Return the first ``length`` hex digits of the MD5 of a file."""
    digest = hashlib.md5(path.read_bytes()).hexdigest()
    return digest[:length]


def write_text_atomic(target: Path, text: str) -> None:
    """Write text to a temporary sibling file and rename it over the target.

    Readers never observe a half-written file; on failure the previous
    content stays in place and the temporary file is removed.

    Args:
        target: Destination file path.
        text: Content to write.
    """
    tmp = target.with_name(target.name + ".tmp")
    try:
        with open(tmp, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
