"""Metadata extractors for Darkroom articles.

Each extractor reads one kind of metadata from an article's ``index.md`` and
returns a small dictionary; CompositeMetadataExtractor merges their results.

Key classes:
- FrontmatterExtractor: Splits YAML front matter from the Markdown body.
- TitleExtractor: Title from front matter, first heading, or the slug.
- DateExtractor: Date from front matter, slug prefix, or file mtime.
- FeaturedExtractor: Optional representative image named in front matter.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from .utils import extract_date_from_name, titleize

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict, remaining content).
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
        if not isinstance(data, dict):
            return {}, text
        return data, text[match.end() :]
    except yaml.YAMLError:
        return {}, text


def coerce_datetime(value: Any) -> datetime | None:
    """Turn a front matter date value into a naive datetime.

    YAML already parses unquoted dates; quoted ones are parsed as ISO 8601.
    Aware datetimes are converted to UTC so articles can be compared.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class FrontmatterExtractor:
    """Extracts YAML frontmatter from content.

    Parses YAML frontmatter at the beginning of the file
    (between --- markers).
    """

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        """Extract frontmatter from content.

        Args:
            content: Source content with potential frontmatter.
            path: Path to the source file (unused).

        Returns:
            Dictionary with 'frontmatter' key and 'body' key.
        """
        frontmatter, body = extract_frontmatter(content)
        return {"frontmatter": frontmatter, "body": body}


class TitleExtractor:
    """Extracts the article title.

    Uses the ``title`` front matter key, then a level-1 heading
    (# Title) in the body, then the titleized article slug.
    """

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        frontmatter, body = extract_frontmatter(content)
        title = frontmatter.get("title")
        if title:
            return {"title": str(title).strip()}
        for line in body.splitlines():
            stripped = line.strip()
            if stripped.startswith("# "):
                return {"title": stripped.lstrip("# ").strip()}
        return {"title": titleize(path.parent.name)}


class DateExtractor:
    """Extracts the publication date.

    Uses the ``date`` front matter key, then a YYYY-MM-DD prefix on the
    article slug, then the modification time of ``index.md``.
    """

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        frontmatter, _ = extract_frontmatter(content)
        parsed = coerce_datetime(frontmatter.get("date"))
        if parsed is None:
            parsed = extract_date_from_name(path.parent.name)
        if parsed is None:
            parsed = datetime.fromtimestamp(path.stat().st_mtime)
        return {"date": parsed}


class FeaturedExtractor:
    """Extracts the ``featured`` image filename, if any."""

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        frontmatter, _ = extract_frontmatter(content)
        featured = frontmatter.get("featured")
        return {"featured": str(featured).strip() if featured else None}


class CompositeMetadataExtractor:
    """Combines multiple metadata extractors.

    Runs every registered extractor on the content and merges their
    results; later extractors override earlier ones.
    """

    def __init__(self, extractors: list | None = None):
        """Initialize with a list of extractors.

        Args:
            extractors: List of extractor implementations.
                       If None, uses default extractors.
        """
        if extractors is None:
            self._extractors = [
                FrontmatterExtractor(),
                TitleExtractor(),
                DateExtractor(),
                FeaturedExtractor(),
            ]
        else:
            self._extractors = list(extractors)

    def add_extractor(self, extractor) -> None:
        """Add an extractor to the composite."""
        self._extractors.append(extractor)

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        """Extract all metadata from content.

        Args:
            content: Source content.
            path: Path to the source file.

        Returns:
            Dictionary with all extracted metadata.
        """
        result: dict[str, Any] = {}
        for extractor in self._extractors:
            result.update(extractor.extract(content, path))
        return result


# Default composite extractor instance
default_metadata_extractor = CompositeMetadataExtractor()
