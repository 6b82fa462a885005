"""Feed generation for Darkroom.

This module writes the RSS 2.0 feed. Each item carries the article's
representative image as an ``<enclosure>`` and a Media RSS
``<media:content>`` element. Image metadata (filename, dimensions, byte size)
comes from the image cache, so writing the feed never runs ImageMagick.

Classes:
    FeedGenerator: Base class for feed generators.
    RSSGenerator: Generates the RSS feed file.
"""

from __future__ import annotations

import mimetypes
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .cache import ImageCache
from .content import Article
from .html_utils import escape_html, join_root_url, url_quote
from .raster import JPEG

RFC822 = "%a, %d %b %Y %H:%M:%S +0000"


@dataclass(frozen=True)
class FeedImage:
    """Representative image data for one feed item."""

    url: str
    size: int
    mime: str
    width: int | None = None
    height: int | None = None


class FeedGenerator(ABC):
    """Abstract base class for feed generators.

    Subclasses implement specific feed formats.
    """

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename for this feed."""
        ...

    @abstractmethod
    def generate(self, articles: Iterable[Article], config: dict[str, Any]) -> str | None:
        """Generate feed content from articles.

        Args:
            articles: Articles to include in the feed.
            config: Site configuration containing the base URL.

        Returns:
            Feed content as a string, or None if the feed cannot be generated
            (e.g., missing base URL).
        """
        ...

    def write(
        self, output_dir: Path, articles: Iterable[Article], config: dict[str, Any]
    ) -> bool:
        """Generate and write the feed to the output directory.

        Returns:
            True if the feed was written, False if skipped.
        """
        content = self.generate(articles, config)
        if content is None:
            return False
        (output_dir / self.filename).write_text(content, encoding="utf-8")
        return True


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed, newest article first.

    Requires 'url' in the site configuration to generate absolute links.

    Attributes:
        cache: Image cache used to describe representative images.
    """

    def __init__(self, cache: ImageCache):
        self.cache = cache

    @property
    def filename(self) -> str:
        return "feed.xml"

    def feed_image(self, article: Article, base_url: str) -> FeedImage | None:
        """Describe the article's representative image from the cache."""
        name = article.representative_image()
        if name is None:
            return None
        entry = self.cache.get(article.slug, name)
        if entry is None:
            return None
        record = entry.largest_file(JPEG.key)
        if record is not None:
            return FeedImage(
                url=join_root_url(base_url, f"{article.url}{url_quote(record.filename)}"),
                size=record.size,
                mime=JPEG.mime,
                width=record.width,
                height=record.height,
            )
        if entry.size is None:
            return None
        mime = mimetypes.guess_type(name)[0] or "application/octet-stream"
        return FeedImage(
            url=join_root_url(base_url, f"{article.url}{url_quote(name)}"),
            size=entry.size,
            mime=mime,
            width=entry.original.width if entry.original else None,
            height=entry.original.height if entry.original else None,
        )

    def generate(self, articles: Iterable[Article], config: dict[str, Any]) -> str | None:
        base_url = str(config.get("url", ""))
        if not base_url:
            return None
        name = escape_html(str(config.get("name", "")))
        description = escape_html(str(config.get("description", "")))

        items = []
        for article in sorted(articles, key=lambda a: a.date, reverse=True):
            link = join_root_url(base_url, article.url)
            lines = [
                "<item>",
                f"<title>{escape_html(article.title)}</title>",
                f"<link>{link}</link>",
                f'<guid isPermaLink="true">{link}</guid>',
                f"<pubDate>{article.date.strftime(RFC822)}</pubDate>",
            ]
            image = self.feed_image(article, base_url)
            if image is not None:
                lines.append(
                    f'<enclosure url="{image.url}" length="{image.size}" type="{image.mime}"/>'
                )
                dims = ""
                if image.width and image.height:
                    dims = f' width="{image.width}" height="{image.height}"'
                lines.append(
                    f'<media:content url="{image.url}" fileSize="{image.size}" '
                    f'type="{image.mime}" medium="image"{dims}/>'
                )
            lines.append("</item>")
            items.append("".join(lines))

        build_date = datetime.now(timezone.utc).strftime(RFC822)
        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">',
            "<channel>",
            f"<title>{name}</title>",
            f"<link>{base_url}</link>",
            f"<description>{description}</description>",
            "<language>en</language>",
            f"<lastBuildDate>{build_date}</lastBuildDate>",
        ]
        rss.extend(items)
        rss.append("</channel>")
        rss.append("</rss>")
        return "\n".join(rss)
