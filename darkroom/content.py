"""Article discovery for Darkroom.

An article is a directory under the source tree containing an ``index.md``
(Markdown with YAML front matter) and any number of images. This module finds
those directories and turns them into immutable Article objects; it does not
touch images or render anything.

Key classes:
- Article: Dataclass representing one article for the duration of a build.
- ArticleLoader: Enumerates the source tree and builds Article instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .extractors import CompositeMetadataExtractor, default_metadata_extractor
from .html_utils import is_external_url, local_image_name
from .utils import is_image, markdown_image_refs

INDEX_FILENAME = "index.md"


@dataclass(frozen=True)
class Article:
    """One Markdown article and its co-located images.

    Attributes:
        slug: Directory name; also the URL segment and cache key prefix.
        title: Human-readable title.
        date: Publication date.
        body: Markdown body without front matter.
        path: Directory holding ``index.md`` and the images.
        images: Image filenames found in the directory, sorted.
        featured: Optional image filename chosen as representative image.
        frontmatter: Raw front matter values.
    """

    slug: str
    title: str
    date: datetime
    body: str
    path: Path
    images: tuple[str, ...] = ()
    featured: str | None = None
    frontmatter: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def url(self) -> str:
        return f"/articles/{self.slug}/"

    def referenced_images(self) -> list[str]:
        """Return local image names referenced in the body, in order."""
        names = []
        for src in markdown_image_refs(self.body):
            if is_external_url(src):
                continue
            names.append(local_image_name(src))
        return names

    def representative_image(self) -> str | None:
        """Pick the image that stands for the article in feeds and previews.

        The ``featured`` image wins when it exists, then the first image
        referenced in the body, then the first image in the directory.
        """
        if self.featured and self.featured in self.images:
            return self.featured
        for name in self.referenced_images():
            if name in self.images:
                return name
        return self.images[0] if self.images else None


class ArticleLoader:
    """Loads articles from the source directory.

    Attributes:
        source_dir: Directory with one sub-directory per article.
    """

    def __init__(
        self,
        source_dir: Path,
        metadata_extractor: CompositeMetadataExtractor | None = None,
    ):
        self.source_dir = source_dir
        self.metadata_extractor = metadata_extractor or default_metadata_extractor

    def iter_dirs(self) -> list[Path]:
        """Return article directories, sorted by name.

        Directories without ``index.md`` and hidden entries are skipped.

        Raises:
            FileNotFoundError: If the source directory does not exist.
            OSError: If the source directory cannot be listed.
        """
        if not self.source_dir.is_dir():
            raise FileNotFoundError(f"Expected article directory at {self.source_dir}")
        dirs = []
        for path in sorted(self.source_dir.iterdir()):
            if path.name.startswith((".", "_")) or not path.is_dir():
                continue
            if (path / INDEX_FILENAME).is_file():
                dirs.append(path)
        return dirs

    def build(self, article_dir: Path) -> Article:
        """Build an Article from its directory."""
        index = article_dir / INDEX_FILENAME
        raw = index.read_text(encoding="utf-8")
        metadata = self.metadata_extractor.extract(raw, index)
        images = tuple(
            sorted(p.name for p in article_dir.iterdir() if p.is_file() and is_image(p))
        )
        return Article(
            slug=article_dir.name,
            title=metadata["title"],
            date=metadata["date"],
            body=metadata.get("body", raw),
            path=article_dir,
            images=images,
            featured=metadata.get("featured"),
            frontmatter=metadata.get("frontmatter", {}),
        )

    def load(self) -> list[Article]:
        """Load all articles, newest first."""
        articles = [self.build(path) for path in self.iter_dirs()]
        return sorted(articles, key=lambda a: a.date, reverse=True)
