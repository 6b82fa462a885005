"""Content pipeline for Darkroom.

Maps each article's raw assets to derived build artifacts. For one article
the pipeline:

1. Resolves every image in the article directory through the
   VariantGenerator (generated or confirmed from the cache).
2. Renders the Markdown body, replacing image references with responsive
   markup for the images that have variants, and applies typographic
   refinements (curly quotes, no widowed last word).
3. Ensures the article thumbnail exists.

Images are always resolved before rendering, because the markup is built
from the variant data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from typogrify.filters import typogrify

from .content import Article
from .renderers import MarkdownRenderer
from .variants import VariantGenerator, VariantResult, output_basenames

logger = logging.getLogger("darkroom.pipeline")


@dataclass
class RenderedArticle:
    """An article with its rendered body and resolved images.

    Attributes:
        article: The source article.
        content: Rendered HTML body.
        images: Variant results keyed by source filename.
        cover: Variant result of the representative image, if any.
        thumbnail: Path of the generated thumbnail, if any.
    """

    article: Article
    content: str
    images: dict[str, VariantResult] = field(default_factory=dict)
    cover: VariantResult | None = None
    thumbnail: Path | None = None


class ContentPipeline:
    """Turns articles into rendered HTML plus derived image files.

    Attributes:
        generator: Variant generator shared across the build.
        output_dir: Root of the build output.
        renderer: Markdown renderer.
    """

    def __init__(
        self,
        generator: VariantGenerator,
        output_dir: Path,
        renderer: MarkdownRenderer | None = None,
    ):
        self.generator = generator
        self.output_dir = output_dir
        self.renderer = renderer or MarkdownRenderer(generator.settings.sizes)

    def article_dir(self, article: Article) -> Path:
        """Directory the article's HTML and image variants are written to."""
        return self.output_dir / "articles" / article.slug

    def resolve_images(self, article: Article) -> dict[str, VariantResult]:
        """Generate or confirm variants for every image of an article."""
        dest_dir = self.article_dir(article)
        dest_dir.mkdir(parents=True, exist_ok=True)
        results: dict[str, VariantResult] = {}
        basenames = output_basenames(article.images)
        for filename in article.images:
            basename = basenames[filename]
            if basename != Path(filename).stem:
                logger.warning(
                    "%s: %s shares its name with another image, writing it as %s-*",
                    article.slug,
                    filename,
                    basename,
                )
            results[filename] = self.generator.generate(
                article.slug, article.path / filename, dest_dir, basename
            )
        missing = [n for n in article.referenced_images() if n not in results]
        for name in missing:
            logger.warning("%s references %s, which is not in its directory", article.slug, name)
        return results

    def process(self, article: Article) -> RenderedArticle:
        """Resolve images, render the body and ensure the thumbnail."""
        logger.info("  Building %s...", article.slug)
        images = self.resolve_images(article)
        content = typogrify(self.renderer.render(article.body, images))

        cover_name = article.representative_image()
        cover = images.get(cover_name) if cover_name else None
        thumbnail = None
        if cover is not None:
            thumbnail = self.generator.ensure_thumbnail(
                article.slug,
                article.path / cover.filename,
                self.output_dir / "thumbnails",
                cover.original,
            )
        return RenderedArticle(
            article=article,
            content=content,
            images=images,
            cover=cover,
            thumbnail=thumbnail,
        )
