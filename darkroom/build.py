"""Site building functionality for Darkroom.

This module contains the orchestration of a full build: it loads the
configuration and the image cache, copies static assets, runs every article
through the content pipeline, and writes the article pages, the home page and
the RSS feed.

Image problems never stop a build; they degrade to verbatim copies inside the
variant generator. Only a broken configuration, an unreadable article tree or
a template failure raise BuildError.

Key functions:
- build_site: Main function to build the entire site.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import TemplateError

from .assets import AssetPipeline
from .cache import ImageCache
from .config import CONFIG_FILENAME, ConfigError, ImageSettings, load_config
from .content import Article, ArticleLoader
from .feeds import RSSGenerator
from .pipeline import ContentPipeline, RenderedArticle
from .protocols import RasterConverter
from .raster import ImageMagickConverter
from .templates import TemplateEngine
from .variants import GenerationStats, VariantGenerator

logger = logging.getLogger("darkroom.build")


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        articles: Rendered articles, newest first.
        output_dir: Directory where the site was built.
        stats: Image generation counters.
        config: Effective configuration.
    """

    articles: list[RenderedArticle]
    output_dir: Path
    stats: GenerationStats = field(default_factory=GenerationStats)
    config: dict[str, Any] = field(default_factory=dict)


def build_site(
    project_root: Path,
    force: bool = False,
    converter: RasterConverter | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        force: Regenerate every image variant, ignoring the cache.
        converter: Optional raster converter; ImageMagick by default.

    Returns:
        BuildResult describing the rendered articles and image work done.

    Raises:
        BuildError: If the configuration or the article tree cannot be read,
            or a page template fails.
    """
    config_path = project_root / CONFIG_FILENAME
    try:
        config = load_config(project_root)
        settings = ImageSettings.from_config(config)
    except ConfigError as exc:
        raise BuildError(config_path, str(exc), exc) from exc

    if force:
        logger.warning("FORCE OVERWRITE mode enabled - all images will be reprocessed")

    source_dir = project_root / config["source_dir"]
    try:
        articles = ArticleLoader(source_dir).load()
    except (OSError, UnicodeDecodeError) as exc:
        raise BuildError(source_dir, f"Cannot read articles: {exc}", exc) from exc
    logger.info("Found %d articles", len(articles))

    output_dir = project_root / config["output_dir"]
    output_dir.mkdir(parents=True, exist_ok=True)

    cache = ImageCache.load(project_root / config["cache_file"])
    converter = converter or ImageMagickConverter(settings.imagemagick, settings.timeout)
    generator = VariantGenerator(cache, converter, settings, force=force)
    pipeline = ContentPipeline(generator, output_dir)

    stylesheet = AssetPipeline(project_root / config["static_dir"], output_dir).run()
    engine = TemplateEngine(config, stylesheet, project_root / config["templates_dir"])

    rendered_articles: list[RenderedArticle] = []
    for article in articles:
        rendered = pipeline.process(article)
        html = _render(engine.render_article, rendered, article.path / "index.md")
        _write_page(pipeline.article_dir(article), html)
        rendered_articles.append(rendered)

    html = _render(engine.render_index, articles, project_root / config["templates_dir"])
    _write_page(output_dir, html)
    _write_feed(output_dir, cache, articles, config)

    return BuildResult(
        articles=rendered_articles,
        output_dir=output_dir,
        stats=generator.stats,
        config=config,
    )


def _render(render, subject, source_path: Path) -> str:
    """Call a template engine method, turning failures into BuildError."""
    try:
        return render(subject)
    except TemplateError as exc:
        raise BuildError(source_path, f"Template error: {exc}", exc) from exc


def _write_page(target_dir: Path, rendered: str) -> None:
    """Write a rendered page as ``index.html`` in ``target_dir``."""
    target_dir.mkdir(parents=True, exist_ok=True)
    with open(target_dir / "index.html", "w", encoding="utf-8") as f:
        f.write(rendered)


def _write_feed(
    output_dir: Path,
    cache: ImageCache,
    articles: list[Article],
    config: dict[str, Any],
) -> None:
    """Write feed.xml, or log why it was skipped."""
    if not RSSGenerator(cache).write(output_dir, articles, config):
        logger.warning("No 'url' configured in %s; skipping feed.xml", CONFIG_FILENAME)
