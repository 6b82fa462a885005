"""Template rendering engine for Darkroom.

This module uses Jinja2 to render the home page and article pages. The
templates bundled with the package (``layout.html.jinja``,
``index.html.jinja`` and ``article.html.jinja``) can be overridden by files
of the same name in the project's ``templates/`` directory.

Key class:
- TemplateEngine: Renders pages and builds their social media metadata.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    select_autoescape,
)
from markupsafe import Markup
from typogrify.templatetags import jinja_filters

from .content import Article
from .html_utils import join_root_url, url_quote
from .pipeline import RenderedArticle

__all__ = ["TemplateEngine"]


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        config: Site configuration (``url``, ``name``, ``description``, ...).
        stylesheet: Filename of the hashed stylesheet under ``/css/``.
        env: Jinja2 environment.
    """

    def __init__(
        self,
        config: dict[str, Any],
        stylesheet: str = "main.css",
        templates_dir: Path | None = None,
    ):
        """Initialize the template engine.

        Args:
            config: Site configuration.
            stylesheet: Stylesheet filename to link from every page.
            templates_dir: Optional directory with template overrides.
        """
        self.config = config
        self.stylesheet = stylesheet
        loaders = []
        if templates_dir is not None and templates_dir.is_dir():
            loaders.append(FileSystemLoader(str(templates_dir)))
        loaders.append(PackageLoader("darkroom", "templates"))
        self.env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._install_globals()

    def _install_globals(self) -> None:
        """Install globals and the typogrify filters in the Jinja environment."""
        self.env.globals["site"] = self.config
        self.env.globals["stylesheet"] = self.stylesheet
        self.env.globals["url_for"] = self._url_for
        jinja_filters.register(self.env)

    def _url_for(self, path: str) -> str:
        """Generate an absolute URL for a site path when a base URL is set.

        Args:
            path: Path to generate URL for.

        Returns:
            Full URL with the site URL prefix if configured.
        """
        return join_root_url(self.config.get("url", ""), path)

    def social_meta(
        self,
        title: str,
        url: str,
        image: str | None = None,
        kind: str = "website",
        description: str | None = None,
    ) -> dict[str, str]:
        """Build Open Graph and Twitter card values for a page.

        Args:
            title: Page title.
            url: Canonical URL of the page.
            image: Image path relative to the site root.
            kind: Open Graph type (``website`` or ``article``).
            description: Optional description; defaults to the site description.

        Returns:
            Mapping consumed by the layout template.
        """
        return {
            "title": title,
            "description": description or self.config.get("description", ""),
            "image": self._url_for(image or self.config.get("logo", "")),
            "url": url,
            "type": kind,
            "site_name": self.config.get("name", ""),
        }

    def render_index(self, articles: Iterable[Article]) -> str:
        """Render the home page listing all articles."""
        template = self.env.get_template("index.html.jinja")
        url = self._url_for("/")
        return template.render(
            title=self.config.get("name", ""),
            articles=list(articles),
            canonical_url=url,
            meta=self.social_meta(self.config.get("name", ""), url),
        )

    def render_article(self, rendered: RenderedArticle) -> str:
        """Render one article page."""
        article = rendered.article
        template = self.env.get_template("article.html.jinja")
        url = self._url_for(article.url)
        image = None
        if rendered.cover is not None:
            image = f"{article.url}{url_quote(rendered.cover.largest_filename)}"
        return template.render(
            title=f"{article.title} - {self.config.get('name', '')}",
            article=article,
            content=Markup(rendered.content),
            canonical_url=url,
            body_class="article-detail",
            meta=self.social_meta(article.title, url, image, "article", article.title),
        )
