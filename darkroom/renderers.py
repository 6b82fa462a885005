"""Markdown rendering for Darkroom articles.

Articles are rendered with mistune. Two hooks adapt the output to a photo
blog:

- Images that have generated variants become ``<picture>`` elements with one
  ``<source>`` per modern format and a JPEG ``<img>`` fallback. Images without
  variants (unknown, remote, or copied verbatim after a failure) keep their
  original reference.
- Paragraphs that only hold images get ``class="center"``; every other
  paragraph gets ``class="text"``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING

import mistune
from mistune.util import escape, unescape

from .html_utils import escape_html, is_external_url, local_image_name, url_quote
from .raster import AVIF, JPEG, WEBP

if TYPE_CHECKING:
    from .variants import VariantResult

_TAG_RE = re.compile(r"<[^>]*>")
_IMAGE_TAG_RE = re.compile(r"<(?:img|picture)\b", re.IGNORECASE)

# Modern formats, most efficient first; browsers pick the first supported one
_SOURCE_FORMATS = (AVIF, WEBP)


def _srcset(result: VariantResult, format_key: str) -> str:
    return ", ".join(f"{url_quote(f.filename)} {f.width}w" for f in result.files(format_key))


def render_picture(
    result: VariantResult,
    alt: str,
    title: str | None = None,
    sizes: str = "100vw",
) -> str:
    """Render a format-negotiated ``<picture>`` for an image with variants.

    Args:
        result: Variants of the image.
        alt: Alternative text (unescaped).
        title: Optional title attribute (unescaped).
        sizes: Value of the ``sizes`` attribute.

    Returns:
        HTML string.
    """
    parts = ["<picture>"]
    for fmt in _SOURCE_FORMATS:
        srcset = _srcset(result, fmt.key)
        if srcset:
            parts.append(
                f'<source type="{fmt.mime}" srcset="{srcset}" sizes="{escape_html(sizes)}">'
            )

    largest = result.largest()
    src = largest.filename if largest else result.largest_filename
    img = [f'<img src="{url_quote(src)}"']
    jpeg_srcset = _srcset(result, JPEG.key)
    if jpeg_srcset:
        img.append(f'srcset="{jpeg_srcset}" sizes="{escape_html(sizes)}"')
    img.append(f'alt="{escape_html(alt)}"')
    if title:
        img.append(f'title="{escape_html(title)}"')
    if largest is not None and largest.width and largest.height:
        img.append(f'width="{largest.width}" height="{largest.height}"')
    img.append('loading="lazy" decoding="async">')
    parts.append(" ".join(img))
    parts.append("</picture>")
    return "".join(parts)


class _ArticleRenderer(mistune.HTMLRenderer):
    """Markdown renderer with responsive images and paragraph classes.

    Attributes:
        images: Variant results keyed by source filename.
        sizes: ``sizes`` attribute for responsive images.
    """

    def __init__(self, images: Mapping[str, VariantResult], sizes: str):
        super().__init__(escape=False)
        self.images = images
        self.sizes = sizes

    def text(self, text: str) -> str:
        """Escape text but keep double quotes for the typography pass."""
        return escape(unescape(text), quote=False)

    def image(self, text: str, url: str | None = None, title: str | None = None) -> str:
        """Render an image as ``<picture>`` when variants exist for it."""
        src = url or ""
        result = None if is_external_url(src) else self.images.get(local_image_name(src))
        if result is None or not result.responsive:
            return super().image(text, src, title)
        return render_picture(result, _TAG_RE.sub("", text), title, self.sizes)

    def paragraph(self, text: str) -> str:
        """Render a paragraph with a ``center`` or ``text`` class."""
        image_only = bool(_IMAGE_TAG_RE.search(text)) and not _TAG_RE.sub("", text).strip()
        css_class = "center" if image_only else "text"
        return f'<p class="{css_class}">{text}</p>\n'


class MarkdownRenderer:
    """Renders article Markdown to HTML."""

    def __init__(self, sizes: str = "100vw"):
        self.sizes = sizes

    def render(self, body: str, images: Mapping[str, VariantResult] | None = None) -> str:
        """Render Markdown content to HTML.

        Args:
            body: Markdown source without front matter.
            images: Variant results keyed by source filename.

        Returns:
            Rendered HTML.
        """
        renderer = _ArticleRenderer(images or {}, self.sizes)
        markdown = mistune.create_markdown(
            renderer=renderer, plugins=["strikethrough", "table", "url"]
        )
        return markdown(body)
