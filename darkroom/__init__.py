"""Darkroom photo blog builder.

This package builds a static photo blog from a directory of Markdown articles
with co-located images. Every image is turned into a set of responsive
variants (several widths in JPEG, WebP and AVIF) through ImageMagick, and a
persisted image cache keeps repeated builds incremental.

The main entry point is the CLI module, which provides commands for building
the site and pruning the image cache.

Architecture:
- raster: Adapter around the external ImageMagick tools.
- cache: Persisted image variant cache.
- variants: Decides which variants are missing and generates them.
- pipeline: Maps each article's images to variants and renders its HTML.
- build: Orchestrates a full build and emits pages, feed and assets.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
