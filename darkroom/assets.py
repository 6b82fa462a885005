"""Static asset copying for Darkroom.

Copies the site's static files into the build output:

- ``css/main.css`` is written as ``css/main-<hash>.css`` so browsers refetch
  it whenever it changes; older hashed copies are removed.
- ``fonts/*`` is copied to ``fonts/``.
- ``logo.svg`` is copied to ``static/`` and ``favicon.ico`` to the root.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .utils import short_hash

logger = logging.getLogger("darkroom.assets")

DEFAULT_STYLESHEET = "main.css"


class AssetPipeline:
    """Copies static assets into the output directory.

    Attributes:
        static_dir: Directory containing source assets.
        output_dir: Directory where assets are written.
    """

    def __init__(self, static_dir: Path, output_dir: Path):
        self.static_dir = static_dir
        self.output_dir = output_dir

    def run(self) -> str:
        """Copy all static assets.

        Returns:
            Filename of the stylesheet to link from pages.
        """
        stylesheet = self._copy_css()
        self._copy_fonts()
        self._copy_files()
        return stylesheet

    def _copy_css(self) -> str:
        source = self.static_dir / "css" / DEFAULT_STYLESHEET
        css_dir = self.output_dir / "css"
        css_dir.mkdir(parents=True, exist_ok=True)
        if not source.exists():
            return DEFAULT_STYLESHEET

        filename = f"main-{short_hash(source)}.css"
        for old in css_dir.glob("main*.css"):
            if old.name != filename and (old.name == DEFAULT_STYLESHEET or old.name.startswith("main-")):
                old.unlink()
                logger.debug("Removed old CSS: %s", old.name)
        shutil.copy2(source, css_dir / filename)
        logger.info("CSS copied as %s", filename)
        return filename

    def _copy_fonts(self) -> None:
        fonts = self.static_dir / "fonts"
        if not fonts.is_dir():
            return
        target = self.output_dir / "fonts"
        target.mkdir(parents=True, exist_ok=True)
        for item in fonts.iterdir():
            if item.is_file():
                shutil.copy2(item, target / item.name)

    def _copy_files(self) -> None:
        logo = self.static_dir / "logo.svg"
        if logo.exists():
            (self.output_dir / "static").mkdir(parents=True, exist_ok=True)
            shutil.copy2(logo, self.output_dir / "static" / "logo.svg")
        favicon = self.static_dir / "favicon.ico"
        if favicon.exists():
            shutil.copy2(favicon, self.output_dir / "favicon.ico")
