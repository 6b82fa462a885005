from pathlib import Path

import pytest

from darkroom.cache import Dimensions
from darkroom.raster import ConversionError, ProbeError


class FakeConverter:
    """In-process RasterConverter that records calls and writes stub files."""

    def __init__(self, sizes=None, fail=None, identify_fail=False):
        self.sizes = dict(sizes or {})
        self.fail = fail or (lambda dest, options: False)
        self.identify_fail = identify_fail
        self.identify_calls = []
        self.convert_calls = []

    @property
    def calls(self):
        return len(self.identify_calls) + len(self.convert_calls)

    def identify(self, path: Path) -> Dimensions:
        self.identify_calls.append(path.name)
        if self.identify_fail:
            raise ProbeError(f"cannot identify {path.name}")
        width, height = self.sizes.get(path.name, (3000, 2000))
        return Dimensions(width, height)

    def convert(self, source, dest, options):
        self.convert_calls.append((dest.name, options.width, options.format))
        if self.fail(dest, options):
            raise ConversionError(f"cannot write {dest.name}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(f"{options.format}:{options.width}:{options.quality}".encode())


@pytest.fixture
def fake_converter():
    return FakeConverter()


def _write_article(root: Path, slug: str, body: str, images=(), frontmatter=None) -> Path:
    """Create raw_articles/<slug>/index.md and stub image files."""
    article = root / "raw_articles" / slug
    article.mkdir(parents=True, exist_ok=True)
    front = frontmatter if frontmatter is not None else f"title: {slug.title()}\ndate: 2024-03-01\n"
    (article / "index.md").write_text(f"---\n{front}---\n{body}", encoding="utf-8")
    for name in images:
        (article / name).write_bytes(b"source-" + name.encode())
    return article


@pytest.fixture
def write_article():
    return _write_article
