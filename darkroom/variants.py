"""Responsive image variant generation for Darkroom.

For one source image the VariantGenerator makes the files on disk and the
cache entry converge to the full matrix of target widths x output formats,
doing as little work as possible:

1. If the cached entry is complete (and the source is unchanged), return it
   without touching ImageMagick.
2. Otherwise determine the intrinsic width (cached, or via ``identify``) and
   the target widths: the configured ladder up to the intrinsic width, or the
   intrinsic width alone when the image is smaller than every target.
3. Convert only the (width, format) pairs that are missing, so a run that
   crashed halfway is healed incrementally.
4. Write the merged entry back to the cache when anything new was made.

If the image cannot be probed, or no variant at all can be produced, the
source is copied verbatim and a minimal ``processed`` entry is recorded. One
bad image never aborts the build.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path

from .cache import (
    Dimensions,
    ImageCache,
    ImageCacheEntry,
    SourceFingerprint,
    VariantFile,
    VariantMap,
)
from .config import ImageSettings
from .protocols import RasterConverter
from .raster import (
    JPEG,
    OUTPUT_FORMATS,
    ConversionError,
    ConvertOptions,
    OutputFormat,
    ProbeError,
    read_dimensions,
)

logger = logging.getLogger("darkroom.variants")


def target_widths(ladder: tuple[int, ...] | list[int], intrinsic_width: int) -> list[int]:
    """Return the widths to generate for an image, never upscaling.

    Examples:
        >>> target_widths([960, 1100, 1440, 2200], 3000)
        [960, 1100, 1440, 2200]

        >>> target_widths([960, 1100, 1440, 2200], 500)
        [500]
    """
    widths = sorted(w for w in set(ladder) if w <= intrinsic_width)
    return widths or [intrinsic_width]


def variant_filename(
    filename: str, width: int, fmt: OutputFormat, basename: str | None = None
) -> str:
    """Return ``<basename>-<width>.<ext>`` for one variant.

    ``basename`` defaults to the stem of the source filename.
    """
    return f"{basename or Path(filename).stem}-{width}.{fmt.extension}"


def output_basenames(filenames: Iterable[str]) -> dict[str, str]:
    """Map source filenames to the basename their variants are written under.

    Variant names drop the source extension, so ``photo.jpg`` and
    ``photo.png`` would write the same files. The first image of such a group
    (in sorted order) keeps its stem; the others get their extension appended.

    Examples:
        >>> output_basenames(["photo.png", "photo.jpg", "tiny.jpg"])
        {'photo.jpg': 'photo', 'photo.png': 'photo-png', 'tiny.jpg': 'tiny'}
    """
    basenames: dict[str, str] = {}
    taken: set[str] = set()
    for filename in sorted(filenames):
        path = Path(filename)
        base = path.stem
        while base.casefold() in taken:
            base = f"{base}-{path.suffix.lstrip('.').lower()}"
        taken.add(base.casefold())
        basenames[filename] = base
    return basenames


def scaled_height(original: Dimensions, width: int) -> int:
    """Height of a variant resized to ``width`` with the aspect ratio kept."""
    return max(1, round(original.height * width / original.width))


@dataclass
class VariantResult:
    """What the content pipeline and emitters need to know about one image.

    Attributes:
        filename: Source image filename.
        variants: Generated files by width and format key; empty after a fallback.
        largest_width: Largest generated width, or the probed source width.
        largest_filename: Largest JPEG variant, or the verbatim copy.
        original: Intrinsic dimensions of the source, when known.
    """

    filename: str
    variants: VariantMap
    largest_width: int | None
    largest_filename: str
    original: Dimensions | None = None

    @property
    def responsive(self) -> bool:
        return bool(self.variants)

    def files(self, format_key: str) -> list[VariantFile]:
        """Return the files of one format, narrowest first."""
        return [
            self.variants[width][format_key]
            for width in sorted(self.variants)
            if format_key in self.variants[width]
        ]

    def largest(self) -> VariantFile | None:
        """Return the widest JPEG variant, if any."""
        files = self.files(JPEG.key)
        return files[-1] if files else None

    @classmethod
    def from_entry(cls, filename: str, entry: ImageCacheEntry) -> VariantResult:
        largest = entry.largest_file(JPEG.key)
        return cls(
            filename=filename,
            variants=entry.variants,
            largest_width=entry.largest_width,
            largest_filename=largest.filename if largest else filename,
            original=entry.original,
        )


@dataclass
class GenerationStats:
    """Counters reported at the end of a build."""

    converted: int = 0
    skipped: int = 0
    fallbacks: int = 0
    failed_conversions: int = 0
    thumbnails: int = 0


class VariantGenerator:
    """Generates and caches responsive variants for source images.

    Attributes:
        cache: The build's image cache; this class is its only writer.
        converter: Adapter used for probing and converting.
        settings: Width ladder, qualities and related settings.
        force: Bypass every skip and fast path.
        formats: Output formats, full-fidelity first.
        stats: Counters for the current build.
    """

    def __init__(
        self,
        cache: ImageCache,
        converter: RasterConverter,
        settings: ImageSettings | None = None,
        force: bool = False,
        formats: tuple[OutputFormat, ...] = OUTPUT_FORMATS,
    ):
        self.cache = cache
        self.converter = converter
        self.settings = settings or ImageSettings()
        self.force = force
        self.formats = formats
        self.stats = GenerationStats()

    def pending(
        self,
        entry: ImageCacheEntry | None,
        widths: list[int],
        dest_dir: Path,
        filename: str,
        basename: str | None = None,
    ) -> list[tuple[int, OutputFormat]]:
        """Return the (width, format) pairs that still need generating.

        A pair is satisfied when the entry has a record for it under the
        expected variant name and that file exists in ``dest_dir``. This is
        the single completeness rule used both for the fast path and for
        per-pair skipping.
        """
        missing: list[tuple[int, OutputFormat]] = []
        for width in widths:
            for fmt in self.formats:
                record = None
                if entry is not None and not self.force:
                    record = entry.variants.get(width, {}).get(fmt.key)
                if (
                    record is None
                    or record.filename != variant_filename(filename, width, fmt, basename)
                    or not (dest_dir / record.filename).exists()
                ):
                    missing.append((width, fmt))
        return missing

    def is_complete(
        self,
        entry: ImageCacheEntry | None,
        source: Path,
        dest_dir: Path,
        basename: str | None = None,
    ) -> bool:
        """Check whether an image needs no work at all."""
        if self.force or entry is None:
            return False
        if entry.source is not None and entry.source != SourceFingerprint.of(source):
            return False
        if entry.is_fallback:
            return (dest_dir / source.name).exists()
        if entry.original is None:
            return False
        widths = target_widths(self.settings.widths, entry.original.width)
        return not self.pending(entry, widths, dest_dir, source.name, basename)

    def generate(
        self,
        slug: str,
        source: Path,
        dest_dir: Path,
        basename: str | None = None,
    ) -> VariantResult:
        """Ensure all variants of one source image exist in ``dest_dir``.

        Args:
            slug: Slug of the article owning the image.
            source: Path of the source image.
            dest_dir: Directory the variants are written to.
            basename: Prefix of the variant filenames; the source stem by default.

        Returns:
            The resulting variants; never raises for probe or conversion failures.
        """
        filename = source.name
        entry = self.cache.get(slug, filename)
        if self.is_complete(entry, source, dest_dir, basename):
            self.stats.skipped += 1
            logger.info("\tSKIPPING %s/%s", slug, filename)
            return VariantResult.from_entry(filename, entry)

        dest_dir.mkdir(parents=True, exist_ok=True)
        try:
            return self._generate(slug, source, dest_dir, entry, basename)
        except (ProbeError, ConversionError) as exc:
            logger.warning("Cannot create variants for %s/%s: %s", slug, filename, exc)
            return self._fallback(slug, source, dest_dir)

    def _generate(
        self,
        slug: str,
        source: Path,
        dest_dir: Path,
        entry: ImageCacheEntry | None,
        basename: str | None,
    ) -> VariantResult:
        filename = source.name
        fingerprint = SourceFingerprint.of(source)
        base = entry
        if base is not None and (
            base.is_fallback or (base.source is not None and base.source != fingerprint)
        ):
            base = None

        if base is not None and base.original is not None and not self.force:
            original = base.original
        else:
            original = self.converter.identify(source)
        widths = target_widths(self.settings.widths, original.width)
        todo = self.pending(base, widths, dest_dir, filename, basename)

        logger.info(
            "\tRESIZING %s/%s (%d file%s)",
            slug,
            filename,
            len(todo),
            "" if len(todo) == 1 else "s",
        )
        variants: VariantMap = (
            {w: dict(f) for w, f in base.variants.items()} if base is not None else {}
        )
        generated = 0
        for width, fmt in todo:
            name = variant_filename(filename, width, fmt, basename)
            dest = dest_dir / name
            options = ConvertOptions(
                width=width,
                format=fmt.key,
                quality=self.settings.quality.get(fmt.key, 85),
                strip_metadata=self.settings.strip_metadata,
            )
            try:
                self.converter.convert(source, dest, options)
                size = dest.stat().st_size
            except (ConversionError, OSError) as exc:
                self.stats.failed_conversions += 1
                logger.warning("\tFAILED %s/%s: %s", slug, name, exc)
                continue
            variants.setdefault(width, {})[fmt.key] = VariantFile(
                filename=name,
                size=size,
                width=width,
                height=scaled_height(original, width),
            )
            generated += 1
        self.stats.converted += generated

        present = [w for w in widths if variants.get(w)]
        if not present:
            raise ConversionError(f"no variant of {filename} could be generated")
        if generated == 0 and base is not None:
            return VariantResult.from_entry(filename, base)

        jpeg_widths = [w for w in present if JPEG.key in variants[w]]
        new_entry = ImageCacheEntry(
            original=original,
            variants=variants,
            largest_width=max(present),
            size=variants[max(jpeg_widths)][JPEG.key].size if jpeg_widths else None,
            last_modified=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            processed=True,
            source=fingerprint,
        )
        self.cache.put(slug, filename, new_entry, replace=base is None)
        return VariantResult.from_entry(filename, self.cache.get(slug, filename) or new_entry)

    def _fallback(self, slug: str, source: Path, dest_dir: Path) -> VariantResult:
        """Copy the source verbatim and record a minimal cache entry."""
        filename = source.name
        dest = dest_dir / filename
        logger.info("\tFALLBACK: copying %s/%s", slug, filename)
        try:
            shutil.copy2(source, dest)
        except OSError as exc:
            logger.warning("Cannot copy %s/%s: %s", slug, filename, exc)
            return VariantResult(filename, {}, None, filename)
        self.stats.fallbacks += 1

        dims = read_dimensions(source)
        entry = ImageCacheEntry(
            original=dims,
            variants={},
            largest_width=dims.width if dims else None,
            size=dest.stat().st_size,
            last_modified=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            processed=True,
            source=SourceFingerprint.of(source),
        )
        self.cache.put(slug, filename, entry, replace=True)
        return VariantResult(
            filename=filename,
            variants={},
            largest_width=entry.largest_width,
            largest_filename=filename,
            original=dims,
        )

    def ensure_thumbnail(
        self,
        slug: str,
        source: Path,
        thumbnails_dir: Path,
        original: Dimensions | None = None,
    ) -> Path | None:
        """Create ``<slug>-thumb.jpg`` for an article's representative image.

        The thumbnail is recorded on the cover image's cache entry. It is kept
        while that record matches the file on disk; a replaced cover drops
        its entry (and the record with it), and switching to another cover
        finds no record, so both rebuild the thumbnail. Failures are logged
        and leave the article without a thumbnail.

        Returns:
            Path of the thumbnail, or None if it could not be created.
        """
        dest = thumbnails_dir / f"{slug}-thumb.jpg"
        entry = self.cache.get(slug, source.name)
        record = entry.thumbnail if entry is not None else None
        if (
            not self.force
            and record is not None
            and record.filename == dest.name
            and dest.exists()
            and dest.stat().st_size == record.size
        ):
            logger.debug("\tSKIPPING thumbnail %s", dest.name)
            return dest

        width = self.settings.thumbnail_width
        if original is not None:
            width = min(width, original.width)
        options = ConvertOptions(
            width=width,
            format=JPEG.key,
            quality=self.settings.quality.get(JPEG.key, 85),
            strip_metadata=self.settings.strip_metadata,
        )
        logger.info("\tCREATING thumbnail %s", dest.name)
        thumbnails_dir.mkdir(parents=True, exist_ok=True)
        try:
            self.converter.convert(source, dest, options)
            size = dest.stat().st_size
        except (ConversionError, OSError) as exc:
            logger.warning("Cannot create thumbnail for %s: %s", slug, exc)
            return None
        self.stats.thumbnails += 1

        if entry is not None:
            thumbnail = VariantFile(
                filename=dest.name,
                size=size,
                width=width,
                height=scaled_height(original, width) if original is not None else None,
            )
            self.cache.put(slug, source.name, replace(entry, thumbnail=thumbnail), replace=True)
        return dest
