"""Persisted image variant cache for Darkroom.

The cache records, for every source image, which responsive variants were
generated and what they look like (dimensions, byte sizes). It lets a rebuild
skip ImageMagick entirely for unchanged images, and lets the feed and page
templates read image metadata without probing files again.

On disk the cache is a single JSON document::

    {
      "version": "1",
      "lastUpdated": "2024-05-01T10:00:00+00:00",
      "images": {
        "articles/<slug>/<filename>": {
          "original": {"width": 3000, "height": 2000},
          "variants": {"960": {"jpeg": {...}, "webp": {...}, "avif": {...}}},
          "largestWidth": 2200,
          "size": 412345,
          "lastModified": "...",
          "processed": true,
          "source": {"size": 5123456, "mtimeNs": 1714557600000000000},
          "thumbnail": {"filename": "<slug>-thumb.jpg", ...}
        }
      }
    }

One ImageCache instance is created per build and handed to the components
that need it. Every successful ``put`` is written through to disk, so an
interrupted build loses at most the entry that was in flight. Persistence is
best effort: a failed write is reported through ``CacheWriteResult`` and the
build carries on with the in-memory copy.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .utils import write_text_atomic

logger = logging.getLogger("darkroom.cache")

CACHE_VERSION = "1"


class CacheIOError(Exception):
    """Raised when the cache document cannot be read or written.

    Attributes:
        path: Path of the cache file.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


def cache_key(slug: str, filename: str) -> str:
    """Return the cache key identifying one source image across the site."""
    return f"articles/{slug}/{filename}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class Dimensions:
    """Pixel dimensions of an image."""

    width: int
    height: int

    def to_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dimensions:
        return cls(width=int(data["width"]), height=int(data["height"]))


@dataclass(frozen=True)
class SourceFingerprint:
    """Identity of a source file at the time its variants were generated."""

    size: int
    mtime_ns: int

    @classmethod
    def of(cls, path: Path) -> SourceFingerprint:
        stat = path.stat()
        return cls(size=stat.st_size, mtime_ns=stat.st_mtime_ns)

    def to_dict(self) -> dict[str, int]:
        return {"size": self.size, "mtimeNs": self.mtime_ns}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceFingerprint:
        return cls(size=int(data["size"]), mtime_ns=int(data["mtimeNs"]))


@dataclass(frozen=True)
class VariantFile:
    """One generated file: a single width in a single format."""

    filename: str
    size: int
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"filename": self.filename, "size": self.size}
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VariantFile:
        return cls(
            filename=str(data["filename"]),
            size=int(data["size"]),
            width=int(data["width"]) if data.get("width") is not None else None,
            height=int(data["height"]) if data.get("height") is not None else None,
        )


# width -> format key -> file
VariantMap = dict[int, dict[str, VariantFile]]


@dataclass
class ImageCacheEntry:
    """Derived state of one source image.

    A missing ``original`` or a width absent from ``variants`` means the
    information has not been produced yet; nothing is defaulted.

    Attributes:
        original: Dimensions of the untouched source.
        variants: Generated files keyed by width, then by format key.
        largest_width: Largest generated width (or the source width after a fallback).
        size: Byte size of the largest JPEG variant (or of the fallback copy).
        last_modified: ISO timestamp of the last write of this entry.
        processed: True once the image has been handled, even without variants.
        source: Fingerprint of the source file the variants were made from.
        thumbnail: Article thumbnail made from this image, when it is the cover.
    """

    original: Dimensions | None = None
    variants: VariantMap = field(default_factory=dict)
    largest_width: int | None = None
    size: int | None = None
    last_modified: str | None = None
    processed: bool = False
    source: SourceFingerprint | None = None
    thumbnail: VariantFile | None = None

    @property
    def is_fallback(self) -> bool:
        """True when the image was handled by copying it without variants."""
        return self.processed and not self.variants

    def has_variant(self, width: int, format_key: str) -> bool:
        return format_key in self.variants.get(width, {})

    def largest_file(self, format_key: str = "jpeg") -> VariantFile | None:
        """Return the widest generated file of a format, if any."""
        for width in sorted(self.variants, reverse=True):
            record = self.variants[width].get(format_key)
            if record is not None:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "variants": {
                str(width): {key: record.to_dict() for key, record in formats.items()}
                for width, formats in sorted(self.variants.items())
            },
            "processed": self.processed,
        }
        if self.original is not None:
            data["original"] = self.original.to_dict()
        if self.largest_width is not None:
            data["largestWidth"] = self.largest_width
        if self.size is not None:
            data["size"] = self.size
        if self.last_modified is not None:
            data["lastModified"] = self.last_modified
        if self.source is not None:
            data["source"] = self.source.to_dict()
        if self.thumbnail is not None:
            data["thumbnail"] = self.thumbnail.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageCacheEntry:
        """Build an entry from its JSON form.

        Raises:
            KeyError, TypeError, ValueError: If the data is malformed.
        """
        variants: VariantMap = {}
        for width, formats in (data.get("variants") or {}).items():
            variants[int(width)] = {
                str(key): VariantFile.from_dict(record) for key, record in formats.items()
            }
        original = data.get("original")
        source = data.get("source")
        thumbnail = data.get("thumbnail")
        return cls(
            original=Dimensions.from_dict(original) if original else None,
            variants=variants,
            largest_width=data.get("largestWidth"),
            size=data.get("size"),
            last_modified=data.get("lastModified"),
            processed=bool(data.get("processed", False)),
            source=SourceFingerprint.from_dict(source) if source else None,
            thumbnail=VariantFile.from_dict(thumbnail) if thumbnail else None,
        )


@dataclass(frozen=True)
class CacheWriteResult:
    """Outcome of persisting the cache document.

    Attributes:
        ok: True when the document reached disk.
        error: The failure, when ``ok`` is False.
    """

    ok: bool
    error: CacheIOError | None = None


class ImageCache:
    """In-memory image cache with write-through persistence.

    Single writer: callers must serialize ``put`` calls.

    Attributes:
        path: Location of the JSON document.
        last_updated: ISO timestamp of the last successful mutation.
    """

    def __init__(
        self,
        path: Path,
        entries: dict[str, ImageCacheEntry] | None = None,
        last_updated: str | None = None,
    ):
        self.path = path
        self.last_updated = last_updated
        self._entries: dict[str, ImageCacheEntry] = dict(entries or {})
        self._persist = True

    @classmethod
    def load(cls, path: Path) -> ImageCache:
        """Load the cache document, or start empty.

        A missing, unreadable or corrupt file yields an empty cache and never
        fails the build. Entries that cannot be parsed are dropped individually.

        Args:
            path: Location of the JSON document.

        Returns:
            The loaded cache.
        """
        if not path.exists():
            logger.debug("No image cache at %s, starting fresh", path)
            return cls(path)
        try:
            document = cls._read(path)
        except CacheIOError as exc:
            logger.warning("Ignoring image cache: %s", exc)
            return cls(path)

        entries: dict[str, ImageCacheEntry] = {}
        for key, raw in document["images"].items():
            try:
                entries[key] = ImageCacheEntry.from_dict(raw)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping malformed cache entry %s: %s", key, exc)
        return cls(path, entries, last_updated=document.get("lastUpdated"))

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CacheIOError(path, f"cannot read: {exc}") from exc
        try:
            document = json.loads(text)
        except ValueError as exc:
            raise CacheIOError(path, f"not valid JSON: {exc}") from exc
        if not isinstance(document, dict) or not isinstance(document.get("images"), dict):
            raise CacheIOError(path, "unexpected document structure")
        if str(document.get("version")) != CACHE_VERSION:
            raise CacheIOError(
                path, f"unsupported version {document.get('version')!r}"
            )
        return document

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return sorted(self._entries)

    def get(self, slug: str, filename: str) -> ImageCacheEntry | None:
        """Return the entry for an image, or None when it is not cached."""
        return self._entries.get(cache_key(slug, filename))

    def put(
        self,
        slug: str,
        filename: str,
        entry: ImageCacheEntry,
        replace: bool = False,
    ) -> CacheWriteResult:
        """Merge an entry into the cache and persist the whole document.

        Top-level fields of ``entry`` overwrite the stored ones; variants are
        merged per width and per format so unrelated widths survive.

        Args:
            slug: Article slug.
            filename: Source image filename.
            entry: New state for the image.
            replace: Discard the stored entry instead of merging into it.

        Returns:
            Outcome of the write to disk.
        """
        key = cache_key(slug, filename)
        current = None if replace else self._entries.get(key)
        if current is not None:
            merged: VariantMap = {w: dict(f) for w, f in current.variants.items()}
            for width, formats in entry.variants.items():
                merged.setdefault(width, {}).update(formats)
            entry = ImageCacheEntry(
                original=entry.original or current.original,
                variants=merged,
                largest_width=entry.largest_width,
                size=entry.size,
                last_modified=entry.last_modified,
                processed=entry.processed,
                source=entry.source or current.source,
                thumbnail=entry.thumbnail or current.thumbnail,
            )
        self._entries[key] = entry
        self.last_updated = _now()
        return self.save()

    def prune(self, keep: Callable[[str], bool]) -> list[str]:
        """Remove entries for which ``keep(key)`` is false and persist.

        Returns:
            Sorted list of removed keys.
        """
        removed = sorted(key for key in self._entries if not keep(key))
        for key in removed:
            del self._entries[key]
        if removed:
            self.last_updated = _now()
            self.save()
        return removed

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": CACHE_VERSION,
            "lastUpdated": self.last_updated or _now(),
            "images": {key: self._entries[key].to_dict() for key in sorted(self._entries)},
        }

    def save(self) -> CacheWriteResult:
        """Write the document to disk.

        After the first failure the cache stays in memory only for the rest
        of the build, so the warning is logged once.
        """
        if not self._persist:
            return CacheWriteResult(False, CacheIOError(self.path, "persistence disabled"))
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_text_atomic(self.path, json.dumps(self.to_dict(), indent=2) + "\n")
        except (OSError, TypeError, ValueError) as exc:
            error = CacheIOError(self.path, f"cannot write: {exc}")
            logger.warning(
                "%s; continuing with an in-memory image cache for this build", error
            )
            self._persist = False
            return CacheWriteResult(False, error)
        return CacheWriteResult(True)
