"""Configuration loading for Darkroom.

Site settings are read from ``darkroom.yaml`` at the project root and merged
over ``DEFAULT_CONFIG``. The ``images`` block is merged key-by-key so a project
can override a single setting (for example only the width ladder) without
restating the others.

Key objects:
- DEFAULT_CONFIG: Defaults for every supported key.
- load_config: Reads and merges the project configuration.
- ImageSettings: Typed view of the ``images`` block used by the variant generator.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "darkroom.yaml"

DEFAULT_IMAGE_CONFIG: dict[str, Any] = {
    "widths": [960, 1100, 1440, 2200],
    "quality": {"jpeg": 85, "webp": 80, "avif": 60},
    "strip_metadata": True,
    "thumbnail_width": 200,
    "timeout": 120,
    "sizes": "(max-width: 1100px) 100vw, 1100px",
    "imagemagick": None,
}

DEFAULT_CONFIG: dict[str, Any] = {
    "url": "",
    "name": "darkroom",
    "owner": "",
    "description": "Photoblog",
    "logo": "/static/logo.svg",
    "source_dir": "raw_articles",
    "static_dir": "static",
    "output_dir": "build",
    "templates_dir": "templates",
    "cache_file": "image-cache.json",
    "images": DEFAULT_IMAGE_CONFIG,
}


class ConfigError(ValueError):
    """Raised when the configuration file is malformed."""


def load_config(project_root: Path) -> dict[str, Any]:
    """Load site configuration from darkroom.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    config_path = project_root / CONFIG_FILENAME
    config = copy.deepcopy(DEFAULT_CONFIG)
    if not config_path.exists():
        return config
    with open(config_path, encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ConfigError("Top level of the configuration must be a mapping")

    images = loaded.pop("images", None) or {}
    if not isinstance(images, dict):
        raise ConfigError("'images' must be a mapping")
    config.update(loaded)
    config["images"].update(images)
    url = str(config.get("url") or "")
    if url and not url.endswith("/"):
        url += "/"
    config["url"] = url
    return config


@dataclass(frozen=True)
class ImageSettings:
    """Settings that drive image variant generation.

    Attributes:
        widths: Target width ladder, ascending and unique.
        quality: Encoder quality per output format key.
        strip_metadata: Whether EXIF and other profiles are removed.
        thumbnail_width: Width of the per-article thumbnail.
        timeout: Seconds allowed for one external conversion call.
        sizes: Value of the ``sizes`` attribute in responsive markup.
        imagemagick: Optional explicit ImageMagick binary.
    """

    widths: tuple[int, ...] = (960, 1100, 1440, 2200)
    quality: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_IMAGE_CONFIG["quality"])
    )
    strip_metadata: bool = True
    thumbnail_width: int = 200
    timeout: float = 120
    sizes: str = DEFAULT_IMAGE_CONFIG["sizes"]
    imagemagick: str | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ImageSettings:
        """Build settings from a loaded configuration dictionary.

        Raises:
            ConfigError: If widths or numeric settings are invalid.
        """
        images = {**DEFAULT_IMAGE_CONFIG, **(config.get("images") or {})}
        try:
            widths = sorted({int(w) for w in images["widths"]})
            quality = {
                **DEFAULT_IMAGE_CONFIG["quality"],
                **{str(k): int(v) for k, v in (images["quality"] or {}).items()},
            }
            thumbnail_width = int(images["thumbnail_width"])
            timeout = float(images["timeout"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid images settings: {exc}") from exc
        if not widths or any(w <= 0 for w in widths):
            raise ConfigError("images.widths must list positive integers")
        if thumbnail_width <= 0 or timeout <= 0:
            raise ConfigError("images.thumbnail_width and images.timeout must be positive")
        return cls(
            widths=tuple(widths),
            quality=quality,
            strip_metadata=bool(images["strip_metadata"]),
            thumbnail_width=thumbnail_width,
            timeout=timeout,
            sizes=str(images["sizes"]),
            imagemagick=images.get("imagemagick") or None,
        )
