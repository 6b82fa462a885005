from pathlib import Path

from PIL import Image

from darkroom.cache import Dimensions, ImageCache
from darkroom.config import ImageSettings
from darkroom.raster import AVIF, JPEG, WEBP
from conftest import FakeConverter
from darkroom.variants import (
    VariantGenerator,
    output_basenames,
    scaled_height,
    target_widths,
    variant_filename,
)

LADDER = (960, 1100, 1440, 2200)


def make_generator(tmp_path: Path, converter, force=False) -> VariantGenerator:
    cache = ImageCache.load(tmp_path / "image-cache.json")
    settings = ImageSettings(widths=LADDER)
    return VariantGenerator(cache, converter, settings, force=force)


def dest_for(tmp_path: Path, slug: str) -> Path:
    return tmp_path / "build" / "articles" / slug


def snapshot(directory: Path) -> dict[str, bytes]:
    return {p.name: p.read_bytes() for p in sorted(directory.iterdir())}


def test_target_widths_never_upscale():
    assert target_widths(LADDER, 3000) == [960, 1100, 1440, 2200]
    assert target_widths(LADDER, 1200) == [960, 1100]
    assert target_widths(LADDER, 2200) == [960, 1100, 1440, 2200]
    assert target_widths(LADDER, 500) == [500]
    assert target_widths([1100, 960, 960], 1000) == [960]


def test_variant_filename_and_height():
    assert variant_filename("photo.jpg", 960, JPEG) == "photo-960.jpg"
    assert variant_filename("Photo.PNG", 1100, WEBP) == "Photo-1100.webp"
    assert variant_filename("my.photo.jpeg", 500, AVIF) == "my.photo-500.avif"
    assert scaled_height(Dimensions(3000, 2000), 960) == 640
    assert scaled_height(Dimensions(4000, 1), 960) == 1
    assert variant_filename("photo.png", 960, JPEG, "photo-png") == "photo-png-960.jpg"


def test_output_basenames_keep_same_stem_images_apart():
    assert output_basenames(["photo.png", "photo.jpg", "tiny.jpg"]) == {
        "photo.jpg": "photo",
        "photo.png": "photo-png",
        "tiny.jpg": "tiny",
    }
    assert output_basenames(["Dusk.JPG", "dusk.jpeg", "dusk-jpeg.png"]) == {
        "Dusk.JPG": "Dusk",
        "dusk-jpeg.png": "dusk-jpeg",
        "dusk.jpeg": "dusk-jpeg-jpeg",
    }


def test_renamed_basename_regenerates_variants(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "", ["photo.png"]) / "photo.png"
    dest = dest_for(tmp_path, "hello-world")
    generator = make_generator(tmp_path, fake_converter)
    generator.generate("hello-world", source, dest)
    fake_converter.convert_calls.clear()

    result = generator.generate("hello-world", source, dest, "photo-png")

    assert len(fake_converter.convert_calls) == 12
    assert result.largest_filename == "photo-png-2200.jpg"
    assert generator.cache.get("hello-world", "photo.png").variants[960]["webp"].filename == (
        "photo-png-960.webp"
    )


def test_hello_world_generates_full_matrix(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "![x](photo.jpg)", ["photo.jpg"]) / "photo.jpg"
    dest = dest_for(tmp_path, "hello-world")
    generator = make_generator(tmp_path, fake_converter)

    result = generator.generate("hello-world", source, dest)

    assert len(fake_converter.convert_calls) == 12
    assert fake_converter.identify_calls == ["photo.jpg"]
    files = sorted(p.name for p in dest.iterdir())
    assert len(files) == 12
    assert "photo-2200.avif" in files and "photo-960.webp" in files
    assert result.largest_width == 2200
    assert result.largest_filename == "photo-2200.jpg"
    assert result.original == Dimensions(3000, 2000)

    entry = generator.cache.get("hello-world", "photo.jpg")
    assert entry.largest_width == 2200
    assert entry.processed is True
    assert set(entry.variants) == set(LADDER)
    for formats in entry.variants.values():
        assert set(formats) == {"jpeg", "webp", "avif"}
    assert entry.variants[960]["jpeg"].height == 640
    assert entry.size == len(b"jpeg:2200:85")
    assert generator.stats.converted == 12

    # persisted immediately
    reloaded = ImageCache.load(tmp_path / "image-cache.json")
    assert reloaded.get("hello-world", "photo.jpg").largest_width == 2200


def test_small_image_gets_single_width(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "small-shot", "", ["tiny.jpg"]) / "tiny.jpg"
    fake_converter.sizes["tiny.jpg"] = (500, 400)
    dest = dest_for(tmp_path, "small-shot")

    result = make_generator(tmp_path, fake_converter).generate("small-shot", source, dest)

    assert sorted(p.name for p in dest.iterdir()) == ["tiny-500.avif", "tiny-500.jpg", "tiny-500.webp"]
    assert list(result.variants) == [500]
    assert result.largest_width == 500
    assert all(width <= 500 for _, width, _ in fake_converter.convert_calls)


def test_second_run_is_idempotent(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "", ["photo.jpg"]) / "photo.jpg"
    dest = dest_for(tmp_path, "hello-world")
    make_generator(tmp_path, fake_converter).generate("hello-world", source, dest)
    files_before = snapshot(dest)
    cache_before = (tmp_path / "image-cache.json").read_bytes()

    second = FakeConverter()
    generator = make_generator(tmp_path, second)
    result = generator.generate("hello-world", source, dest)

    assert second.calls == 0
    assert generator.stats.skipped == 1
    assert snapshot(dest) == files_before
    assert (tmp_path / "image-cache.json").read_bytes() == cache_before
    assert result.largest_width == 2200


def test_partial_failure_is_healed_incrementally(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "", ["photo.jpg"]) / "photo.jpg"
    dest = dest_for(tmp_path, "hello-world")
    first = make_generator(tmp_path, fake_converter)
    first.generate("hello-world", source, dest)

    # Simulate a crash after the 960 JPEG and WebP were written
    entry = first.cache.get("hello-world", "photo.jpg")
    del entry.variants[960]["avif"]
    (dest / "photo-960.avif").unlink()
    first.cache.save()

    second = FakeConverter()
    generator = make_generator(tmp_path, second)
    generator.generate("hello-world", source, dest)

    assert second.identify_calls == []
    assert second.convert_calls == [("photo-960.avif", 960, "avif")]
    healed = generator.cache.get("hello-world", "photo.jpg")
    assert set(healed.variants[960]) == {"jpeg", "webp", "avif"}
    assert (dest / "photo-960.avif").exists()


def test_failed_format_is_left_missing_and_retried(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "", ["photo.jpg"]) / "photo.jpg"
    dest = dest_for(tmp_path, "hello-world")
    fake_converter.fail = lambda dest, options: options.format == "avif"
    generator = make_generator(tmp_path, fake_converter)

    result = generator.generate("hello-world", source, dest)

    assert generator.stats.failed_conversions == 4
    assert result.responsive
    assert result.files("avif") == []
    entry = generator.cache.get("hello-world", "photo.jpg")
    assert all(set(formats) == {"jpeg", "webp"} for formats in entry.variants.values())

    retry = FakeConverter()
    make_generator(tmp_path, retry).generate("hello-world", source, dest)
    assert sorted(call[0] for call in retry.convert_calls) == [
        "photo-1100.avif",
        "photo-1440.avif",
        "photo-2200.avif",
        "photo-960.avif",
    ]


def test_missing_derived_file_is_regenerated(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "", ["photo.jpg"]) / "photo.jpg"
    dest = dest_for(tmp_path, "hello-world")
    make_generator(tmp_path, fake_converter).generate("hello-world", source, dest)
    (dest / "photo-1440.webp").unlink()

    second = FakeConverter()
    make_generator(tmp_path, second).generate("hello-world", source, dest)

    assert second.convert_calls == [("photo-1440.webp", 1440, "webp")]


def test_force_regenerates_everything(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "", ["photo.jpg"]) / "photo.jpg"
    dest = dest_for(tmp_path, "hello-world")
    make_generator(tmp_path, fake_converter).generate("hello-world", source, dest)

    forced = FakeConverter()
    generator = make_generator(tmp_path, forced, force=True)
    generator.generate("hello-world", source, dest)

    assert forced.identify_calls == ["photo.jpg"]
    assert len(forced.convert_calls) == 12
    assert generator.stats.skipped == 0


def test_changed_source_replaces_entry(tmp_path, fake_converter, write_article):
    article = write_article(tmp_path, "hello-world", "", ["photo.jpg"])
    source = article / "photo.jpg"
    dest = dest_for(tmp_path, "hello-world")
    make_generator(tmp_path, fake_converter).generate("hello-world", source, dest)

    source.write_bytes(b"a different, smaller photo")
    second = FakeConverter(sizes={"photo.jpg": (1000, 800)})
    generator = make_generator(tmp_path, second)
    result = generator.generate("hello-world", source, dest)

    assert second.identify_calls == ["photo.jpg"]
    assert len(second.convert_calls) == 3
    assert list(result.variants) == [960]
    assert list(generator.cache.get("hello-world", "photo.jpg").variants) == [960]


def test_every_conversion_failing_falls_back_to_copy(tmp_path, fake_converter, write_article):
    article = write_article(tmp_path, "hello-world", "", [])
    source = article / "photo.jpg"
    Image.new("RGB", (40, 30), color="blue").save(source)
    dest = dest_for(tmp_path, "hello-world")
    fake_converter.fail = lambda dest, options: True
    generator = make_generator(tmp_path, fake_converter)

    result = generator.generate("hello-world", source, dest)

    assert result.variants == {}
    assert not result.responsive
    assert result.largest_filename == "photo.jpg"
    assert result.largest_width == 40
    assert (dest / "photo.jpg").read_bytes() == source.read_bytes()
    entry = generator.cache.get("hello-world", "photo.jpg")
    assert entry.processed is True
    assert entry.variants == {}
    assert entry.original == Dimensions(40, 30)
    assert generator.stats.fallbacks == 1

    # handled images are not retried on the next run
    again = FakeConverter()
    make_generator(tmp_path, again).generate("hello-world", source, dest)
    assert again.calls == 0


def test_identify_error_falls_back_to_copy(tmp_path, write_article, caplog):
    source = write_article(tmp_path, "broken", "", ["scan.jpg"]) / "scan.jpg"
    dest = dest_for(tmp_path, "broken")
    converter = FakeConverter(identify_fail=True)
    generator = make_generator(tmp_path, converter)

    with caplog.at_level("WARNING", logger="darkroom.variants"):
        result = generator.generate("broken", source, dest)

    assert converter.convert_calls == []
    assert result.variants == {}
    assert result.largest_width is None
    assert (dest / "scan.jpg").exists()
    assert generator.cache.get("broken", "scan.jpg").is_fallback
    assert "Cannot create variants for broken/scan.jpg" in caplog.text


def test_thumbnail_is_created_once(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "", ["photo.jpg"]) / "photo.jpg"
    thumbs = tmp_path / "build" / "thumbnails"
    generator = make_generator(tmp_path, fake_converter)
    generator.generate("hello-world", source, dest_for(tmp_path, "hello-world"))
    fake_converter.convert_calls.clear()

    path = generator.ensure_thumbnail("hello-world", source, thumbs, Dimensions(3000, 2000))
    assert path == thumbs / "hello-world-thumb.jpg"
    assert fake_converter.convert_calls == [("hello-world-thumb.jpg", 200, "jpeg")]
    record = generator.cache.get("hello-world", "photo.jpg").thumbnail
    assert (record.filename, record.width, record.height) == ("hello-world-thumb.jpg", 200, 133)

    reloaded = make_generator(tmp_path, fake_converter)
    reloaded.ensure_thumbnail("hello-world", source, thumbs, Dimensions(3000, 2000))
    assert len(fake_converter.convert_calls) == 1
    assert reloaded.stats.thumbnails == 0


def test_thumbnail_follows_cover_changes(tmp_path, fake_converter, write_article):
    article = write_article(tmp_path, "hello-world", "", ["photo.jpg", "other.jpg"])
    thumbs = tmp_path / "build" / "thumbnails"
    dest = dest_for(tmp_path, "hello-world")
    generator = make_generator(tmp_path, fake_converter)
    for name in ("photo.jpg", "other.jpg"):
        generator.generate("hello-world", article / name, dest)
    generator.ensure_thumbnail("hello-world", article / "photo.jpg", thumbs)
    assert generator.stats.thumbnails == 1

    # a replaced cover image drops its record, so the thumbnail is rebuilt
    (article / "photo.jpg").write_bytes(b"a different, larger photo")
    generator.generate("hello-world", article / "photo.jpg", dest)
    assert generator.cache.get("hello-world", "photo.jpg").thumbnail is None
    generator.ensure_thumbnail("hello-world", article / "photo.jpg", thumbs)
    assert generator.stats.thumbnails == 2

    # so does switching the cover to another image
    generator.ensure_thumbnail("hello-world", article / "other.jpg", thumbs)
    assert generator.stats.thumbnails == 3
    generator.ensure_thumbnail("hello-world", article / "other.jpg", thumbs)
    assert generator.stats.thumbnails == 3


def test_thumbnail_rebuilt_when_file_differs_from_record(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "hello-world", "", ["photo.jpg"]) / "photo.jpg"
    thumbs = tmp_path / "build" / "thumbnails"
    generator = make_generator(tmp_path, fake_converter)
    generator.generate("hello-world", source, dest_for(tmp_path, "hello-world"))
    path = generator.ensure_thumbnail("hello-world", source, thumbs)

    path.write_bytes(b"left over from an older cover")
    generator.ensure_thumbnail("hello-world", source, thumbs)

    assert generator.stats.thumbnails == 2
    assert path.read_bytes() == b"jpeg:200:85"


def test_thumbnail_is_not_upscaled_and_failure_is_tolerated(tmp_path, fake_converter, write_article):
    source = write_article(tmp_path, "small-shot", "", ["tiny.jpg"]) / "tiny.jpg"
    thumbs = tmp_path / "build" / "thumbnails"
    generator = make_generator(tmp_path, fake_converter)

    generator.ensure_thumbnail("small-shot", source, thumbs, Dimensions(150, 100))
    assert fake_converter.convert_calls[-1][1] == 150

    fake_converter.fail = lambda dest, options: True
    forced = make_generator(tmp_path, fake_converter, force=True)
    assert forced.ensure_thumbnail("small-shot", source, thumbs) is None
