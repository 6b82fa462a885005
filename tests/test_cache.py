import json

from darkroom.cache import (
    CACHE_VERSION,
    Dimensions,
    ImageCache,
    ImageCacheEntry,
    SourceFingerprint,
    VariantFile,
    cache_key,
)


def make_entry(widths, formats=("jpeg", "webp", "avif"), original=(3000, 2000)):
    return ImageCacheEntry(
        original=Dimensions(*original),
        variants={
            w: {f: VariantFile(f"photo-{w}.{f}", w * 10, w, w * 2 // 3) for f in formats}
            for w in widths
        },
        largest_width=max(widths),
        size=max(widths) * 10,
        last_modified="2024-05-01T10:00:00+00:00",
        processed=True,
        source=SourceFingerprint(size=1234, mtime_ns=99),
    )


def test_cache_key_format():
    assert cache_key("hello-world", "photo.jpg") == "articles/hello-world/photo.jpg"


def test_load_missing_file_starts_empty(tmp_path):
    cache = ImageCache.load(tmp_path / "image-cache.json")
    assert len(cache) == 0
    assert cache.get("hello-world", "photo.jpg") is None
    assert not (tmp_path / "image-cache.json").exists()


def test_load_corrupt_file_starts_empty(tmp_path, caplog):
    path = tmp_path / "image-cache.json"
    path.write_text("{not json", encoding="utf-8")

    with caplog.at_level("WARNING", logger="darkroom.cache"):
        cache = ImageCache.load(path)

    assert len(cache) == 0
    assert "not valid JSON" in caplog.text


def test_load_rejects_unknown_version(tmp_path):
    path = tmp_path / "image-cache.json"
    path.write_text(json.dumps({"version": "99", "images": {}}), encoding="utf-8")
    assert len(ImageCache.load(path)) == 0


def test_load_drops_malformed_entries_only(tmp_path):
    path = tmp_path / "image-cache.json"
    good = make_entry([960]).to_dict()
    document = {
        "version": CACHE_VERSION,
        "images": {
            "articles/a/good.jpg": good,
            "articles/a/bad.jpg": {"variants": {"wide": {}}},
        },
    }
    path.write_text(json.dumps(document), encoding="utf-8")

    cache = ImageCache.load(path)

    assert cache.keys() == ["articles/a/good.jpg"]
    assert cache.get("a", "good.jpg") == make_entry([960])


def test_put_writes_through_in_documented_schema(tmp_path):
    path = tmp_path / "image-cache.json"
    cache = ImageCache.load(path)

    result = cache.put("hello-world", "photo.jpg", make_entry([960, 2200]))

    assert result.ok
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["version"] == "1"
    assert "lastUpdated" in document
    stored = document["images"]["articles/hello-world/photo.jpg"]
    assert stored["original"] == {"width": 3000, "height": 2000}
    assert stored["largestWidth"] == 2200
    assert stored["processed"] is True
    assert stored["source"] == {"size": 1234, "mtimeNs": 99}
    assert sorted(stored["variants"]) == ["2200", "960"]
    assert stored["variants"]["960"]["webp"] == {
        "filename": "photo-960.webp",
        "size": 9600,
        "width": 960,
        "height": 640,
    }


def test_put_merges_per_width_and_format(tmp_path):
    cache = ImageCache.load(tmp_path / "image-cache.json")
    cache.put("a", "photo.jpg", make_entry([960, 1100], formats=("jpeg", "webp")))

    update = make_entry([960, 1440], formats=("avif",))
    update.original = None
    cache.put("a", "photo.jpg", update)

    entry = cache.get("a", "photo.jpg")
    assert set(entry.variants) == {960, 1100, 1440}
    assert set(entry.variants[960]) == {"jpeg", "webp", "avif"}
    assert set(entry.variants[1100]) == {"jpeg", "webp"}
    assert entry.original == Dimensions(3000, 2000)
    assert entry.largest_width == 1440


def test_put_replace_discards_previous_entry(tmp_path):
    cache = ImageCache.load(tmp_path / "image-cache.json")
    cache.put("a", "photo.jpg", make_entry([960, 2200]))

    cache.put("a", "photo.jpg", make_entry([960], original=(1000, 800)), replace=True)

    entry = cache.get("a", "photo.jpg")
    assert list(entry.variants) == [960]
    assert entry.original == Dimensions(1000, 800)


def test_reload_round_trip(tmp_path):
    path = tmp_path / "image-cache.json"
    cache = ImageCache.load(path)
    cache.put("a", "photo.jpg", make_entry([960, 1100]))

    reloaded = ImageCache.load(path)

    assert "articles/a/photo.jpg" in reloaded
    assert reloaded.get("a", "photo.jpg") == cache.get("a", "photo.jpg")
    assert reloaded.last_updated == cache.last_updated


def test_fallback_entry_properties():
    entry = ImageCacheEntry(
        original=Dimensions(40, 30), largest_width=40, size=512, processed=True
    )
    assert entry.is_fallback
    assert entry.largest_file() is None
    assert not make_entry([960]).is_fallback
    assert make_entry([960, 1100]).largest_file("webp").filename == "photo-1100.webp"


def test_save_failure_keeps_memory_and_warns_once(tmp_path, caplog):
    path = tmp_path / "image-cache.json"
    path.mkdir()
    cache = ImageCache(path)

    with caplog.at_level("WARNING", logger="darkroom.cache"):
        first = cache.put("a", "one.jpg", make_entry([960]))
        second = cache.put("a", "two.jpg", make_entry([960]))

    assert not first.ok
    assert first.error is not None
    assert not second.ok
    assert cache.get("a", "one.jpg") is not None
    assert cache.get("a", "two.jpg") is not None
    assert caplog.text.count("in-memory image cache") == 1
    assert not (tmp_path / "image-cache.json.tmp").exists()


def test_prune_removes_entries_and_persists(tmp_path):
    path = tmp_path / "image-cache.json"
    cache = ImageCache.load(path)
    cache.put("a", "keep.jpg", make_entry([960]))
    cache.put("b", "gone.jpg", make_entry([960]))

    removed = cache.prune(lambda key: key.endswith("keep.jpg"))

    assert removed == ["articles/b/gone.jpg"]
    assert ImageCache.load(path).keys() == ["articles/a/keep.jpg"]
