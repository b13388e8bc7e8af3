import cv2
import numpy as np

from ec8a_form_extractor.imaging import (
    PreviewStore,
    compress_image,
    decode_image,
    make_thumbnail,
    mime_type_for_path,
)
from ec8a_form_extractor.types import ImageInput


def _png(h, w):
    img = np.random.default_rng(0).integers(0, 256, size=(h, w, 3), dtype=np.uint8)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def test_mime_type_for_path():
    assert mime_type_for_path("a.JPG") == "image/jpeg"
    assert mime_type_for_path("scan.png") == "image/png"
    assert mime_type_for_path("x.webp") == "image/webp"
    assert mime_type_for_path("x.tiff") == "application/octet-stream"


def test_compress_downscales_and_reencodes_as_jpeg():
    raw = _png(300, 600)
    out, mime = compress_image(raw, "image/png", max_side=150, quality=80)
    assert mime == "image/jpeg"
    assert len(out) < len(raw)
    img = decode_image(out)
    assert max(img.shape[:2]) == 150
    assert img.shape[:2] == (75, 150)


def test_compress_passes_through_undecodable_bytes():
    assert compress_image(b"not an image", "application/pdf") == (b"not an image", "application/pdf")
    assert compress_image(b"", "image/png") == (b"", "image/png")


def test_thumbnail_of_junk_is_none():
    assert make_thumbnail(b"\x00\x01junk") is None


def test_preview_store_writes_and_release_deletes(tmp_path):
    store = PreviewStore(tmp_path / "previews")
    handle = store.create("rec1", ImageInput(name="a.png", data=_png(40, 80), mime_type="image/png"))
    assert handle is not None
    assert handle.path == tmp_path / "previews" / "rec1.jpg"
    thumb = cv2.imread(str(handle.path))
    assert thumb is not None and max(thumb.shape[:2]) <= 256

    handle.release()
    handle.release()
    assert handle.released
    assert not handle.path.exists()


def test_preview_store_skips_non_images(tmp_path):
    store = PreviewStore(tmp_path)
    assert store.create("rec1", ImageInput(name="a.bin", data=b"junk")) is None
    assert list(tmp_path.iterdir()) == []
