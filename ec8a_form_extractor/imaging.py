from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

from . import config
from .types import ImageInput, PreviewHandle

log = logging.getLogger("ec8a_form_extractor")


def mime_type_for_path(path: str | Path) -> str:
    ext = Path(path).suffix.lower()
    if ext in {".jpg", ".jpeg"}:
        return "image/jpeg"
    if ext == ".png":
        return "image/png"
    if ext == ".webp":
        return "image/webp"
    if ext == ".gif":
        return "image/gif"
    if ext == ".pdf":
        return "application/pdf"
    return "application/octet-stream"


def decode_image(data: bytes) -> Optional[np.ndarray]:
    if not data:
        return None
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if img is None or img.size == 0:
        return None
    return img


def _downscale(img: np.ndarray, max_side: int) -> np.ndarray:
    h, w = img.shape[:2]
    longest = max(h, w)
    if longest <= int(max_side):
        return img
    scale = float(max_side) / float(longest)
    size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
    return cv2.resize(img, size, interpolation=cv2.INTER_AREA)


def _encode_jpeg(img: np.ndarray, quality: int) -> bytes:
    ok, buf = cv2.imencode(".jpg", img, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise RuntimeError("cv2.imencode(.jpg) failed")
    return buf.tobytes()


def compress_image(
    data: bytes,
    mime_type: str,
    *,
    max_side: int = config.COMPRESS_MAX_SIDE,
    quality: int = config.COMPRESS_JPEG_QUALITY,
) -> Tuple[bytes, str]:
    """
    Shrink a scan before upload: downscale to `max_side` and re-encode as JPEG.

    Undecodable input, or output that would not be smaller, is returned unchanged.
    """
    img = decode_image(data)
    if img is None:
        return data, mime_type
    out = _encode_jpeg(_downscale(img, max_side), quality)
    if len(out) >= len(data):
        return data, mime_type
    return out, "image/jpeg"


def make_thumbnail(
    data: bytes,
    *,
    max_side: int = config.PREVIEW_MAX_SIDE,
    quality: int = config.PREVIEW_JPEG_QUALITY,
) -> Optional[bytes]:
    img = decode_image(data)
    if img is None:
        return None
    return _encode_jpeg(_downscale(img, max_side), quality)


class PreviewStore:
    """Writes one thumbnail per record under `root` (a fresh temp dir by default)."""

    def __init__(self, root: Optional[str | Path] = None):
        if root is None:
            root = tempfile.mkdtemp(prefix="ec8a-previews-")
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def create(self, record_id: str, image: ImageInput) -> Optional[PreviewHandle]:
        thumb = make_thumbnail(image.data)
        if thumb is None:
            log.debug("No preview for %s (not a decodable image)", image.name)
            return None
        path = self.root / f"{record_id}.jpg"
        path.write_bytes(thumb)
        return PreviewHandle(path)
