from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from . import config
from .imaging import mime_type_for_path
from .types import ImageInput

log = logging.getLogger("ec8a_form_extractor")

_fitz = None


class PDFPasswordError(RuntimeError):
    pass


class PDFCorruptedError(RuntimeError):
    pass


def _get_fitz():
    """Lazy-import PyMuPDF so image-only runs work without it."""
    global _fitz
    if _fitz is None:
        try:
            import fitz  # type: ignore

            _fitz = fitz
        except ModuleNotFoundError as e:
            raise SystemExit(
                "Missing dependency: PyMuPDF\n"
                "Install it: pip install PyMuPDF\n"
            ) from e
    return _fitz


def render_pdf_pages(pdf_path: str | Path, *, dpi: int = config.PDF_RENDER_DPI) -> List[bytes]:
    """Render every page of a scanned PDF to PNG bytes."""
    fitz = _get_fitz()
    doc = None
    try:
        doc = fitz.open(str(pdf_path))
        if doc.needs_pass:
            raise PDFPasswordError(f"PDF is password protected: {pdf_path}")
        mat = fitz.Matrix(float(dpi) / 72.0, float(dpi) / 72.0)
        pages: List[bytes] = []
        for i in range(int(doc.page_count)):
            pix = doc.load_page(i).get_pixmap(matrix=mat, alpha=False)
            pages.append(pix.tobytes("png"))
        return pages
    except PDFPasswordError:
        raise
    except Exception as e:
        raise PDFCorruptedError(f"Failed to render PDF: {pdf_path} ({e})") from e
    finally:
        if doc is not None:
            doc.close()


def _is_supported(path: Path) -> bool:
    ext = path.suffix.lower()
    return ext == ".pdf" or ext in config.IMAGE_EXTENSIONS


def iter_input_files(paths: Iterable[str | Path]) -> List[Path]:
    """Expand files and directories (recursively, sorted) into supported input files."""
    out: List[Path] = []
    for raw in paths:
        p = Path(raw)
        if not p.exists():
            raise FileNotFoundError(f"Input does not exist: {p}")
        if p.is_dir():
            out.extend(f for f in sorted(p.rglob("*")) if f.is_file() and _is_supported(f))
        elif _is_supported(p):
            out.append(p)
        else:
            log.warning("Skipping unsupported file: %s", p)
    return out


def load_inputs(paths: Iterable[str | Path], *, dpi: int = config.PDF_RENDER_DPI) -> List[ImageInput]:
    """
    Read every input into memory. Each PDF page becomes its own image,
    named `<file>.pdf#p<N>` (1-based).
    """
    images: List[ImageInput] = []
    for f in iter_input_files(paths):
        if f.suffix.lower() == ".pdf":
            try:
                pages = render_pdf_pages(f, dpi=dpi)
            except (PDFPasswordError, PDFCorruptedError) as e:
                log.warning("Skipping %s (%s)", f, str(e))
                continue
            for i, png in enumerate(pages, start=1):
                images.append(ImageInput(name=f"{f.name}#p{i}", data=png, mime_type="image/png"))
            continue
        images.append(ImageInput(name=f.name, data=f.read_bytes(), mime_type=mime_type_for_path(f)))
    return images
