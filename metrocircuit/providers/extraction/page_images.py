"""Render document pages to PNG for the vision and OCR strategies."""

from __future__ import annotations

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention

RENDERABLE_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "application/epub+zip": "epub",
    "application/vnd.ms-xpsdocument": "xps",
}


def is_image(mime_type: str) -> bool:
    return mime_type.startswith("image/")


def render_pages(data: bytes, mime_type: str, dpi: int = 150, max_pages: int = 20) -> list[bytes]:
    """Return PNG bytes for up to *max_pages* pages.

    Images are returned as-is (a single "page").  Blocking; call through
    ``asyncio.to_thread``.
    """
    if is_image(mime_type):
        return [data]
    filetype = RENDERABLE_TYPES.get(mime_type)
    if filetype is None:
        return []
    images: list[bytes] = []
    with fitz.open(stream=data, filetype=filetype) as doc:
        for index in range(min(len(doc), max_pages)):
            pixmap = doc[index].get_pixmap(dpi=dpi)
            images.append(pixmap.tobytes("png"))
    return images
