"""
Render the first page of a receipt PDF to PNG with PyMuPDF.

Receipts are assumed to be single page, so only page 1 is ever rendered.
The page is upscaled by a fixed factor so small print stays legible for the
vision model. Work happens in a per-call scratch directory that is removed
on every exit path.
"""

import asyncio
import shutil
import tempfile
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import fitz  # PyMuPDF
from loguru import logger

from .errors import RasterizationError
from .receipt_types import RasterImage

DEFAULT_SCALE_FACTOR = 2.0
PNG_MIME_TYPE = "image/png"

# MuPDF keeps global state and is not safe to drive from several threads at once
_RENDER_LOCK = threading.Lock()


@contextmanager
def scratch_directory(prefix: str = "receipt-raster") -> Iterator[Path]:
    """
    Yield a uniquely named temporary directory and always remove it afterwards.

    The name carries a millisecond timestamp plus a random token so concurrent
    requests never collide. Cleanup failures are logged, never raised, so they
    cannot mask the result or error of the work done inside.
    """
    token = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"
    path = Path(tempfile.mkdtemp(prefix=f"{prefix}-{token}-"))
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("Failed to clean up scratch directory", path=str(path), error=str(e))


def rasterize_first_page(pdf_bytes: bytes, scale: float = DEFAULT_SCALE_FACTOR) -> RasterImage:
    """
    Convert page 1 of a PDF into a PNG RasterImage.

    Args:
        pdf_bytes: Raw PDF content
        scale: Upscale factor applied to the page's intrinsic size

    Returns:
        RasterImage (image/png) with pixel dimensions page_size * scale

    Raises:
        RasterizationError: corrupt/encrypted/empty PDF or renderer failure
    """
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale}")

    started = time.perf_counter()
    with scratch_directory() as workdir:
        pdf_path = workdir / "receipt.pdf"
        png_path = workdir / "page-1.png"
        pdf_path.write_bytes(pdf_bytes)

        try:
            with _RENDER_LOCK, fitz.open(str(pdf_path)) as doc:
                if doc.needs_pass:
                    raise RasterizationError("PDF is password protected")
                if doc.page_count == 0:
                    raise RasterizationError("PDF has no pages")

                page = doc.load_page(0)
                pixmap = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
                pixmap.save(str(png_path))
                width, height = pixmap.width, pixmap.height
        except RasterizationError:
            raise
        except Exception as e:  # PyMuPDF surfaces parse/render failures as assorted exception types
            raise RasterizationError(f"Could not render PDF: {e}", cause=e) from e

        png_bytes = png_path.read_bytes()

    logger.info(
        "Rasterized PDF first page",
        pdf_bytes=len(pdf_bytes),
        png_bytes=len(png_bytes),
        width=width,
        height=height,
        scale=scale,
        elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return RasterImage(mime_type=PNG_MIME_TYPE, data=png_bytes, width=width, height=height)


async def rasterize_first_page_async(pdf_bytes: bytes, scale: float = DEFAULT_SCALE_FACTOR) -> RasterImage:
    """Run the CPU-bound render in a worker thread so the event loop keeps serving requests."""
    return await asyncio.to_thread(rasterize_first_page, pdf_bytes, scale)
