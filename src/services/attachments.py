"""
Turn a DocumentPayload into the single attachment sent to the vision model.

Images always pass through untouched. PDFs are handled by exactly one
strategy per deployment (PDF_STRATEGY):

- "rasterize": render page 1 to PNG and send it as an image (default)
- "file":      send the PDF itself as a file attachment, for backends
               that read PDFs natively
"""

from abc import ABC, abstractmethod

from .pdf_rasterizer import DEFAULT_SCALE_FACTOR, rasterize_first_page_async
from .receipt_types import Attachment, DocumentKind, DocumentPayload, FileAttachment, RasterImage

DEFAULT_PDF_FILENAME = "receipt.pdf"


class AttachmentProducer(ABC):
    """
    Abstract base class for PDF handling strategies.

    Implementations must return an image (RasterImage) or a file
    (FileAttachment); never more than one attachment per payload.
    """

    strategy: str

    async def produce(self, payload: DocumentPayload) -> Attachment:
        """
        Produce the model attachment for a payload.

        Args:
            payload: Normalized upload

        Returns:
            RasterImage for images; strategy-specific attachment for PDFs
        """
        if payload.kind is DocumentKind.IMAGE:
            return RasterImage(mime_type=payload.mime_type, data=payload.data)
        return await self.produce_from_pdf(payload)

    @abstractmethod
    async def produce_from_pdf(self, payload: DocumentPayload) -> Attachment:
        pass


class RasterizingAttachmentProducer(AttachmentProducer):
    strategy = "rasterize"

    def __init__(self, scale: float = DEFAULT_SCALE_FACTOR):
        self.scale = scale

    async def produce_from_pdf(self, payload: DocumentPayload) -> RasterImage:
        return await rasterize_first_page_async(payload.data, self.scale)


class FileAttachmentProducer(AttachmentProducer):
    strategy = "file"

    async def produce_from_pdf(self, payload: DocumentPayload) -> FileAttachment:
        return FileAttachment(
            filename=payload.filename or DEFAULT_PDF_FILENAME,
            data=payload.data,
            mime_type=payload.mime_type,
        )


def create_attachment_producer(strategy: str, scale: float = DEFAULT_SCALE_FACTOR) -> AttachmentProducer:
    """
    Create the attachment producer for a deployment.

    Args:
        strategy: "rasterize" or "file"
        scale: Raster upscale factor (rasterize strategy only)
    """
    if strategy == "rasterize":
        return RasterizingAttachmentProducer(scale=scale)
    if strategy == "file":
        return FileAttachmentProducer()
    raise ValueError(f"Unknown PDF strategy: {strategy!r} (expected 'rasterize' or 'file')")
