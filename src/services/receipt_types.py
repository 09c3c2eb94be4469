
import base64
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict


class DocumentKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"


class PayloadEncoding(str, Enum):
    DATA_URL = "data_url"
    RAW_BASE64 = "raw_base64"


def to_data_url(mime_type: str, data: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


@dataclass(frozen=True)
class DocumentPayload:
    """Decoded, validated upload. Lives for a single request."""
    kind: DocumentKind
    encoding: PayloadEncoding
    mime_type: str
    data: bytes
    filename: str | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class RasterImage:
    """Image handed to the model: a rendered PDF page or the uploaded image itself."""
    mime_type: str
    data: bytes
    width: int | None = None
    height: int | None = None

    @property
    def data_url(self) -> str:
        return to_data_url(self.mime_type, self.data)


@dataclass(frozen=True)
class FileAttachment:
    """PDF passed to the model natively, without rasterization."""
    filename: str
    data: bytes
    mime_type: str = "application/pdf"

    @property
    def data_url(self) -> str:
        return to_data_url(self.mime_type, self.data)


Attachment = RasterImage | FileAttachment


class ExtractionResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)

    vendor: str | None = None
    receipt_date: str | None = None  # YYYY-MM-DD as reported by the model, not re-validated
    total: float | None = None
    currency: str | None = None
    category_suggested: str | None = None
    confidence: float | None = None  # clamped to [0, 1]
