"""
Validation and decoding of uploaded receipt payloads.

Accepts the JSON body posted to /receipts/extract in one of two shapes:

- {"imageDataUrl": "data:image/png;base64,..."} or a data:application/pdf URL
- {"fileBase64": "...", "fileName": "receipt.pdf", "mimeType": "application/pdf"}

and turns it into a DocumentPayload, or raises a NormalizationError subclass.
Nothing here talks to the network or the filesystem, so every rejection
happens before the model is called.
"""

import base64
import binascii
import re
from typing import Any, Mapping

from loguru import logger

from .errors import (
    MalformedBase64,
    MissingInput,
    PayloadTooLarge,
    TruncatedPayload,
    UnsupportedType,
)
from .receipt_types import DocumentKind, DocumentPayload, PayloadEncoding

PDF_MIME_TYPE = "application/pdf"

DEFAULT_MAX_PAYLOAD_BYTES = 12 * 1024 * 1024
DEFAULT_MIN_PAYLOAD_BYTES = 2 * 1024

_WHITESPACE = re.compile(r"\s+")
_DATA_URL_MIME = re.compile(r"^data:(?P<mime>[^;,]*)", re.IGNORECASE)
_BASE64_DATA_URL = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?P<params>(?:;[^;,]*)*?);base64,(?P<data>.*)$",
    re.IGNORECASE | re.DOTALL,
)


def _string_field(raw_body: Mapping[str, Any], name: str) -> str | None:
    value = raw_body.get(name)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _compact_base64(text: str) -> str:
    """Drop whitespace/newlines and pad to a multiple of 4."""
    compact = _WHITESPACE.sub("", text)
    return compact + "=" * (-len(compact) % 4)


def estimate_decoded_size(text: str) -> int:
    compact = _WHITESPACE.sub("", text).rstrip("=")
    return len(compact) * 3 // 4


def decode_base64(text: str, field: str) -> bytes:
    """
    Decode base64 leniently with respect to layout, strictly with respect to content.

    Interior whitespace and missing padding are tolerated (clients and JSON
    transports both mangle those); characters outside the base64 alphabet are not.

    Raises:
        MalformedBase64: if the text is empty or cannot be decoded
    """
    compact = _compact_base64(text)
    if not compact:
        raise MalformedBase64(f"{field} contains no base64 data")
    try:
        data = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedBase64(f"{field} is not valid base64: {e}") from e
    if not data:
        raise MalformedBase64(f"{field} decoded to zero bytes")
    return data


def _data_url_param(params: str, key: str) -> str | None:
    for part in params.split(";"):
        name, _, value = part.partition("=")
        if name.strip().lower() == key and value:
            return value.strip()
    return None


def _classify(
    data_url: str | None,
    file_name: str | None,
    mime_type: str | None,
) -> DocumentKind:
    if mime_type and mime_type.lower() == PDF_MIME_TYPE:
        return DocumentKind.PDF
    if file_name and file_name.lower().endswith(".pdf"):
        return DocumentKind.PDF

    if data_url is not None:
        match = _DATA_URL_MIME.match(data_url)
        if not match:
            raise UnsupportedType(
                "imageDataUrl must be a data:image/... or data:application/pdf base64 data URL"
            )
        url_mime = match.group("mime").strip().lower()
        if url_mime == PDF_MIME_TYPE:
            return DocumentKind.PDF
        if url_mime.startswith("image/"):
            return DocumentKind.IMAGE
        raise UnsupportedType(f"Unsupported document type '{url_mime or 'unknown'}'")

    raise UnsupportedType(
        f"Unsupported mimeType '{mime_type or 'unknown'}'; fileBase64 uploads must be {PDF_MIME_TYPE}"
    )


def _check_pdf_size(size: int, min_bytes: int, max_bytes: int) -> None:
    if size > max_bytes:
        raise PayloadTooLarge(
            f"PDF is too large ({size:,} bytes, limit {max_bytes:,}); upload a smaller file",
            limit_bytes=max_bytes,
            actual_bytes=size,
        )
    if size < min_bytes:
        raise TruncatedPayload(
            f"PDF appears truncated ({size:,} bytes, expected at least {min_bytes:,}); please re-upload the file"
        )


def _normalize_pdf(
    encoded: str,
    field: str,
    encoding: PayloadEncoding,
    filename: str | None,
    min_bytes: int,
    max_bytes: int,
) -> DocumentPayload:
    # Refuse oversized bodies before paying for the decode
    estimated = estimate_decoded_size(encoded)
    if estimated > max_bytes:
        _check_pdf_size(estimated, min_bytes, max_bytes)

    data = decode_base64(encoded, field)
    _check_pdf_size(len(data), min_bytes, max_bytes)

    return DocumentPayload(
        kind=DocumentKind.PDF,
        encoding=encoding,
        mime_type=PDF_MIME_TYPE,
        data=data,
        filename=filename,
    )


def normalize(
    raw_body: Mapping[str, Any],
    *,
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
    min_payload_bytes: int = DEFAULT_MIN_PAYLOAD_BYTES,
) -> DocumentPayload:
    """
    Validate and decode a raw request body into a DocumentPayload.

    Args:
        raw_body: Parsed JSON body of the extract request
        max_payload_bytes: Largest decoded PDF accepted
        min_payload_bytes: Smallest decoded PDF accepted (smaller means the
            upload was most likely cut off in transit)

    Returns:
        DocumentPayload with decoded bytes

    Raises:
        MissingInput, UnsupportedType, MalformedBase64, TruncatedPayload, PayloadTooLarge
    """
    if not isinstance(raw_body, Mapping):
        raise MissingInput("Request body must be a JSON object with imageDataUrl or fileBase64")

    file_base64 = _string_field(raw_body, "fileBase64")
    file_name = _string_field(raw_body, "fileName")
    mime_type = _string_field(raw_body, "mimeType")
    image_data_url = _string_field(raw_body, "imageDataUrl")

    if file_base64 is not None:
        kind = _classify(None, file_name, mime_type)
        payload = _normalize_pdf(
            file_base64,
            "fileBase64",
            PayloadEncoding.RAW_BASE64,
            file_name,
            min_payload_bytes,
            max_payload_bytes,
        )
    elif image_data_url is not None:
        kind = _classify(image_data_url, file_name, mime_type)
        match = _BASE64_DATA_URL.match(image_data_url)
        if not match:
            raise MalformedBase64("imageDataUrl must be a base64 data URL (data:<mime>;base64,<data>)")

        if kind is DocumentKind.PDF:
            payload = _normalize_pdf(
                match.group("data"),
                "imageDataUrl",
                PayloadEncoding.DATA_URL,
                file_name or _data_url_param(match.group("params"), "name"),
                min_payload_bytes,
                max_payload_bytes,
            )
        else:
            payload = DocumentPayload(
                kind=DocumentKind.IMAGE,
                encoding=PayloadEncoding.DATA_URL,
                mime_type=match.group("mime").lower(),
                data=decode_base64(match.group("data"), "imageDataUrl"),
                filename=file_name,
            )
    else:
        raise MissingInput("Missing imageDataUrl (or fileBase64 with fileName and mimeType)")

    logger.debug(
        "Normalized receipt payload",
        kind=kind.value,
        encoding=payload.encoding.value,
        mime_type=payload.mime_type,
        size_bytes=payload.size_bytes,
    )
    return payload
