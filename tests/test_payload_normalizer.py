"""
Unit tests for payload_normalizer.

Covers classification, lenient base64 decoding and the PDF size guards.
"""

import base64

import pytest

from src.services.errors import (
    MalformedBase64,
    MissingInput,
    PayloadTooLarge,
    TruncatedPayload,
    UnsupportedType,
)
from src.services.payload_normalizer import decode_base64, estimate_decoded_size, normalize
from src.services.receipt_types import DocumentKind, PayloadEncoding


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestImagePayloads:

    @pytest.mark.parametrize(
        "mime, data",
        [
            ("image/png", b"\x89PNG\r\n\x1a\n" + bytes(range(256))),
            ("image/jpeg", b"\xff\xd8\xff\xe0" + b"\x00" * 37),
            ("image/webp", b"RIFF\x00\x00\x00\x00WEBPVP8 "),
            ("image/heic", b"x"),
        ],
    )
    def test_image_data_url_round_trips_bytes(self, mime, data):
        payload = normalize({"imageDataUrl": f"data:{mime};base64,{b64(data)}"})

        assert payload.kind is DocumentKind.IMAGE
        assert payload.encoding is PayloadEncoding.DATA_URL
        assert payload.mime_type == mime
        assert payload.data == data

    def test_one_pixel_png(self, png_data_url, one_pixel_png):
        payload = normalize({"imageDataUrl": png_data_url})
        assert payload.data == one_pixel_png
        assert payload.size_bytes == len(one_pixel_png)

    def test_image_is_not_subject_to_pdf_size_floor(self, png_data_url):
        # 1x1 PNG is far below min_payload_bytes; the floor is a PDF-only guard
        payload = normalize({"imageDataUrl": png_data_url}, min_payload_bytes=2048)
        assert payload.kind is DocumentKind.IMAGE

    def test_image_tolerates_whitespace_and_missing_padding(self, one_pixel_png):
        encoded = b64(one_pixel_png).rstrip("=")
        wrapped = "\n".join(encoded[i:i + 20] for i in range(0, len(encoded), 20))
        payload = normalize({"imageDataUrl": f"data:image/png;base64,{wrapped}"})
        assert payload.data == one_pixel_png

    def test_image_mime_is_lowercased(self, one_pixel_png):
        payload = normalize({"imageDataUrl": f"data:IMAGE/PNG;base64,{b64(one_pixel_png)}"})
        assert payload.mime_type == "image/png"

    def test_non_base64_data_url_rejected(self):
        with pytest.raises(MalformedBase64):
            normalize({"imageDataUrl": "data:image/svg+xml,<svg></svg>"})

    def test_invalid_base64_characters_rejected(self):
        with pytest.raises(MalformedBase64):
            normalize({"imageDataUrl": "data:image/png;base64,not*valid*base64!!"})

    def test_empty_image_data_rejected(self):
        with pytest.raises(MalformedBase64):
            normalize({"imageDataUrl": "data:image/png;base64,"})


class TestClassification:

    def test_empty_body_is_missing_input(self):
        with pytest.raises(MissingInput):
            normalize({})

    def test_blank_fields_are_missing_input(self):
        with pytest.raises(MissingInput):
            normalize({"imageDataUrl": "   ", "fileBase64": ""})

    def test_non_string_field_is_missing_input(self):
        with pytest.raises(MissingInput):
            normalize({"imageDataUrl": 12345})

    def test_non_mapping_body_is_missing_input(self):
        with pytest.raises(MissingInput):
            normalize(["data:image/png;base64,AAAA"])

    def test_plain_string_is_unsupported(self):
        with pytest.raises(UnsupportedType):
            normalize({"imageDataUrl": "https://example.com/receipt.png"})

    def test_other_data_url_type_is_unsupported(self):
        with pytest.raises(UnsupportedType, match="text/plain"):
            normalize({"imageDataUrl": "data:text/plain;base64,aGVsbG8="})

    def test_file_base64_without_pdf_markers_is_unsupported(self, one_pixel_png):
        with pytest.raises(UnsupportedType):
            normalize({"fileBase64": b64(one_pixel_png), "fileName": "receipt.png", "mimeType": "image/png"})

    def test_pdf_by_mime_type(self, receipt_pdf):
        payload = normalize({"fileBase64": b64(receipt_pdf), "mimeType": "application/pdf"})
        assert payload.kind is DocumentKind.PDF
        assert payload.encoding is PayloadEncoding.RAW_BASE64

    def test_pdf_by_file_name(self, receipt_pdf):
        payload = normalize({"fileBase64": b64(receipt_pdf), "fileName": "Scan_0042.PDF"})
        assert payload.kind is DocumentKind.PDF
        assert payload.mime_type == "application/pdf"
        assert payload.filename == "Scan_0042.PDF"

    def test_pdf_by_data_url(self, receipt_pdf):
        payload = normalize({"imageDataUrl": f"data:application/pdf;base64,{b64(receipt_pdf)}"})
        assert payload.kind is DocumentKind.PDF
        assert payload.encoding is PayloadEncoding.DATA_URL
        assert payload.data == receipt_pdf

    def test_pdf_data_url_with_name_parameter(self, receipt_pdf):
        payload = normalize({"imageDataUrl": f"data:application/pdf;name=lunch.pdf;base64,{b64(receipt_pdf)}"})
        assert payload.kind is DocumentKind.PDF
        assert payload.filename == "lunch.pdf"

    def test_file_base64_takes_precedence(self, receipt_pdf, png_data_url):
        payload = normalize({
            "imageDataUrl": png_data_url,
            "fileBase64": b64(receipt_pdf),
            "fileName": "receipt.pdf",
            "mimeType": "application/pdf",
        })
        assert payload.kind is DocumentKind.PDF
        assert payload.data == receipt_pdf


class TestPdfSizeGuards:

    def test_pdf_tolerates_line_wrapped_base64(self, receipt_pdf):
        encoded = b64(receipt_pdf)
        wrapped = "\r\n".join(encoded[i:i + 76] for i in range(0, len(encoded), 76))
        payload = normalize({"fileBase64": wrapped, "fileName": "receipt.pdf", "mimeType": "application/pdf"})
        assert payload.data == receipt_pdf

    def test_pdf_missing_padding_is_auto_padded(self):
        data = b"%PDF-1.4\n" + b"A" * 3001  # 3010 bytes, not a multiple of 3 -> padded encoding
        encoded = b64(data)
        assert encoded.endswith("=")
        payload = normalize({"fileBase64": encoded.rstrip("="), "mimeType": "application/pdf"})
        assert payload.data == data

    def test_pdf_below_floor_is_truncated(self):
        with pytest.raises(TruncatedPayload, match="re-upload"):
            normalize({"fileBase64": b64(b"%PDF-1.4\n" + b"x" * 500), "mimeType": "application/pdf"})

    def test_pdf_floor_is_configurable(self):
        data = b"%PDF-1.4\n" + b"x" * 500
        payload = normalize({"fileBase64": b64(data), "mimeType": "application/pdf"}, min_payload_bytes=100)
        assert payload.data == data

    def test_pdf_above_max_is_too_large(self):
        data = b"%PDF-1.4\n" + b"x" * 5000
        with pytest.raises(PayloadTooLarge) as exc_info:
            normalize({"fileBase64": b64(data), "mimeType": "application/pdf"}, max_payload_bytes=4096)
        assert exc_info.value.limit_bytes == 4096
        assert exc_info.value.actual_bytes > 4096
        assert "smaller file" in exc_info.value.message

    def test_huge_pdf_rejected_without_decoding(self, monkeypatch):
        from src.services import payload_normalizer

        def fail_decode(*args, **kwargs):
            raise AssertionError("oversized payload should be rejected before decoding")

        monkeypatch.setattr(payload_normalizer, "decode_base64", fail_decode)
        with pytest.raises(PayloadTooLarge):
            normalize({"fileBase64": "A" * 20_000_000, "mimeType": "application/pdf"})

    def test_pdf_data_url_size_guards_apply(self):
        with pytest.raises(TruncatedPayload):
            normalize({"imageDataUrl": "data:application/pdf;base64," + b64(b"%PDF-1.4 tiny")})

    def test_corrupt_pdf_base64_rejected(self):
        with pytest.raises(MalformedBase64):
            normalize({"fileBase64": "%%%" * 2000, "mimeType": "application/pdf"})


def test_decode_base64_rejects_impossible_length():
    # 4n+1 characters can never be valid base64, even after padding
    with pytest.raises(MalformedBase64):
        decode_base64("AAAAA", "fileBase64")


def test_estimate_decoded_size_matches_actual():
    data = bytes(range(200)) * 7
    assert estimate_decoded_size(b64(data)) == len(data)
