"""
Receipt extraction pipeline entry point.

    raw body -> normalize -> attachment (passthrough / rasterize / file)
             -> inference -> validate -> ExtractionOutcome

Each stage raises a typed ExtractionError; this module is the only place
those errors become HTTP status codes. One document per call, all or
nothing: a failure never comes back with a partial result.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Mapping

from loguru import logger

from .attachments import AttachmentProducer, create_attachment_producer
from .errors import (
    ConfigurationError,
    ExtractionError,
    InferenceError,
    MalformedBase64,
    MissingInput,
    ModelOutputError,
    ModelOutputNotJson,
    ModelOutputSchemaMismatch,
    PayloadTooLarge,
    RasterizationError,
    TruncatedPayload,
    UnsupportedType,
)
from .inference import DEFAULT_MODEL, ReceiptInferenceClient
from .payload_normalizer import DEFAULT_MAX_PAYLOAD_BYTES, DEFAULT_MIN_PAYLOAD_BYTES, normalize
from .pdf_rasterizer import DEFAULT_SCALE_FACTOR
from .receipt_types import ExtractionResult
from .result_validator import validate

STATUS_CODES: dict[type[ExtractionError], int] = {
    MissingInput: 400,
    UnsupportedType: 400,
    MalformedBase64: 400,
    TruncatedPayload: 400,
    PayloadTooLarge: 413,
    RasterizationError: 400,
    ConfigurationError: 500,
    InferenceError: 500,
    ModelOutputNotJson: 502,
    ModelOutputSchemaMismatch: 502,
}

CONFIGURATION_ERROR_MESSAGE = "Receipt extraction is not configured on the server"
UNEXPECTED_ERROR_MESSAGE = "Unexpected extraction failure"


def status_code_for(error: ExtractionError) -> int:
    for cls in type(error).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


def error_message_for(error: ExtractionError) -> str:
    if isinstance(error, ConfigurationError):
        return CONFIGURATION_ERROR_MESSAGE
    if isinstance(error, RasterizationError):
        return f"Failed to process PDF: {error.message}"
    if isinstance(error, InferenceError):
        return f"Inference request failed: {error.message}"
    return error.message


@dataclass(frozen=True)
class ExtractionConfig:
    """Everything the pipeline needs, resolved once at startup."""
    api_key: str | None = field(repr=False)
    model: str = DEFAULT_MODEL
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES
    min_payload_bytes: int = DEFAULT_MIN_PAYLOAD_BYTES
    raster_scale_factor: float = DEFAULT_SCALE_FACTOR
    pdf_strategy: str = "rasterize"
    base_url: str | None = None
    timeout_seconds: float = 60.0
    max_retries: int = 1

    def __post_init__(self):
        if self.min_payload_bytes < 1 or self.max_payload_bytes <= self.min_payload_bytes:
            raise ConfigurationError(
                f"Invalid payload limits: min={self.min_payload_bytes}, max={self.max_payload_bytes}"
            )
        if self.raster_scale_factor <= 0:
            raise ConfigurationError(f"Invalid raster scale factor: {self.raster_scale_factor}")
        if self.max_retries < 0:
            raise ConfigurationError(f"Invalid retry count: {self.max_retries}")

    @classmethod
    def from_settings(cls, settings) -> "ExtractionConfig":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.extraction_model,
            max_payload_bytes=settings.max_payload_bytes,
            min_payload_bytes=settings.min_payload_bytes,
            raster_scale_factor=settings.raster_scale_factor,
            pdf_strategy=settings.pdf_strategy,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.inference_timeout_seconds,
            max_retries=settings.inference_max_retries,
        )


@dataclass(frozen=True)
class ExtractionOutcome:
    """Uniform result envelope returned for every request."""
    ok: bool
    status_code: int
    model_used: str | None = None
    result: ExtractionResult | None = None
    error: str | None = None
    raw_output: str | None = None

    @classmethod
    def success(cls, model_used: str, result: ExtractionResult) -> "ExtractionOutcome":
        return cls(ok=True, status_code=200, model_used=model_used, result=result)

    @classmethod
    def from_error(cls, error: ExtractionError) -> "ExtractionOutcome":
        return cls(
            ok=False,
            status_code=status_code_for(error),
            error=error_message_for(error),
            raw_output=error.raw_output if isinstance(error, ModelOutputError) else None,
        )

    def to_response(self) -> dict:
        if self.ok:
            return {"ok": True, "model_used": self.model_used, "result": self.result.model_dump()}
        body: dict[str, Any] = {"ok": False, "error": self.error}
        if self.raw_output is not None:
            body["raw_output"] = self.raw_output
        return body


class ReceiptExtractor:
    """
    Runs one receipt through the extraction pipeline.

    Instances hold only immutable configuration and the shared inference
    client, so a single extractor can serve concurrent requests.
    """

    def __init__(
        self,
        config: ExtractionConfig,
        attachment_producer: AttachmentProducer,
        inference_client: ReceiptInferenceClient,
    ):
        self.config = config
        self.attachment_producer = attachment_producer
        self.inference_client = inference_client

    @property
    def model(self) -> str:
        return self.inference_client.model

    async def extract(self, raw_body: Mapping[str, Any]) -> ExtractionOutcome:
        """
        Extract bookkeeping fields from one uploaded receipt.

        Args:
            raw_body: Parsed JSON request body

        Returns:
            ExtractionOutcome; never raises for pipeline failures
        """
        started = time.perf_counter()
        stage = "normalize"
        try:
            payload = normalize(
                raw_body,
                max_payload_bytes=self.config.max_payload_bytes,
                min_payload_bytes=self.config.min_payload_bytes,
            )

            stage = "attachment"
            attachment = await self.attachment_producer.produce(payload)

            stage = "inference"
            raw_text = await self.inference_client.invoke(attachment)

            stage = "validate"
            result = validate(raw_text)
        except ExtractionError as e:
            outcome = ExtractionOutcome.from_error(e)
            logger.warning(
                "Receipt extraction failed",
                stage=stage,
                error_type=type(e).__name__,
                status_code=outcome.status_code,
                error=outcome.error,
            )
            return outcome
        except Exception:
            logger.exception("Unexpected error during receipt extraction", stage=stage)
            return ExtractionOutcome(ok=False, status_code=500, error=UNEXPECTED_ERROR_MESSAGE)

        logger.info(
            "Receipt extracted",
            kind=payload.kind.value,
            size_bytes=payload.size_bytes,
            pdf_strategy=self.attachment_producer.strategy,
            model=self.model,
            vendor=result.vendor,
            confidence=result.confidence,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return ExtractionOutcome.success(self.model, result)


def build_extractor(config: ExtractionConfig, inference_client: ReceiptInferenceClient | None = None) -> ReceiptExtractor:
    """
    Wire up a ReceiptExtractor from configuration.

    Raises:
        ConfigurationError: if the credential is missing or limits are invalid
    """
    if inference_client is None:
        inference_client = ReceiptInferenceClient(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
        )
    try:
        producer = create_attachment_producer(config.pdf_strategy, scale=config.raster_scale_factor)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    return ReceiptExtractor(config, producer, inference_client)
