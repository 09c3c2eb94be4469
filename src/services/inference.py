"""
Schema-constrained receipt extraction via the OpenAI Responses API.

One request carries a fixed instruction plus exactly one attachment (an image
or a PDF file) and a strict, closed JSON schema. The model's output must
therefore contain all six keys with the right primitive types and nothing
else, so no free-text parsing is needed downstream.
"""

import time
from dataclasses import dataclass
from typing import Any

import openai
from loguru import logger
from openai import AsyncOpenAI

from .errors import ConfigurationError, InferenceError
from .receipt_types import Attachment, FileAttachment, RasterImage

DEFAULT_MODEL = "gpt-4o-mini"
SCHEMA_NAME = "receipt_extract_v1"

SUGGESTED_CATEGORIES = ["Meals", "Fuel", "Office Supplies", "Travel", "Repairs"]

EXTRACTION_INSTRUCTION = (
    "Extract bookkeeping fields from this receipt image or PDF. "
    "Return vendor, receipt_date (YYYY-MM-DD), total (number), currency (e.g. USD), "
    f"category_suggested (e.g. {', '.join(SUGGESTED_CATEGORIES)}), "
    "and confidence (0 to 1). If missing, use null. Do not guess wildly."
)


def _nullable(json_type: str) -> dict:
    return {"anyOf": [{"type": json_type}, {"type": "null"}]}


RECEIPT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "vendor": _nullable("string"),
        "receipt_date": _nullable("string"),
        "total": _nullable("number"),
        "currency": _nullable("string"),
        "category_suggested": _nullable("string"),
        "confidence": _nullable("number"),
    },
    "required": ["vendor", "receipt_date", "total", "currency", "category_suggested", "confidence"],
}


@dataclass(frozen=True)
class InferenceRequest:
    """A single extraction call: instruction + one attachment + closed schema."""
    model: str
    instruction: str
    attachment: Attachment

    def attachment_part(self) -> dict:
        if isinstance(self.attachment, FileAttachment):
            return {
                "type": "input_file",
                "filename": self.attachment.filename,
                "file_data": self.attachment.data_url,
            }
        if isinstance(self.attachment, RasterImage):
            return {
                "type": "input_image",
                "image_url": self.attachment.data_url,
                "detail": "auto",
            }
        raise TypeError(f"Unsupported attachment type: {type(self.attachment).__name__}")

    def to_responses_kwargs(self) -> dict:
        return {
            "model": self.model,
            "input": [
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": self.instruction},
                        self.attachment_part(),
                    ],
                }
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": SCHEMA_NAME,
                    "strict": True,
                    "schema": RECEIPT_SCHEMA,
                }
            },
        }


class ReceiptInferenceClient:
    """
    Thin async wrapper over the OpenAI client for receipt extraction.

    Transient transport failures (connection errors, timeouts, 429, 5xx) are
    retried by the SDK at most ``max_retries`` times. The call mutates no
    state, so a retry is always safe.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        *,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 1,
        client: Any = None,
    ):
        """
        Args:
            api_key: OpenAI API key (required unless ``client`` is given)
            model: Model identifier reported back as ``model_used``
            base_url: Optional OpenAI-compatible endpoint
            timeout: Per-request timeout in seconds
            max_retries: Bounded retry count for transient failures
            client: Pre-built AsyncOpenAI-compatible client (tests, custom transports)

        Raises:
            ConfigurationError: if no credential is available
        """
        if client is None:
            if not api_key:
                raise ConfigurationError("Receipt extraction is not configured on the server")
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=max_retries,
            )
        self._client = client
        self.model = model

    def build_request(self, attachment: Attachment, instruction: str = EXTRACTION_INSTRUCTION) -> InferenceRequest:
        return InferenceRequest(model=self.model, instruction=instruction, attachment=attachment)

    async def invoke(self, attachment: Attachment, instruction: str = EXTRACTION_INSTRUCTION) -> str:
        """
        Call the model and return its raw text output.

        Raises:
            InferenceError: provider or transport failure, upstream message attached
        """
        request = self.build_request(attachment, instruction)
        started = time.perf_counter()
        try:
            response = await self._client.responses.create(**request.to_responses_kwargs())
        except openai.APITimeoutError as e:
            raise InferenceError(f"Inference request timed out: {e}") from e
        except openai.APIConnectionError as e:
            raise InferenceError(f"Could not reach inference backend: {e}") from e
        except openai.APIStatusError as e:
            raise InferenceError(
                f"Inference backend returned {e.status_code}: {e.message}",
                upstream_status=e.status_code,
            ) from e
        except openai.OpenAIError as e:
            raise InferenceError(f"Inference request failed: {e}") from e

        raw_text = response.output_text or ""
        logger.info(
            "Inference completed",
            model=self.model,
            attachment=type(attachment).__name__,
            output_chars=len(raw_text),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return raw_text
