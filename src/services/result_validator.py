"""
Parse and sanity-check the model's JSON output.

The schema sent with the request fixes keys and primitive types but not
ranges, so confidence is clamped here. Dates are passed through as reported:
receipt_date is not checked against YYYY-MM-DD.
"""

import json
import math

from loguru import logger
from pydantic import ValidationError

from .errors import ModelOutputNotJson, ModelOutputSchemaMismatch
from .receipt_types import ExtractionResult

RESULT_FIELDS = tuple(ExtractionResult.model_fields)


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))


def _clamp_confidence(value):
    # bool is an int subclass; leave it (and strings) for strict validation to reject
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            value = float(value)
        except OverflowError:
            # integer too large for a float
            return 1.0 if value > 0 else 0.0
        if not math.isfinite(value):
            return None
        return clamp(value)
    return value


def validate(raw_text: str) -> ExtractionResult:
    """
    Turn raw model output into an ExtractionResult.

    Args:
        raw_text: Text returned by the inference backend

    Returns:
        ExtractionResult with all six fields present and confidence in [0, 1]

    Raises:
        ModelOutputNotJson: output is not a JSON object
        ModelOutputSchemaMismatch: a field has a type the schema forbids
    """
    try:
        parsed = json.loads(raw_text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ModelOutputNotJson(f"Model returned non-JSON output: {e}", raw_output=str(raw_text)) from e

    if not isinstance(parsed, dict):
        raise ModelOutputNotJson(
            f"Model returned JSON {type(parsed).__name__}, expected an object",
            raw_output=raw_text,
        )

    extra_keys = sorted(set(parsed) - set(RESULT_FIELDS))
    if extra_keys:
        logger.warning("Dropping unexpected keys from model output", keys=extra_keys)

    fields = {name: parsed.get(name) for name in RESULT_FIELDS}
    fields["confidence"] = _clamp_confidence(fields["confidence"])

    try:
        return ExtractionResult(**fields)
    except ValidationError as e:
        raise ModelOutputSchemaMismatch(
            f"Model output does not match the receipt schema: {e.error_count()} invalid field(s)",
            raw_output=raw_text,
        ) from e
