"""
Typed errors raised by the receipt extraction pipeline.

Each pipeline stage raises one of these instead of a bare Exception so the
orchestrator can translate failures into HTTP outcomes in one place
(see ``src.services.extraction.STATUS_CODES``).
"""


class ExtractionError(Exception):
    """Base class for every failure the pipeline reports to callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------- Normalization (bad client input) ----------

class NormalizationError(ExtractionError):
    pass


class MissingInput(NormalizationError):
    pass


class UnsupportedType(NormalizationError):
    pass


class MalformedBase64(NormalizationError):
    pass


class TruncatedPayload(NormalizationError):
    pass


class PayloadTooLarge(NormalizationError):
    def __init__(self, message: str, limit_bytes: int, actual_bytes: int):
        super().__init__(message)
        self.limit_bytes = limit_bytes
        self.actual_bytes = actual_bytes


# ---------- Attachment production ----------

class RasterizationError(ExtractionError):
    """PDF could not be rendered; almost always a bad input file."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


# ---------- Inference ----------

class ConfigurationError(ExtractionError):
    """Operator problem (e.g. missing credential). Message must stay generic."""
    pass


class InferenceError(ExtractionError):
    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status


# ---------- Model output ----------

class ModelOutputError(ExtractionError):
    def __init__(self, message: str, raw_output: str):
        super().__init__(message)
        self.raw_output = raw_output


class ModelOutputNotJson(ModelOutputError):
    pass


class ModelOutputSchemaMismatch(ModelOutputError):
    pass
