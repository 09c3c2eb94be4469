
from fastapi import Request
from pydantic import BaseModel

from ..core.config import settings
from ..services.errors import ConfigurationError
from ..services.extraction import CONFIGURATION_ERROR_MESSAGE, ExtractionConfig, ReceiptExtractor, build_extractor
from ..services.receipt_types import ExtractionResult

class ExtractSuccessResponse(BaseModel):
    ok: bool = True
    model_used: str
    result: ExtractionResult

class ExtractErrorResponse(BaseModel):
    ok: bool = False
    error: str
    raw_output: str | None = None  # Only for model output that broke the schema contract


def init_extractor(app) -> None:
    """Build the extractor once and remember either it or the configuration error."""
    app.state.extractor = None
    app.state.extractor_error = None
    try:
        app.state.extractor = build_extractor(ExtractionConfig.from_settings(settings))
    except ConfigurationError as e:
        app.state.extractor_error = e


def get_extractor(request: Request) -> ReceiptExtractor:
    """FastAPI dependency returning the app-wide ReceiptExtractor (raises ConfigurationError if unconfigured)."""
    state = request.app.state
    if not hasattr(state, "extractor"):
        init_extractor(request.app)
    if state.extractor is None:
        raise ConfigurationError(CONFIGURATION_ERROR_MESSAGE) from state.extractor_error
    return state.extractor
