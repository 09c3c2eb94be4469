from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..deps import ExtractErrorResponse, ExtractSuccessResponse, get_extractor
from ...models.receipt import ExtractRequest
from ...services.extraction import ReceiptExtractor

router = APIRouter(prefix="/receipts", tags=["receipts"])


@router.post(
    "/extract",
    response_model=ExtractSuccessResponse,
    responses={
        400: {"model": ExtractErrorResponse, "description": "Missing, unsupported, malformed or truncated input; unreadable PDF"},
        413: {"model": ExtractErrorResponse, "description": "Payload too large"},
        500: {"model": ExtractErrorResponse, "description": "Server not configured, or inference backend failure"},
        502: {"model": ExtractErrorResponse, "description": "Model output violated the receipt schema"},
    },
)
async def extract_receipt(req: ExtractRequest, extractor: ReceiptExtractor = Depends(get_extractor)):
    """
    Extract bookkeeping fields from one receipt image or PDF.

    Accepts either:
    - {"imageDataUrl": "data:image/png;base64,..."} (also data:application/pdf)
    - {"fileBase64": "...", "fileName": "receipt.pdf", "mimeType": "application/pdf"}

    Example response:
    {
        "ok": true,
        "model_used": "gpt-4o-mini",
        "result": {
            "vendor": "Acme",
            "receipt_date": "2024-01-05",
            "total": 12.5,
            "currency": "USD",
            "category_suggested": "Meals",
            "confidence": 0.93
        }
    }

    Upload several files by calling this endpoint once per file; a failure
    for one file says nothing about the others.
    """
    outcome = await extractor.extract(req.to_raw_body())
    return JSONResponse(status_code=outcome.status_code, content=outcome.to_response())
