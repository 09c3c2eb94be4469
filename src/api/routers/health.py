from fastapi import APIRouter, Request

from ...core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    """Liveness plus whether receipt extraction is usable (credential present at startup)."""
    extractor = getattr(request.app.state, "extractor", None)
    return {
        "status": "ok",
        "app": settings.app_name,
        "env": settings.app_env,
        "extraction_configured": extractor is not None,
        "model": extractor.model if extractor is not None else settings.extraction_model,
        "pdf_strategy": settings.pdf_strategy,
    }
