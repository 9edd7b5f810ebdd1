"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    invoker = request.app.state.invoker
    return {
        "status": "ok",
        "service": "sentencify",
        "version": "0.1.0",
        "provider": invoker.settings.provider,
        "ai_available": invoker.is_available(),
    }


@router.get("/")
async def root():
    return {"service": "sentencify", "version": "0.1.0"}
