"""Health check endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Check model connectivity when a model client is configured."""
    openai = request.app.state.openai
    if openai is None:
        return {"status": "ok", "model": "disabled"}

    result = await openai.health_check()
    if not result.get("healthy"):
        return JSONResponse(status_code=503, content={"status": "unhealthy", "model": result.get("error")})
    return {"status": "ok", "model": result.get("chat_model")}
