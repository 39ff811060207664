"""Health check endpoint."""

from fastapi import APIRouter
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness probe body."""

    ok: bool = True


@router.get("/healthz", response_model=HealthResponse)
async def healthz():
    """Report that the process is serving."""
    return HealthResponse()
