"""Public liveness routes."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "Server is running"
