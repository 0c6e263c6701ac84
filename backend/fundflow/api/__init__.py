"""API route definitions for the fund-flow tracer."""

from fastapi import APIRouter

from .endpoints import router as endpoints_router
from .trace import router as trace_router


api_router = APIRouter()
api_router.include_router(endpoints_router)
api_router.include_router(trace_router)


__all__ = ["api_router"]
