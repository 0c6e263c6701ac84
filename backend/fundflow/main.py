"""FastAPI entry point for the fund-flow tracer backend service."""

from __future__ import annotations

import logging
from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fundflow.api import api_router
from fundflow.config import get_settings
from fundflow.engine.session import close_session


LOGGER = logging.getLogger(__name__)

logging.basicConfig(level=logging.INFO)

app = FastAPI(
	title="Fund Flow Tracer Backend",
	version="1.0.0",
	description="Backend service tracing funds forward from a seed transaction across RPC endpoints.",
)

settings = get_settings()

app.add_middleware(
	CORSMiddleware,
	allow_origins=list(settings.cors_allow_origins),
	allow_credentials=False,
	allow_methods=["*"],
	allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
def healthcheck() -> Dict[str, str]:
	"""Basic readiness probe."""
	return {"status": "ok"}


@app.on_event("shutdown")
async def shutdown_event() -> None:
	"""Stop any running trace and close endpoint connections when the service stops."""
	await close_session()
