"""FastAPI application for the Voice Roaster service.

Provides REST API endpoints wrapping the roaster package for:
- Consent self-service (opt in / opt out)
- Group policy management (safe mode, nuclear roasts, default voice)
- Roast requests and the per-group roast log
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the roaster package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI

from roaster import __version__
from web.backend.app.routers import roasts

app = FastAPI(
    title="Voice Roaster API",
    description=(
        "REST API for consent-gated voice roasts. "
        "Provides endpoints for consent, group policy, roast requests "
        "and the roast log."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(roasts.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "Voice Roaster API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
