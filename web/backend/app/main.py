"""FastAPI application for the flowsync REST API.

Provides REST API endpoints wrapping the flowsync Python package for:
- Planning a sync (dry run with a recorded diff)
- Running a sync (apply, commit and push)
- Reading recorded diff artifacts and run history
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the flowsync package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowsync import __version__
from flowsync.utils.logging import configure_logging
from web.backend.app.routers import sync

configure_logging()

app = FastAPI(
    title="flowsync API",
    description=(
        "REST API for flowsync. "
        "Plans and runs reconciliations between a Git tree and an "
        "orchestration instance, and serves recorded diffs and run history."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(sync.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "flowsync API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
