"""FastAPI application entry point and configuration."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from backend.api.progress_router import router as progress_router
from backend.config import settings
from backend.srs.service import ProgressService
from backend.storage.factory import open_progress_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the progress store on startup and release its connections on shutdown."""
    resources = await open_progress_store(settings)
    app.state.store_resources = resources
    app.state.progress_service = ProgressService(resources.store)
    yield
    await resources.aclose()


app = FastAPI(
    title="Quizly",
    description="Quiz and flashcard study with SM-2 spaced repetition",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(progress_router)


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """Check that the local progress database answers."""
    resources = getattr(request.app.state, "store_resources", None)
    if resources is None or not await resources.local.ping():
        return {"status": "degraded"}
    return {"status": "ok"}
