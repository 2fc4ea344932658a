"""
FastAPI application for the Interview Tracker.
Serves the synchronized schedule to the front end.

Run with: uvicorn api.main:app --reload --port 8000
"""
from pathlib import Path
import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes.tracker import router as tracker_router, set_session
from config import configure_logging, load_settings
from errors import TrackerError
from tracker import TrackerSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    configure_logging(settings.log_level)
    session = TrackerSession.from_settings(settings)
    session.start()
    set_session(session)
    channel_task = asyncio.create_task(session.run())
    try:
        yield
    finally:
        set_session(None)
        await session.close()
        channel_task.cancel()
        with suppress(asyncio.CancelledError):
            await channel_task


app = FastAPI(
    title="Interview Tracker API",
    description="Interview schedule, invitations and calendar delegation",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS for React frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # Alternative dev port
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# Include routers
app.include_router(tracker_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Interview Tracker API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
