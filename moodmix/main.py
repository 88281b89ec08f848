"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from moodmix import __version__
from moodmix.api.endpoints import router
from moodmix.config import get_settings
from moodmix.services.chat import get_chat_service
from moodmix.utils.logging import LogConfig, get_logger, setup_logging

setup_logging(LogConfig(level=get_settings().log_level))
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting moodmix {__version__}")
    yield
    await get_chat_service().shutdown()


app = FastAPI(
    title="Moodmix Playlist Chat",
    description=(
        "A conversational music assistant that builds playlists from mood and activity, "
        "streams its replies, and asks for approval before saving anything."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Chat",
            "description": (
                "Streamed conversation turns, tool-call confirmations, scheduled reminders and session history."
            ),
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Session-Id"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("moodmix.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
