import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import api_router
from .config import NodeforgeConfig

logging.basicConfig(
    level=NodeforgeConfig.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan: startup and shutdown events.
    """
    # Startup
    logger.info("Starting nodeforge application...")
    if not NodeforgeConfig.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set; execution endpoints will return 400")
    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down nodeforge application...")


app = FastAPI(
    title="nodeforge",
    description="Node-graph workflow engine for chaining text, image and video generation.",
    lifespan=lifespan,
)

# Add CORS middleware
# Allow the editor on localhost during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],  # Empty list - use regex instead
    allow_origin_regex=r"^http:\/\/localhost:\d+$|^http:\/\/127\.0\.0\.1:\d+$",
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(api_router)
