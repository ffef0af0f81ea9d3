"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.dependencies import get_stream_manager
from app.core.logging import setup_logging
from app.db.database import init_db
from app.api import health, media_stream


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    yield
    # Shutdown
    if get_stream_manager.cache_info().currsize:
        await get_stream_manager().aclose()


app = FastAPI(
    title="CareCall Voice Stream",
    description="Real-time voice conversations for clinic appointment and follow-up calls",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(media_stream.router, tags=["media-stream"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
