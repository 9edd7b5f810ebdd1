"""FastAPI application for Sentencify.

Logging: Uses structured JSON logging for Grafana Loki.
Set LOG_FORMAT=pretty for development-friendly output.
"""

from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Optional

# Configure structured logging BEFORE importing anything else
from sentencify.utils.logging import configure_logging, get_logger, log

configure_logging()

MODULE = "api"
logger = get_logger()

from fastapi import FastAPI  # noqa: E402

from sentencify.api.routes.ai import router as ai_router  # noqa: E402
from sentencify.api.routes.chat import MAX_OPEN_SESSIONS, router as chat_router  # noqa: E402
from sentencify.api.routes.health import router as health_router  # noqa: E402
from sentencify.db.chat_cache import SqlChatCache  # noqa: E402
from sentencify.db.models import Base  # noqa: E402
from sentencify.db.session import async_session, engine  # noqa: E402
from sentencify.llm.chat import ChatCache  # noqa: E402
from sentencify.llm.invoker import LLMInvoker  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown."""
    if app.state.owns_database:
        # Create DB tables if they don't exist
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        log.info(logger, MODULE, "db_ready", "Database tables ready")

    log.info(logger, MODULE, "startup", "Application ready",
             provider=app.state.invoker.settings.provider,
             ai_available=app.state.invoker.is_available())

    yield

    # Cleanup
    if app.state.owns_database:
        await engine.dispose()
    log.info(logger, MODULE, "shutdown", "Application shutdown complete")


def create_app(
    invoker: Optional[LLMInvoker] = None,
    chat_cache: Optional[ChatCache] = None,
    max_chat_sessions: int = MAX_OPEN_SESSIONS,
) -> FastAPI:
    """Build the application. Defaults read settings and the database from the env."""
    app = FastAPI(
        title="Sentencify",
        description="LLM orchestration for labor-court decision drafting",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.invoker = invoker if invoker is not None else LLMInvoker()
    app.state.owns_database = chat_cache is None
    app.state.chat_cache = chat_cache if chat_cache is not None else SqlChatCache(async_session)
    app.state.chat_sessions = OrderedDict()
    app.state.max_chat_sessions = max_chat_sessions

    app.include_router(health_router)
    app.include_router(ai_router, prefix="/ai", tags=["ai"])
    app.include_router(chat_router, prefix="/chat", tags=["chat"])
    return app


app = create_app()
