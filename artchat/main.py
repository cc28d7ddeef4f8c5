import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_pagination import add_pagination

from artchat.config import get_settings
from artchat.core.app_state import RealtimeState
from artchat.core.errors import MessagingError, messaging_exception_handler
from artchat.infra.logging_config import LoggingConfig
from artchat.infra.redis_client import get_redis_client
from artchat.realtime.gateway import router as gateway_router
from artchat.routers.messages_router import messages_router
from artchat.routers.moderation_router import moderation_router
from artchat.routers.system import router as system_router

logger = logging.getLogger(__name__)


def create_app(testing: bool = False) -> FastAPI:
    settings = get_settings()
    LoggingConfig(settings.log_level)

    if testing:
        settings.presence_sweep_enabled = False
    realtime = RealtimeState(
        settings=settings,
        redis_client=None if testing else get_redis_client(),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s", settings.app_name)
        await realtime.start()
        yield
        await realtime.stop()
        logger.info("Shutdown complete")

    app = FastAPI(title="Artchat API", lifespan=lifespan)
    app.state.realtime = realtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(MessagingError, messaging_exception_handler)

    app.include_router(system_router)
    app.include_router(messages_router)
    app.include_router(moderation_router)
    app.include_router(gateway_router)

    add_pagination(app)
    return app
