import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import structlog

from .config import settings
from .db import Base, engine, SessionLocal
from .logging import setup_logging, RequestIdMiddleware
from .routes.dispatch import router as dispatch_router
from .routes.notifications import router as notifications_router
from .routes.realtime import router as realtime_router, ws_router
from .routes.users import router as users_router
from .services.collab_hub import CollaborationHub
from .services.job_notifications import JobNotifier

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Shared real-time state, one per process
    app.state.hub = CollaborationHub(
        history_capacity=settings.history_capacity,
        history_max_keys=settings.history_max_keys,
        outbox_size=settings.outbox_max_size,
    )
    app.state.job_notifier = JobNotifier(
        SessionLocal,
        timeout=settings.fanout_timeout_seconds,
        actor_id=settings.demo_user_id,
    )

    # Routers
    app.include_router(users_router, prefix=settings.api_prefix)
    app.include_router(dispatch_router, prefix=settings.api_prefix)
    app.include_router(notifications_router, prefix=settings.api_prefix)
    app.include_router(realtime_router, prefix=settings.api_prefix)
    app.include_router(ws_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs(os.path.dirname(settings.database_url[len("sqlite:///"):]) or ".", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
        logger.info("app_started", environment=settings.environment, ws_path=settings.ws_path)

    @app.get("/")
    def root():
        return {"name": settings.app_name, "status": "ok", "ws": settings.ws_path}

    return app


app = create_app()
