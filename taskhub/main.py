import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskhub import __version__
from taskhub.auth.routers import router as auth_router, storage_router
from taskhub.backend import Backend
from taskhub.channels.routers import router as channels_router
from taskhub.config import Settings, settings as default_settings
from taskhub.errors import TaskHubError
from taskhub.logging_setup import setup_logging
from taskhub.messaging.routers import router as messaging_router
from taskhub.tasks.routers import router as tasks_router

logger = logging.getLogger(__name__)


async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = "default-src 'self'"
    return response


async def handle_taskhub_error(request: Request, exc: TaskHubError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


def create_app(settings: Optional[Settings] = None, backend: Optional[Backend] = None) -> FastAPI:
    settings = settings or (backend.settings if backend else default_settings)
    setup_logging(settings.log_level, settings.log_file)

    app = FastAPI(
        title="TaskHub API",
        description="Personal and shared tasks, channels and chat",
        version=__version__,
    )
    app.state.backend = backend or Backend(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(add_security_headers)
    app.add_exception_handler(TaskHubError, handle_taskhub_error)

    app.include_router(auth_router)
    app.include_router(channels_router)
    app.include_router(tasks_router)
    app.include_router(messaging_router)
    app.include_router(storage_router)

    @app.get("/")
    def root():
        return {
            "message": "TaskHub API",
            "version": __version__,
            "endpoints": {
                "auth": "/auth",
                "channels": "/channels",
                "tasks": "/tasks",
                "direct_messages": "/messages/direct",
            },
        }

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "version": __version__}

    logger.info("TaskHub API %s ready", __version__)
    return app


def run() -> None:
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
