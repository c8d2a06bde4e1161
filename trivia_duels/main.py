import uvicorn
from fastapi import FastAPI

from trivia_duels.api.routes.duels import router as duels_router
from trivia_duels.api.routes.health import router as health_router
from trivia_duels.core.config import get_settings
from trivia_duels.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Trivia Duels API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(duels_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "trivia_duels.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
