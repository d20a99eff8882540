from fastapi import FastAPI
from .core.config import setup_middleware, setup_logging
from .core.lifecycle import lifespan
from .routers import health, github, preview

# 로깅 초기화
logger = setup_logging()


def create_app() -> FastAPI:
    app = FastAPI(title="Codebridge", lifespan=lifespan)
    setup_middleware(app)
    logger.info("🚀 FastAPI application initialized")
    api_prefix = "/api"
    app.include_router(health.router, prefix=api_prefix)
    app.include_router(github.router, prefix=api_prefix)
    app.include_router(preview.router, prefix=api_prefix)
    return app


app = create_app()
