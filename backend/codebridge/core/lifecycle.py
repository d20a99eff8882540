from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from ..services.sandbox import preview_session

logger = logging.getLogger("codebridge")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    yield
    # shutdown - dev 서버 종료 및 샌드박스 작업 디렉토리 정리
    logger.info("🛑 Shutting down preview session")
    await preview_session.shutdown()
