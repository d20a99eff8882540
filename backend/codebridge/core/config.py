from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
import logging
import sys
from typing import Sequence
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


class Settings(BaseSettings):
    PORT: int = 3001
    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # GitHub REST / OAuth
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_WEB_URL: str = "https://github.com"
    GITHUB_API_TIMEOUT: float = 30.0
    GITHUB_OAUTH_CLIENT_ID: str = ""
    GITHUB_OAUTH_CLIENT_SECRET: str = ""
    GITHUB_OAUTH_SCOPE: str = "repo read:user"

    # 미리보기 샌드박스 (backend/previews 아래에 세션별 작업 디렉토리 생성)
    PREVIEW_ROOT: Path = Path(__file__).resolve().parents[2] / "previews"
    PREVIEW_HOST: str = "localhost"
    PREVIEW_PORT: int = 3002
    PREVIEW_READY_TIMEOUT: float = 60.0
    PREVIEW_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def oauth_configured(self) -> bool:
        return bool(self.GITHUB_OAUTH_CLIENT_ID and self.GITHUB_OAUTH_CLIENT_SECRET)


# .env 로드 우선순위: backend/.env → 프로젝트 루트/.env
_BACKEND_DIR = Path(__file__).resolve().parents[2]
_PROJECT_ROOT = _BACKEND_DIR.parent
load_dotenv(_BACKEND_DIR / ".env")
load_dotenv(_PROJECT_ROOT / ".env")

settings = Settings()

# 이 경로들은 preflight 응답과 CORS 헤더를 라우터가 직접 만든다
SELF_CORS_PATHS = ("/api/github-push",)


def setup_logging() -> logging.Logger:
    """애플리케이션 전체 로깅 설정"""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )

    uvicorn_logger = logging.getLogger("uvicorn")
    uvicorn_logger.setLevel(level)

    # httpx 요청 로그에는 토큰이 없지만 URL 이 많아 WARNING 이상만 남김
    logging.getLogger("httpx").setLevel(logging.WARNING)

    app_logger = logging.getLogger("codebridge")
    app_logger.setLevel(level)

    return app_logger


class RouteCORSMiddleware(CORSMiddleware):
    """자체 CORS 헤더를 내려주는 라우트(/api/github-push)는 전역 CORS 처리에서 제외"""

    def __init__(self, app, exclude_paths: Sequence[str] = (), **kwargs) -> None:
        super().__init__(app, **kwargs)
        self.exclude_paths = tuple(exclude_paths)

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] == "http" and scope["path"].startswith(self.exclude_paths):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


def setup_middleware(app: FastAPI) -> None:
    app.add_middleware(
        RouteCORSMiddleware,
        exclude_paths=SELF_CORS_PATHS,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
