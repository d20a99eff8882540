import logging
import uuid
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode, urlsplit

import httpx

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import OAuthExchangeError, OAuthNotConfiguredError
from .github_client import GitHubClient

logger = logging.getLogger("codebridge.github_oauth")


def normalize_redirect_uri(raw: Optional[str]) -> str:
    """http/https URL 만 허용. 그 외에는 빈 문자열"""
    if not raw:
        return ""
    try:
        parsed = urlsplit(raw.strip())
    except ValueError:
        return ""
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return ""
    return parsed.geturl()


class GitHubOAuthService:
    """GitHub OAuth App 인증 흐름 (authorize URL 생성, code → token 교환)"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or default_settings
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self.settings.oauth_configured

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise OAuthNotConfiguredError()

    def build_authorize_url(self, redirect_uri: str) -> Tuple[str, str]:
        self._ensure_configured()
        state = str(uuid.uuid4())
        params = urlencode(
            {
                "client_id": self.settings.GITHUB_OAUTH_CLIENT_ID,
                "redirect_uri": redirect_uri,
                "scope": self.settings.GITHUB_OAUTH_SCOPE,
                "state": state,
                "allow_signup": "true",
            }
        )
        base = self.settings.GITHUB_WEB_URL.rstrip("/")
        return f"{base}/login/oauth/authorize?{params}", state

    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> str:
        self._ensure_configured()
        url = f"{self.settings.GITHUB_WEB_URL.rstrip('/')}/login/oauth/access_token"
        payload = {
            "client_id": self.settings.GITHUB_OAUTH_CLIENT_ID,
            "client_secret": self.settings.GITHUB_OAUTH_CLIENT_SECRET,
            "code": code,
            "redirect_uri": normalize_redirect_uri(redirect_uri),
        }
        async with httpx.AsyncClient(
            timeout=self.settings.GITHUB_API_TIMEOUT, transport=self._transport
        ) as client:
            response = await client.post(url, json=payload, headers={"Accept": "application/json"})

        try:
            data: Any = response.json()
        except ValueError:
            data = {"message": response.text}
        if response.is_error or not isinstance(data, dict) or not data.get("access_token"):
            # 에러 응답에 secret 이 섞여 올 일은 없지만 code 는 로그에 남기지 않음
            logger.warning(f"OAuth code exchange failed with status {response.status_code}")
            raise OAuthExchangeError(data)
        return data["access_token"]

    async def exchange_code_for_user(
        self, code: str, redirect_uri: Optional[str] = None
    ) -> Tuple[str, Dict[str, Any]]:
        access_token = await self.exchange_code(code, redirect_uri)
        async with GitHubClient(
            access_token, base_url=self.settings.GITHUB_API_URL, transport=self._transport
        ) as client:
            user = await client.get_user()
        logger.info(f"🔑 GitHub OAuth completed for {user.get('login', '<unknown>')}")
        return access_token, user


def get_oauth_service() -> GitHubOAuthService:
    return GitHubOAuthService()
