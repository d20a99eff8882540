"""
GitHub REST API Client
GitHub API와 상호작용하는 비동기 클라이언트
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import settings
from ..core.exceptions import GitHubApiError

logger = logging.getLogger("codebridge.github_client")

GITHUB_API_VERSION = "2022-11-28"


class GitHubClient:
    """토큰 하나에 묶인 GitHub REST 클라이언트. async with 로 사용한다."""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.GITHUB_API_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.GITHUB_API_TIMEOUT,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
                "User-Agent": "codebridge",
            },
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self._client.request(method, path, json=json, params=params)
        try:
            data = response.json()
        except ValueError:
            data = {"message": response.text}
        if response.is_error:
            logger.warning(f"GitHub {method} {path} -> {response.status_code}")
            raise GitHubApiError(response.status_code, data)
        return data

    # --- 사용자 / 저장소 ---

    async def get_user(self) -> Dict[str, Any]:
        return await self.request("GET", "/user")

    async def list_user_repos(self) -> List[Dict[str, Any]]:
        return await self.request("GET", "/user/repos", params={"sort": "updated", "per_page": 30})

    async def create_repository(self, name: str, description: str, private: bool) -> Dict[str, Any]:
        return await self.request(
            "POST",
            "/user/repos",
            json={
                "name": name,
                "description": description,
                "private": private,
                "auto_init": True,
            },
        )

    # --- Git database (ref / commit / blob / tree) ---

    async def get_branch_ref(self, owner: str, repo: str, branch: str) -> Dict[str, Any]:
        return await self.request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}")

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return await self.request("GET", f"/repos/{owner}/{repo}/git/commits/{sha}")

    async def create_blob(self, owner: str, repo: str, content: str) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json={"content": content, "encoding": "utf-8"},
        )

    async def create_tree(
        self, owner: str, repo: str, base_tree: str, tree: List[Dict[str, str]]
    ) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/trees",
            json={"base_tree": base_tree, "tree": tree},
        )

    async def create_commit(
        self, owner: str, repo: str, message: str, tree: str, parents: List[str]
    ) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": parents},
        )

    async def update_branch_ref(self, owner: str, repo: str, branch: str, sha: str) -> Dict[str, Any]:
        # force 없이 갱신 - fast-forward 가 아니면 GitHub 가 422 로 거부
        return await self.request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/heads/{branch}",
            json={"sha": sha},
        )


def create_github_client(token: str) -> GitHubClient:
    return GitHubClient(token)
