from typing import Any, Callable, List, Optional
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from ..core.exceptions import MissingTokenError, RequestValidationFailed, ServiceException
from ..services import github_push
from ..services.github_client import GitHubClient, create_github_client
from ..services.github_oauth import GitHubOAuthService, get_oauth_service, normalize_redirect_uri

router = APIRouter(tags=["github"])

logger = logging.getLogger("codebridge.github")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-github-token",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

DEFAULT_REPO_DESCRIPTION = "Generated by Figma to Code"

GitHubClientFactory = Callable[[str], GitHubClient]


def get_github_client_factory() -> GitHubClientFactory:
    return create_github_client


class OAuthExchangeRequest(BaseModel):
    code: Optional[str] = None
    redirectUri: Optional[str] = None


class CreateRepoRequest(BaseModel):
    githubToken: Optional[str] = None
    repo: str = ""
    repoDescription: Optional[str] = None
    isPrivate: Optional[bool] = None


class PushBody(BaseModel):
    githubToken: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    branch: Optional[str] = None
    commitMessage: Optional[str] = None
    files: Optional[List[github_push.FileToCommit]] = None


def _json(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers=CORS_HEADERS)


def _error(message: str, status_code: int) -> JSONResponse:
    return _json({"error": message}, status_code)


async def _read_body(request: Request, model: type) -> Any:
    try:
        payload = await request.json()
    except ValueError:
        raise RequestValidationFailed("Request body must be valid JSON.")
    try:
        return model.model_validate(payload or {})
    except ValidationError as e:
        raise RequestValidationFailed(f"Invalid request body: {e.errors()[0].get('msg', 'invalid')}")


@router.options("/github-push")
async def github_push_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@router.get("/github-push")
async def github_get(
    request: Request,
    action: Optional[str] = None,
    redirect_uri: Optional[str] = None,
    client_factory: GitHubClientFactory = Depends(get_github_client_factory),
    oauth: GitHubOAuthService = Depends(get_oauth_service),
):
    try:
        if action == "oauth-url":
            if not oauth.configured:
                return _error("GitHub OAuth is not configured on the server.", 500)
            normalized = normalize_redirect_uri(redirect_uri)
            if not normalized:
                return _error("A valid redirect_uri is required.", 400)
            url, state = oauth.build_authorize_url(normalized)
            return _json({"url": url, "state": state})

        token = request.headers.get("x-github-token")
        if not token:
            raise MissingTokenError()

        if action == "user":
            async with client_factory(token) as client:
                return _json(await client.get_user())

        if action == "repos":
            async with client_factory(token) as client:
                return _json(await client.list_user_repos())

        return _error("Invalid action", 400)
    except ServiceException as e:
        return _error(e.message, e.status_code)
    except Exception as e:
        logger.error(f"GitHub push service error: {e}")
        return _error(str(e) or "Unknown error", 500)


@router.post("/github-push")
async def github_post(
    request: Request,
    action: Optional[str] = None,
    client_factory: GitHubClientFactory = Depends(get_github_client_factory),
    oauth: GitHubOAuthService = Depends(get_oauth_service),
):
    try:
        if action == "exchange-code":
            if not oauth.configured:
                return _error("GitHub OAuth is not configured on the server.", 500)
            body = await _read_body(request, OAuthExchangeRequest)
            if not body.code:
                return _error("OAuth code is required.", 400)
            access_token, user = await oauth.exchange_code_for_user(body.code, body.redirectUri)
            return _json({"accessToken": access_token, "user": user})

        if action == "create-repo":
            body = await _read_body(request, CreateRepoRequest)
            if not body.githubToken:
                return _error("GitHub token required", 400)
            async with client_factory(body.githubToken) as client:
                created = await client.create_repository(
                    body.repo,
                    body.repoDescription or DEFAULT_REPO_DESCRIPTION,
                    True if body.isPrivate is None else body.isPrivate,
                )
            return _json(created)

        if action == "push":
            body = await _read_body(request, PushBody)
            if not body.githubToken:
                return _error("GitHub token required", 400)
            if not body.owner or not body.repo or not body.files:
                return _error("owner, repo, and files are required", 400)

            push_request = github_push.PushRequest(
                owner=body.owner,
                repo=body.repo,
                branch=body.branch,
                commitMessage=body.commitMessage,
                files=body.files,
            )
            # 검증은 클라이언트 생성 전에 끝냄
            error = github_push.validate_push_request(push_request)
            if error:
                return _error(error, 400)

            async with client_factory(body.githubToken) as client:
                result = await github_push.push(client, push_request)
            return _json(result.to_response())

        return _error("Invalid action", 400)
    except ServiceException as e:
        return _error(e.message, e.status_code)
    except Exception as e:
        logger.error(f"GitHub push service error: {e}")
        return _error(str(e) or "Unknown error", 500)
