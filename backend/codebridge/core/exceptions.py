import json
from typing import Any, Optional


class ServiceException(Exception):
    """HTTP 계층에서 {"error": message} 로 변환되는 서비스 예외의 기반 클래스"""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class RequestValidationFailed(ServiceException):
    status_code = 400


class MissingTokenError(ServiceException):
    status_code = 401

    def __init__(self, message: str = "GitHub token required", status_code: Optional[int] = None):
        super().__init__(message, status_code)


class GitHubApiError(ServiceException):
    def __init__(self, status: int, payload: Any):
        self.upstream_status = status
        self.payload = payload
        super().__init__(f"GitHub API error [{status}]: {_render(payload)}")


class BranchNotFoundError(ServiceException):
    def __init__(self, owner: str, repo: str, branch: str):
        super().__init__(f"Branch '{branch}' not found in {owner}/{repo}")


class OAuthNotConfiguredError(ServiceException):
    def __init__(self) -> None:
        super().__init__("GitHub OAuth is not configured on the server.")


class OAuthExchangeError(ServiceException):
    def __init__(self, payload: Any):
        self.payload = payload
        super().__init__(f"GitHub OAuth error: {_render(payload)}")


class SandboxError(ServiceException):
    pass


class SandboxUnsupportedError(SandboxError):
    def __init__(self, message: str = "Live preview requires Node.js and npm on the server."):
        super().__init__(message)


class SandboxTimeoutError(SandboxError):
    def __init__(self, seconds: float):
        super().__init__(f"Dev server failed to start within {seconds:g}s")


class SandboxProcessError(SandboxError):
    pass


def _render(payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(payload)
