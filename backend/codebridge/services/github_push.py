"""
GitHub push pipeline

파일 목록을 blob → tree → commit → ref 갱신 순서로 GitHub 브랜치에 커밋한다.
모든 단계는 순차 실행되며 재시도/롤백은 없다. 중간에 생성된 blob/tree 는
참조되지 않으면 GitHub 가 알아서 정리한다.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel

from ..core.config import settings
from ..core.exceptions import (
    BranchNotFoundError,
    GitHubApiError,
    RequestValidationFailed,
    ServiceException,
)
from .github_client import GitHubClient
from .repo_path import is_safe_repo_path, normalize_directory

logger = logging.getLogger("codebridge.github_push")

OWNER_RE = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})")
REPO_RE = re.compile(r"[A-Za-z0-9._-]{1,100}")
BRANCH_RE = re.compile(r"[A-Za-z0-9._/-]{1,120}")
MAX_FILES_PER_PUSH = 100
MAX_FILE_SIZE_BYTES = 500_000

DEFAULT_BRANCH = "main"
DEFAULT_COMMIT_MESSAGE = "feat: add generated component"
BLOB_MODE = "100644"


class FileToCommit(BaseModel):
    path: str
    content: Optional[str] = None


class PushRequest(BaseModel):
    owner: str
    repo: str
    branch: Optional[str] = None
    commitMessage: Optional[str] = None
    files: List[FileToCommit] = []


@dataclass(frozen=True)
class TreeEntry:
    path: str
    sha: str
    mode: str = BLOB_MODE
    type: str = "blob"

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "mode": self.mode, "type": self.type, "sha": self.sha}


@dataclass
class GitTree:
    base_tree: str
    entries: List[TreeEntry] = field(default_factory=list)

    def to_payload(self) -> List[Dict[str, str]]:
        return [entry.to_dict() for entry in self.entries]


@dataclass(frozen=True)
class PushResult:
    commit_sha: str
    commit_url: str

    def to_response(self) -> Dict[str, str]:
        return {"commitSha": self.commit_sha, "commitUrl": self.commit_url}


def _is_valid_branch(branch: str) -> bool:
    if BRANCH_RE.fullmatch(branch) is None:
        return False
    return ".." not in branch and not branch.startswith("/") and not branch.endswith("/")


def validate_push_request(request: PushRequest) -> Optional[str]:
    """검증 실패 시 사용자에게 보여줄 메시지, 통과 시 None"""
    if OWNER_RE.fullmatch(request.owner or "") is None:
        return "Invalid repository owner."
    if REPO_RE.fullmatch(request.repo or "") is None:
        return "Invalid repository name."
    if request.branch and not _is_valid_branch(request.branch):
        return "Invalid branch name."
    if not request.files:
        return "At least one file is required."
    if len(request.files) > MAX_FILES_PER_PUSH:
        return f"Too many files. Max is {MAX_FILES_PER_PUSH}."

    for file in request.files:
        if not is_safe_repo_path(file.path):
            return f"Invalid file path: {file.path}"
        if len((file.content or "").encode("utf-8")) > MAX_FILE_SIZE_BYTES:
            return f"File too large: {file.path}"

    return None


def normalize_push_files(files: Sequence[FileToCommit]) -> List[FileToCommit]:
    """검증된 파일 경로를 정규화된 RepoPath 문자열로 바꾼다"""
    normalized: List[FileToCommit] = []
    for file in files:
        path = normalize_directory(file.path)
        if path is None:
            raise RequestValidationFailed(f"Invalid file path: {file.path}")
        normalized.append(FileToCommit(path=str(path), content=file.content or ""))
    return normalized


async def build_tree(
    client: GitHubClient,
    owner: str,
    repo: str,
    base_tree_sha: str,
    files: Sequence[FileToCommit],
) -> GitTree:
    tree = GitTree(base_tree=base_tree_sha)
    # 파일당 blob 하나씩, 순차 생성 (실패한 파일을 바로 알 수 있도록)
    for file in files:
        blob = await client.create_blob(owner, repo, file.content or "")
        tree.entries.append(TreeEntry(path=file.path, sha=blob["sha"]))
        logger.debug(f"blob created: {file.path} -> {blob['sha']}")
    return tree


async def push_files(
    client: GitHubClient,
    owner: str,
    repo: str,
    branch: str,
    message: str,
    files: Sequence[FileToCommit],
) -> PushResult:
    try:
        ref = await client.get_branch_ref(owner, repo, branch)
    except GitHubApiError as e:
        logger.info(f"branch lookup failed for {owner}/{repo}@{branch}: {e.upstream_status}")
        raise BranchNotFoundError(owner, repo, branch) from e

    latest_commit_sha = ref["object"]["sha"]
    latest_commit = await client.get_commit(owner, repo, latest_commit_sha)
    base_tree_sha = latest_commit["tree"]["sha"]

    tree = await build_tree(client, owner, repo, base_tree_sha, files)
    new_tree = await client.create_tree(owner, repo, tree.base_tree, tree.to_payload())

    new_commit = await client.create_commit(owner, repo, message, new_tree["sha"], [latest_commit_sha])
    await client.update_branch_ref(owner, repo, branch, new_commit["sha"])

    commit_sha = new_commit["sha"]
    web_url = settings.GITHUB_WEB_URL.rstrip("/")
    return PushResult(commit_sha=commit_sha, commit_url=f"{web_url}/{owner}/{repo}/commit/{commit_sha}")


async def push(client: GitHubClient, request: PushRequest) -> PushResult:
    """요청 검증 후 push_files 실행. 검증 실패 시 네트워크 호출 없이 400 예외"""
    error = validate_push_request(request)
    if error:
        raise RequestValidationFailed(error)

    branch = request.branch or DEFAULT_BRANCH
    message = request.commitMessage or DEFAULT_COMMIT_MESSAGE
    files = normalize_push_files(request.files)

    logger.info(f"📤 Pushing {len(files)} file(s) to {request.owner}/{request.repo}@{branch}")
    try:
        result = await push_files(client, request.owner, request.repo, branch, message, files)
    except ServiceException as e:
        logger.error(f"❌ Push to {request.owner}/{request.repo}@{branch} failed: {e.message}")
        raise
    except httpx.HTTPError as e:
        logger.error(f"❌ Push to {request.owner}/{request.repo}@{branch} failed: {e}")
        raise ServiceException(f"GitHub request failed: {e}") from e

    logger.info(f"✅ Pushed commit {result.commit_sha} to {request.owner}/{request.repo}@{branch}")
    return result
