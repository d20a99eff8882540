from unittest.mock import AsyncMock

import httpx
import pytest

from codebridge.core.exceptions import (
    BranchNotFoundError,
    GitHubApiError,
    RequestValidationFailed,
    ServiceException,
)
from codebridge.services import github_push
from codebridge.services.github_client import GitHubClient
from codebridge.services.github_push import FileToCommit, PushRequest


def _mock_client() -> AsyncMock:
    client = AsyncMock(spec=GitHubClient)
    client.get_branch_ref.return_value = {"object": {"sha": "commit-0"}}
    client.get_commit.return_value = {"sha": "commit-0", "tree": {"sha": "tree-0"}}
    client.create_blob.side_effect = [{"sha": "blob-1"}, {"sha": "blob-2"}]
    client.create_tree.return_value = {"sha": "tree-1"}
    client.create_commit.return_value = {"sha": "commit-1"}
    client.update_branch_ref.return_value = {"object": {"sha": "commit-1"}}
    return client


def _request(**overrides) -> PushRequest:
    payload = {
        "owner": "octo",
        "repo": "demo",
        "files": [
            {"path": "src/components/Button.tsx", "content": "export default 1;"},
            {"path": "./src//components/Button.css", "content": ".btn {}"},
        ],
    }
    payload.update(overrides)
    return PushRequest.model_validate(payload)


class TestValidatePushRequest:
    def test_valid_request_passes(self) -> None:
        assert github_push.validate_push_request(_request()) is None

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"owner": "-octo"}, "Invalid repository owner."),
            ({"repo": "bad repo"}, "Invalid repository name."),
            ({"branch": "feat branch"}, "Invalid branch name."),
            ({"branch": "feat/../main"}, "Invalid branch name."),
            ({"files": []}, "At least one file is required."),
            ({"files": [{"path": "../x.ts", "content": ""}]}, "Invalid file path: ../x.ts"),
        ],
    )
    def test_rejects_invalid_fields(self, overrides, message: str) -> None:
        assert github_push.validate_push_request(_request(**overrides)) == message

    def test_file_size_counts_utf8_bytes(self) -> None:
        # 한글 한 글자 = 3 bytes
        content = "가" * (github_push.MAX_FILE_SIZE_BYTES // 3 + 1)

        error = github_push.validate_push_request(
            _request(files=[{"path": "big.txt", "content": content}])
        )

        assert error == "File too large: big.txt"


class TestPush:
    async def test_push_runs_steps_in_order(self) -> None:
        # Given
        client = _mock_client()

        # When
        result = await github_push.push(client, _request(commitMessage="feat: button"))

        # Then
        client.get_branch_ref.assert_awaited_once_with("octo", "demo", "main")
        client.get_commit.assert_awaited_once_with("octo", "demo", "commit-0")
        assert client.create_blob.await_count == 2
        client.create_tree.assert_awaited_once_with(
            "octo",
            "demo",
            "tree-0",
            [
                {"path": "src/components/Button.tsx", "mode": "100644", "type": "blob", "sha": "blob-1"},
                {"path": "src/components/Button.css", "mode": "100644", "type": "blob", "sha": "blob-2"},
            ],
        )
        client.create_commit.assert_awaited_once_with("octo", "demo", "feat: button", "tree-1", ["commit-0"])
        client.update_branch_ref.assert_awaited_once_with("octo", "demo", "main", "commit-1")
        assert result.commit_sha == "commit-1"
        assert result.commit_url.endswith("/octo/demo/commit/commit-1")
        assert result.to_response() == {"commitSha": "commit-1", "commitUrl": result.commit_url}

    async def test_uses_default_commit_message_and_custom_branch(self) -> None:
        client = _mock_client()

        await github_push.push(client, _request(branch="release/v1"))

        client.get_branch_ref.assert_awaited_once_with("octo", "demo", "release/v1")
        assert client.create_commit.await_args.args[2] == github_push.DEFAULT_COMMIT_MESSAGE

    async def test_too_many_files_rejected_before_network(self) -> None:
        # Given
        client = _mock_client()
        files = [{"path": f"src/f{i}.ts", "content": ""} for i in range(101)]

        # When
        with pytest.raises(RequestValidationFailed, match="Too many files. Max is 100."):
            await github_push.push(client, _request(files=files))

        # Then
        assert client.get_branch_ref.await_count == 0
        assert client.create_blob.await_count == 0

    async def test_invalid_branch_never_reaches_ref_lookup(self) -> None:
        client = _mock_client()

        with pytest.raises(RequestValidationFailed):
            await github_push.push(client, _request(branch="bad branch!"))

        assert client.get_branch_ref.await_count == 0

    async def test_missing_branch_reported_as_not_found(self) -> None:
        client = _mock_client()
        client.get_branch_ref.side_effect = GitHubApiError(404, {"message": "Not Found"})

        with pytest.raises(BranchNotFoundError, match="Branch 'main' not found in octo/demo"):
            await github_push.push(client, _request())

        assert client.get_commit.await_count == 0

    async def test_blob_failure_aborts_remaining_steps(self) -> None:
        client = _mock_client()
        client.create_blob.side_effect = [{"sha": "blob-1"}, GitHubApiError(422, {"message": "bad"})]

        with pytest.raises(GitHubApiError) as exc_info:
            await github_push.push(client, _request())

        assert exc_info.value.status_code == 500
        assert "GitHub API error [422]" in exc_info.value.message
        assert client.create_tree.await_count == 0
        assert client.update_branch_ref.await_count == 0

    async def test_non_fast_forward_surfaces_api_error(self) -> None:
        client = _mock_client()
        client.update_branch_ref.side_effect = GitHubApiError(422, {"message": "Update is not a fast forward"})

        with pytest.raises(GitHubApiError, match="not a fast forward"):
            await github_push.push(client, _request())

    async def test_transport_errors_are_normalized(self) -> None:
        client = _mock_client()
        client.get_commit.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(ServiceException, match="GitHub request failed: connection refused"):
            await github_push.push(client, _request())


class TestBuildTree:
    async def test_creates_one_blob_per_file_sequentially(self) -> None:
        client = _mock_client()
        files = [FileToCommit(path="a.txt", content="A"), FileToCommit(path="b.txt", content="B")]

        tree = await github_push.build_tree(client, "octo", "demo", "tree-0", files)

        assert [call.args[2] for call in client.create_blob.await_args_list] == ["A", "B"]
        assert tree.base_tree == "tree-0"
        assert [entry.sha for entry in tree.entries] == ["blob-1", "blob-2"]
