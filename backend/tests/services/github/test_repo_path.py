import pytest

from codebridge.services.repo_path import (
    RepoPath,
    build_file_path,
    is_safe_repo_path,
    normalize_directory,
)


class TestNormalizeDirectory:
    def test_normalizes_standard_relative_paths(self) -> None:
        assert normalize_directory("./src//components") == "src/components"
        assert normalize_directory("  src/components/  ") == "src/components"

    @pytest.mark.parametrize(
        "value",
        [
            "../src/components",
            "src/../components",
            "/src/components",
            "src\\components",
            "src/\0components",
            "",
            "   ",
            ".",
            "src/comp onents",
            "src/컴포넌트",
            None,
        ],
    )
    def test_rejects_unsafe_paths(self, value) -> None:
        assert normalize_directory(value) is None

    @pytest.mark.parametrize("value", ["src", "./src//components/", "a/b.c/d-e_f", "src///ui"])
    def test_is_idempotent(self, value: str) -> None:
        once = normalize_directory(value)

        assert once is not None
        assert normalize_directory(once) == once

    def test_returns_repo_path_with_segments(self) -> None:
        path = normalize_directory("src/components")

        assert isinstance(path, RepoPath)
        assert path.segments == ("src", "components")


class TestBuildFilePath:
    def test_creates_safe_commit_paths(self) -> None:
        assert build_file_path("src/components", "Button.tsx") == "src/components/Button.tsx"
        assert build_file_path("./src//components", "Button.css") == "src/components/Button.css"

    @pytest.mark.parametrize(
        "file_name",
        ["../Button.tsx", "nested/Button.tsx", "nested\\Button.tsx", "", "Bu tton.tsx", "."],
    )
    def test_rejects_invalid_file_names(self, file_name: str) -> None:
        assert build_file_path("src/components", file_name) is None

    def test_rejects_invalid_directory(self) -> None:
        assert build_file_path("../src", "Button.tsx") is None
        assert build_file_path("", "Button.tsx") is None


class TestIsSafeRepoPath:
    def test_server_side_check_uses_same_rules(self) -> None:
        assert is_safe_repo_path("src/components/Button.tsx") is True
        assert is_safe_repo_path("README.md") is True
        assert is_safe_repo_path("/etc/passwd") is False
        assert is_safe_repo_path("src/../../secrets") is False
