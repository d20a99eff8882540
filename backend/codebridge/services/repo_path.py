"""
Repository path validation

커밋 대상 경로를 검증/정규화한다. GitHub 호출 전 서버 측 검증과
미리보기 샌드박스 파일 쓰기 모두 같은 규칙을 사용한다.
"""

import re
from typing import Optional, Tuple

SAFE_SEGMENT_RE = re.compile(r"[A-Za-z0-9._-]+")
_LEADING_DOT_SLASH_RE = re.compile(r"^\./+")
_REPEATED_SLASH_RE = re.compile(r"/{2,}")


class RepoPath(str):
    """검증을 통과한 안전한 상대 경로. normalize_directory / build_file_path 로만 생성한다."""

    @property
    def segments(self) -> Tuple[str, ...]:
        return tuple(self.split("/"))


def _is_safe_segment(segment: str) -> bool:
    return segment != "." and SAFE_SEGMENT_RE.fullmatch(segment) is not None


def normalize_directory(value: object) -> Optional[RepoPath]:
    """
    디렉토리 문자열을 정규화한다.

    - 앞뒤 공백 제거, 연속된 '/' 축약, 선행 './' 제거
    - 절대 경로, '..', 백슬래시, 널 바이트는 거부
    - 모든 세그먼트는 [A-Za-z0-9._-]+ 이어야 함

    규칙 위반 시 예외 대신 None 을 반환한다.
    """
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if "\\" in candidate or "\0" in candidate:
        return None
    candidate = _REPEATED_SLASH_RE.sub("/", candidate)
    candidate = _LEADING_DOT_SLASH_RE.sub("", candidate)
    if not candidate or candidate.startswith("/") or ".." in candidate:
        return None

    segments = [segment for segment in candidate.split("/") if segment]
    if not segments or not all(_is_safe_segment(segment) for segment in segments):
        return None
    return RepoPath("/".join(segments))


def build_file_path(directory: object, file_name: object) -> Optional[RepoPath]:
    if not isinstance(file_name, str) or not file_name:
        return None
    if "/" in file_name or "\\" in file_name or ".." in file_name:
        return None
    if not _is_safe_segment(file_name):
        return None

    safe_dir = normalize_directory(directory)
    if safe_dir is None:
        return None
    return RepoPath(f"{safe_dir}/{file_name}")


def is_safe_repo_path(path: object) -> bool:
    return normalize_directory(path) is not None
