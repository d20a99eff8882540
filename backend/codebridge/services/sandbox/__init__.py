from .capability import is_sandbox_supported
from .runtime import SandboxProcess, SandboxRuntime
from .session import PreviewSessionManager, get_preview_session, preview_session
from .state import SandboxStatus, SessionState

__all__ = [
    "is_sandbox_supported",
    "SandboxProcess",
    "SandboxRuntime",
    "PreviewSessionManager",
    "get_preview_session",
    "preview_session",
    "SandboxStatus",
    "SessionState",
]
