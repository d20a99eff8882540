from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union


class SandboxStatus(str, Enum):
    IDLE = "idle"
    BOOTING = "booting"
    MOUNTING = "mounting"
    INSTALLING = "installing"
    STARTING = "starting"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class Idle:
    status: ClassVar[SandboxStatus] = SandboxStatus.IDLE


@dataclass(frozen=True)
class Booting:
    status: ClassVar[SandboxStatus] = SandboxStatus.BOOTING


@dataclass(frozen=True)
class Mounting:
    status: ClassVar[SandboxStatus] = SandboxStatus.MOUNTING


@dataclass(frozen=True)
class Installing:
    status: ClassVar[SandboxStatus] = SandboxStatus.INSTALLING


@dataclass(frozen=True)
class Starting:
    status: ClassVar[SandboxStatus] = SandboxStatus.STARTING


@dataclass(frozen=True)
class Ready:
    url: str
    status: ClassVar[SandboxStatus] = SandboxStatus.READY


@dataclass(frozen=True)
class Failed:
    message: str
    status: ClassVar[SandboxStatus] = SandboxStatus.ERROR


SessionState = Union[Idle, Booting, Mounting, Installing, Starting, Ready, Failed]


def describe(state: SessionState, supported: bool) -> Dict[str, Any]:
    preview_url: Optional[str] = state.url if isinstance(state, Ready) else None
    error: Optional[str] = state.message if isinstance(state, Failed) else None
    return {
        "status": state.status.value,
        "previewUrl": preview_url,
        "error": error,
        "isSupported": supported,
    }
