import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from codebridge.routers import github, health, preview
from codebridge.services.sandbox.runtime import SERVER_READY
from codebridge.services.sandbox.session import PreviewSessionManager

PREVIEW_URL = "http://localhost:3002/"


@pytest.fixture
def app() -> FastAPI:
    # main.py 는 로깅/lifespan 까지 초기화하므로 라우터만 직접 마운트
    test_app = FastAPI()
    test_app.include_router(health.router, prefix="/api")
    test_app.include_router(github.router, prefix="/api")
    test_app.include_router(preview.router, prefix="/api")
    return test_app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


class FakeProcess:
    def __init__(self, exit_code: int = 0, lines: Optional[List[str]] = None, exits: bool = True):
        self.exit_code = exit_code
        self.lines = lines or []
        self.kill_count = 0
        self._exited = asyncio.Event()
        if exits:
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.exit_code

    async def output(self):
        for line in self.lines:
            yield line

    async def kill(self) -> None:
        self.kill_count += 1
        self._exited.set()


class FakeRuntime:
    """디스크/Node 없이 SandboxRuntime 인터페이스를 흉내낸다"""

    def __init__(
        self,
        install_exit: int = 0,
        emit_ready: bool = True,
        dev_exit: Optional[int] = None,
        mount_gate: Optional[asyncio.Event] = None,
        install_hangs: bool = False,
    ):
        self.install_exit = install_exit
        self.mount_gate = mount_gate
        self.install_hangs = install_hangs
        self.install_processes: List[FakeProcess] = []
        self.emit_ready = emit_ready
        self.dev_exit = dev_exit
        self.mounted: List[Dict[str, Any]] = []
        self.written: List[tuple] = []
        self.spawned: List[List[str]] = []
        self.dev_processes: List[FakeProcess] = []
        self.torn_down = False
        self._listeners: Dict[str, List[Callable[..., Any]]] = {}

    def on(self, event: str, listener: Callable[..., Any]) -> Callable[[], None]:
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self._listeners[event].remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener(*args)

    async def mount(self, tree: Dict[str, Any]) -> None:
        if self.mount_gate is not None:
            await self.mount_gate.wait()
        self.mounted.append(tree)

    async def write_file(self, path: str, content: str) -> None:
        self.written.append((path, content))

    async def spawn(self, command: str, args: List[str]) -> FakeProcess:
        self.spawned.append(list(args))
        if args == ["install"]:
            process = FakeProcess(
                exit_code=self.install_exit, lines=["added 42 packages"], exits=not self.install_hangs
            )
            self.install_processes.append(process)
            return process
        if self.dev_exit is not None:
            process = FakeProcess(exit_code=self.dev_exit, lines=["crash"])
        else:
            process = FakeProcess(exits=False, lines=["VITE ready"])
            if self.emit_ready:
                asyncio.get_running_loop().call_soon(self._emit, SERVER_READY, 3002, PREVIEW_URL)
        self.dev_processes.append(process)
        return process

    async def teardown(self, remove_files: bool = True) -> None:
        self.torn_down = True


class RecordingSession(PreviewSessionManager):
    def __init__(self, runtime: FakeRuntime, supported: bool = True, ready_timeout: float = 1.0):
        self.boot_count = 0
        self.history: List[str] = []

        async def factory() -> FakeRuntime:
            self.boot_count += 1
            return runtime

        super().__init__(
            runtime_factory=factory,
            is_supported=lambda: supported,
            ready_timeout=ready_timeout,
        )

    def _transition(self, state) -> None:
        self.history.append(state.status.value)
        super()._transition(state)


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def session(fake_runtime: FakeRuntime) -> RecordingSession:
    return RecordingSession(fake_runtime)
