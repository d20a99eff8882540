import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from ...core.config import settings
from ...core.exceptions import (
    SandboxError,
    SandboxProcessError,
    SandboxTimeoutError,
    SandboxUnsupportedError,
)
from ..preview_template import flatten_file_system_tree
from .capability import NPM_COMMAND, is_sandbox_supported
from .runtime import SERVER_READY, SandboxProcess, SandboxRuntime
from .state import (
    Booting,
    Failed,
    Idle,
    Installing,
    Mounting,
    Ready,
    SessionState,
    Starting,
    describe,
)

logger = logging.getLogger("codebridge.preview")

RuntimeFactory = Callable[[], Awaitable[SandboxRuntime]]


class _MountAborted(Exception):
    """진행 중이던 mount 가 stop()/shutdown() 으로 중단됨"""


class PreviewSessionManager:
    """
    미리보기 세션 상태 머신

    idle → booting → mounting → installing → starting → ready, 모든 단계에서 error 로 전이 가능.
    샌드박스 런타임은 한 번 부팅한 뒤 재사용하고, dev 서버 프로세스는 동시에 하나만 유지한다.
    """

    def __init__(
        self,
        runtime_factory: Optional[RuntimeFactory] = None,
        is_supported: Optional[Callable[[], bool]] = None,
        ready_timeout: Optional[float] = None,
    ) -> None:
        self._runtime_factory = runtime_factory or SandboxRuntime.boot
        self._is_supported = is_supported or is_sandbox_supported
        self.ready_timeout = settings.PREVIEW_READY_TIMEOUT if ready_timeout is None else ready_timeout
        self._runtime: Optional[SandboxRuntime] = None
        self._dev_process: Optional[SandboxProcess] = None
        self._install_process: Optional[SandboxProcess] = None
        self._drain_task: Optional[asyncio.Task] = None
        # stop() 마다 증가. mount 는 시작 시점 값과 다르면 더 진행하지 않는다
        self._generation = 0
        self._last_written: Dict[str, str] = {}
        self._state: SessionState = Idle()
        self._lock = asyncio.Lock()
        self._subscribers: Set[asyncio.Queue] = set()
        self._buffer: List[Dict[str, Any]] = []
        self._buffer_limit: int = 500

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_supported(self) -> bool:
        return self._is_supported()

    @property
    def preview_url(self) -> Optional[str]:
        return self._state.url if isinstance(self._state, Ready) else None

    def snapshot(self) -> Dict[str, Any]:
        return describe(self._state, self.is_supported)

    def _transition(self, state: SessionState) -> None:
        if isinstance(state, Failed):
            logger.error(f"❌ Preview {self._state.status.value} → error: {state.message}")
        else:
            logger.info(f"🔄 Preview {self._state.status.value} → {state.status.value}")
        self._state = state

    async def boot_and_mount(self, tree: Mapping[str, Any]) -> SessionState:
        if not self.is_supported:
            self._transition(Failed(SandboxUnsupportedError().message))
            return self._state

        # 한 번에 하나의 mount 만 진행
        async with self._lock:
            generation = self._generation
            try:
                url = await self._boot_and_mount(tree, generation)
            except _MountAborted:
                logger.info("⏹️ Preview mount aborted by stop")
            except SandboxError as e:
                if generation == self._generation:
                    self._transition(Failed(e.message))
            except Exception as e:
                logger.exception("Preview session failed")
                if generation == self._generation:
                    self._transition(Failed(str(e) or "Sandbox failed to start"))
            else:
                self._transition(Ready(url))
        return self._state

    def _check_current(self, generation: int) -> None:
        if generation != self._generation:
            raise _MountAborted()

    async def _boot_and_mount(self, tree: Mapping[str, Any], generation: int) -> str:
        runtime = self._runtime
        if runtime is None:
            self._transition(Booting())
            runtime = await self._runtime_factory()
            self._runtime = runtime
            self._check_current(generation)

        await self._stop_dev_server()

        self._check_current(generation)
        self._transition(Mounting())
        await runtime.mount(tree)
        self._last_written = flatten_file_system_tree(tree)

        self._check_current(generation)
        self._transition(Installing())
        install = await runtime.spawn(NPM_COMMAND, ["install"])
        self._install_process = install
        try:
            self._check_current(generation)
            install_drain = asyncio.create_task(self._drain(install, "install"))
            exit_code = await install.wait()
            await install_drain
        finally:
            if generation != self._generation:
                await install.kill()
            self._install_process = None
        self._check_current(generation)
        if exit_code != 0:
            raise SandboxProcessError(f"npm install failed with code {exit_code}")

        self._transition(Starting())
        ready: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_ready(port: int, url: str) -> None:
            if not ready.done():
                ready.set_result(url)

        unsubscribe = runtime.on(SERVER_READY, on_ready)
        exited: Optional[asyncio.Task] = None
        try:
            dev = await runtime.spawn(NPM_COMMAND, ["run", "dev"])
            if generation != self._generation:
                await dev.kill()
                raise _MountAborted()
            self._dev_process = dev
            self._drain_task = asyncio.create_task(self._drain(dev, "dev"))
            exited = asyncio.create_task(dev.wait())

            done, _ = await asyncio.wait(
                {ready, exited}, timeout=self.ready_timeout, return_when=asyncio.FIRST_COMPLETED
            )
            self._check_current(generation)
            if ready in done:
                return ready.result()
            if exited in done:
                raise SandboxProcessError(f"Dev server exited with code {exited.result()}")
            raise SandboxTimeoutError(self.ready_timeout)
        finally:
            unsubscribe()
            if exited is not None and not exited.done():
                exited.cancel()

    async def write_files(self, files: Mapping[str, str]) -> List[str]:
        """마지막으로 쓴 내용과 달라진 파일만 샌드박스에 쓴다"""
        runtime = self._runtime
        if runtime is None:
            return []

        changed = {
            path: content
            for path, content in files.items()
            if path not in self._last_written or self._last_written[path] != content
        }
        if not changed:
            return []

        for path, content in changed.items():
            await runtime.write_file(path, content)
            self._last_written[path] = content
        logger.debug(f"preview files updated: {list(changed)}")
        return list(changed)

    async def _stop_dev_server(self) -> None:
        process = self._dev_process
        self._dev_process = None
        if process is not None:
            await process.kill()
        if self._drain_task:
            self._drain_task.cancel()
            self._drain_task = None

    async def _abort_pending(self) -> None:
        # 진행 중인 mount 는 다음 단계로 넘어가기 전에 중단됨
        self._generation += 1
        install = self._install_process
        if install is not None:
            await install.kill()

    async def stop(self) -> None:
        """dev 서버만 종료. 런타임은 다음 mount 에서 재사용"""
        await self._abort_pending()
        await self._stop_dev_server()
        self._transition(Idle())

    async def shutdown(self) -> None:
        await self._abort_pending()
        await self._stop_dev_server()
        runtime = self._runtime
        self._runtime = None
        self._last_written = {}
        if runtime is not None:
            await runtime.teardown()
        self._state = Idle()

    # --- dev 서버 로그 (관찰만 하고 파싱하지 않음) ---

    async def _drain(self, process: SandboxProcess, stream_name: str) -> None:
        try:
            async for text in process.output():
                message = {
                    "time": int(asyncio.get_running_loop().time() * 1000),
                    "stream": stream_name,
                    "text": text,
                }
                self._buffer.append(message)
                if len(self._buffer) > self._buffer_limit:
                    self._buffer = self._buffer[-self._buffer_limit :]
                for q in list(self._subscribers):
                    q.put_nowait(message)
        except asyncio.CancelledError:
            return

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers.discard(q)

    def get_buffer(self) -> List[Dict[str, Any]]:
        return list(self._buffer)


preview_session = PreviewSessionManager()


def get_preview_session() -> PreviewSessionManager:
    return preview_session
