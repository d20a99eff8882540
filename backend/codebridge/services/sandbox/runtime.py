"""
Sandbox runtime

미리보기용 격리 작업 디렉토리와 그 안에서 실행되는 Node 프로세스들을 관리한다.
- boot(): 작업 디렉토리 생성 + 포트 감시 시작
- mount()/write_file(): FileSystemTree 또는 단일 파일 쓰기
- spawn(): 작업 디렉토리에서 npm 등 프로세스 실행 (PORT 환경변수 주입)
- on("server-ready"): 샌드박스 포트가 열리면 (port, url) 로 알림
"""

import asyncio
import logging
import os
import platform
import shutil
import signal
import tempfile
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional

from ...core.config import settings
from ...core.exceptions import SandboxError
from ..repo_path import normalize_directory

logger = logging.getLogger("codebridge.preview")

SERVER_READY = "server-ready"

_IS_WINDOWS = platform.system() == "Windows"


class SandboxProcess:
    """샌드박스 안에서 실행 중인 프로세스 핸들 (stdout/stderr 병합)"""

    def __init__(self, process: asyncio.subprocess.Process, command: str, args: List[str]) -> None:
        self._process = process
        self.command = command
        self.args = args

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    def is_running(self) -> bool:
        return self._process.returncode is None

    async def wait(self) -> int:
        return await self._process.wait()

    async def output(self) -> AsyncIterator[str]:
        stream = self._process.stdout
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                break
            yield line.decode(errors="replace").rstrip("\n")

    def _signal(self, force: bool) -> None:
        if _IS_WINDOWS:
            if force:
                self._process.kill()
            else:
                self._process.terminate()
            return
        # npm 이 띄운 vite 자식 프로세스까지 같이 종료 (start_new_session=True 로 실행됨)
        os.killpg(os.getpgid(self._process.pid), signal.SIGKILL if force else signal.SIGTERM)

    async def kill(self, timeout: float = 5.0) -> None:
        if self._process.returncode is not None:
            return
        label = f"{self.command} {' '.join(self.args)}"
        try:
            logger.info(f"🔴 Terminating process PID: {self.pid} ({label})")
            self._signal(force=False)
            try:
                await asyncio.wait_for(self._process.wait(), timeout=timeout)
                logger.info(f"✅ Process PID: {self.pid} terminated")
            except asyncio.TimeoutError:
                logger.warning(f"⚠️ Process PID: {self.pid} did not terminate, force killing...")
                self._signal(force=True)
                await self._process.wait()
        except ProcessLookupError:
            logger.info(f"Process PID: {self.pid} already terminated")


class SandboxRuntime:
    def __init__(
        self,
        workdir: Path,
        host: Optional[str] = None,
        port: Optional[int] = None,
        poll_interval: float = 0.5,
    ) -> None:
        self.workdir = workdir
        self.host = host or settings.PREVIEW_HOST
        self.port = port or settings.PREVIEW_PORT
        self.poll_interval = poll_interval
        self._listeners: Dict[str, List[Callable[..., Any]]] = {}
        self._watch_task: Optional[asyncio.Task] = None
        self._serving = False

    @classmethod
    async def boot(cls, root: Optional[Path] = None, **kwargs: Any) -> "SandboxRuntime":
        base = root or settings.PREVIEW_ROOT
        base.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix="preview-", dir=base))
        runtime = cls(workdir, **kwargs)
        runtime._watch_task = asyncio.create_task(runtime._watch_port())
        logger.info(f"🚀 Sandbox runtime booted at {workdir}")
        return runtime

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    # --- events ---

    def on(self, event: str, listener: Callable[..., Any]) -> Callable[[], None]:
        self._listeners.setdefault(event, []).append(listener)
        if event == SERVER_READY:
            # 재시작된 서버가 폴링 사이에 포트를 다시 열어도 새 리스너는 알림을 받아야 함
            self._serving = False

        def unsubscribe() -> None:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"'{event}' listener failed: {e}")

    # --- filesystem ---

    def _resolve(self, relative_path: str) -> Path:
        safe = normalize_directory(relative_path)
        if safe is None or safe != relative_path:
            raise SandboxError(f"Invalid sandbox path: {relative_path}")
        return self.workdir.joinpath(*safe.segments)

    def _write_tree(self, tree: Mapping[str, Any], prefix: str = "") -> None:
        for name, node in tree.items():
            relative = f"{prefix}/{name}" if prefix else name
            target = self._resolve(relative)
            if "directory" in node:
                target.mkdir(parents=True, exist_ok=True)
                self._write_tree(node["directory"], relative)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(node["file"]["contents"], encoding="utf-8")

    async def mount(self, tree: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self._write_tree, tree)

    async def write_file(self, relative_path: str, content: str) -> None:
        target = self._resolve(relative_path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)

    # --- processes ---

    async def spawn(self, command: str, args: List[str]) -> SandboxProcess:
        env = os.environ.copy()
        env.update({
            "BROWSER": "none",
            "CI": "true",
            "PORT": str(self.port),
        })
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=self.workdir,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=env,
            start_new_session=not _IS_WINDOWS,
        )
        logger.info(f"▶️ Spawned {command} {' '.join(args)} (PID: {process.pid})")
        return SandboxProcess(process, command, args)

    # --- server-ready detection ---

    async def _port_open(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=1.0
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def _watch_port(self) -> None:
        try:
            while True:
                is_open = await self._port_open()
                if is_open and not self._serving:
                    self._serving = True
                    logger.info(f"🌐 Sandbox server ready at {self.url}")
                    self._emit(SERVER_READY, self.port, self.url)
                elif not is_open:
                    self._serving = False
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            return

    async def teardown(self, remove_files: bool = True) -> None:
        if self._watch_task:
            self._watch_task.cancel()
            self._watch_task = None
        self._listeners.clear()
        if remove_files:
            await asyncio.to_thread(shutil.rmtree, self.workdir, True)
        logger.info(f"🧹 Sandbox runtime at {self.workdir} released")
