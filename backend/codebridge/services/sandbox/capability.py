import functools
import logging
import platform
import shutil

from ...core.config import settings

logger = logging.getLogger("codebridge.preview")

NPM_COMMAND = "npm.cmd" if platform.system() == "Windows" else "npm"
NODE_COMMAND = "node.exe" if platform.system() == "Windows" else "node"


def _detect() -> bool:
    if not settings.PREVIEW_ENABLED:
        return False
    return shutil.which(NODE_COMMAND) is not None and shutil.which(NPM_COMMAND) is not None


@functools.lru_cache(maxsize=None)
def is_sandbox_supported() -> bool:
    """Node.js 와 npm 이 있어야 미리보기 샌드박스를 띄울 수 있음. 프로세스당 한 번만 검사"""
    try:
        supported = _detect()
    except Exception as e:
        logger.warning(f"⚠️ Sandbox capability check failed: {e}")
        return False
    logger.info(f"Sandbox supported: {supported}")
    return supported
