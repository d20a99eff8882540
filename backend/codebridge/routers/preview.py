from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from ..core.exceptions import ServiceException
from ..services.preview_template import (
    PreviewTemplateService,
    extract_react_preview_files,
    get_template_service,
    placeholder_component,
    preview_path_to_file_name,
)
from ..services.sandbox import PreviewSessionManager, get_preview_session, preview_session

router = APIRouter(prefix="/preview", tags=["preview"])

logger = logging.getLogger("codebridge.preview")


class CodeFile(BaseModel):
    name: str
    content: str = ""


class PreviewMountRequest(BaseModel):
    componentName: str
    componentCode: Optional[str] = None
    componentCss: Optional[str] = None
    # 변환 결과 전체를 넘기면 React 코드/CSS 를 골라서 사용
    files: Optional[List[CodeFile]] = None


class PreviewFilesRequest(BaseModel):
    files: Dict[str, str]


@router.get("/status")
async def preview_status(session: PreviewSessionManager = Depends(get_preview_session)):
    return session.snapshot()


@router.post("/mount")
async def mount_preview(
    request: PreviewMountRequest,
    session: PreviewSessionManager = Depends(get_preview_session),
    templates: PreviewTemplateService = Depends(get_template_service),
):
    code, css = request.componentCode, request.componentCss
    # 샌드박스 경로 → 변환 결과 파일 이름. 클라이언트가 에디터 변경분을 PUT /files 로 보낼 때 사용
    file_map: Dict[str, str] = {}
    if request.files is not None:
        conversion = [f.model_dump() for f in request.files]
        extracted = extract_react_preview_files(conversion, request.componentName)
        file_map = preview_path_to_file_name(conversion, request.componentName)
        code = code or extracted["componentCode"]
        css = css or extracted["componentCss"]
    try:
        tree = templates.build_preview_project(
            request.componentName,
            code or placeholder_component(request.componentName),
            css or f"/* {request.componentName} */",
        )
    except ServiceException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    await session.boot_and_mount(tree)
    return {**session.snapshot(), "fileMap": file_map}


@router.put("/files")
async def write_preview_files(
    request: PreviewFilesRequest,
    session: PreviewSessionManager = Depends(get_preview_session),
):
    try:
        written = await session.write_files(request.files)
    except ServiceException as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"written": written}


@router.post("/stop")
async def stop_preview(session: PreviewSessionManager = Depends(get_preview_session)):
    try:
        await session.stop()
        return {"success": True, "message": "Preview dev server stopped"}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to stop preview: {str(e)}")


@router.websocket("/logs")
async def preview_logs(ws: WebSocket):
    await ws.accept()
    queue = preview_session.subscribe()
    try:
        for msg in preview_session.get_buffer():
            await ws.send_json({"type": "log", **msg})
        while True:
            msg: Dict[str, Any] = await queue.get()
            await ws.send_json({"type": "log", **msg})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"Preview log stream closed: {e}")
        try:
            await ws.close(code=1011)
        except RuntimeError:
            pass
    finally:
        preview_session.unsubscribe(queue)
