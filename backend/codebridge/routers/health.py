from fastapi import APIRouter, Depends
from datetime import datetime

from ..core.config import settings
from ..services.sandbox import PreviewSessionManager, get_preview_session

router = APIRouter(tags=["health"])


@router.get("/test")
async def test_endpoint(session: PreviewSessionManager = Depends(get_preview_session)):
    """서버 상태 + 미리보기/OAuth 사용 가능 여부"""
    return {
        "message": "Codebridge backend is running",
        "timestamp": datetime.now().isoformat(),
        "isSandboxSupported": session.is_supported,
        "previewStatus": session.state.status.value,
        "oauthConfigured": settings.oauth_configured,
    }
