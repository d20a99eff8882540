from codebridge.main import app  # uvicorn main:app

if __name__ == "__main__":
    import uvicorn
    from codebridge.core.config import settings, setup_logging
    from codebridge.services.sandbox import is_sandbox_supported

    logger = setup_logging()

    logger.info(f"🚀 Codebridge backend starting on http://localhost:{settings.PORT}")
    logger.info(f"📤 GitHub push endpoint: http://localhost:{settings.PORT}/api/github-push")
    if is_sandbox_supported():
        logger.info(f"🖥️ Live preview enabled (sandbox port {settings.PREVIEW_PORT})")
    else:
        logger.warning("⚠️ Live preview disabled: Node.js/npm not found or PREVIEW_ENABLED=false")
    if not settings.oauth_configured:
        logger.warning("⚠️ GitHub OAuth is not configured; clients must supply their own tokens")

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=False,
        log_level=settings.LOG_LEVEL.lower(),
    )
