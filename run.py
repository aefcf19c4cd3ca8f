import os

from nexgengit.logger import get_logger

logger = get_logger()


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    display_url = f"http://localhost:{port}"

    logger.info(f"Starting NexGenGit AI Review on {display_url} (binding to {host}:{port})")

    import uvicorn

    uvicorn.run(
        app="nexgengit.main:app",
        host=host,
        port=port,
        reload=os.getenv("RELOAD", "").lower() in {"1", "true", "yes", "on"},
        workers=1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
