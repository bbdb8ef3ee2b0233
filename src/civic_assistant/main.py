"""
Main entry point for the civic assistant.
"""

import uvicorn

from civic_assistant.config import get_settings


def main() -> None:
    """Run the civic assistant API."""
    settings = get_settings()

    # Sessions and locks live in-process unless Redis is enabled
    workers = settings.api.workers if settings.redis.enabled else 1

    uvicorn.run(
        "civic_assistant.api.app:app",
        host=settings.api.host,
        port=settings.api.port,
        workers=workers if not settings.api.debug else 1,
        reload=settings.api.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
