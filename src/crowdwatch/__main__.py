"""Run the watcher with ``python -m crowdwatch``."""

import uvicorn

from crowdwatch.core.config import get_settings


def main() -> None:
    """Serve the application with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "crowdwatch.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
