"""Entry point for running xoduel via ``python -m xoduel``."""

from __future__ import annotations

import uvicorn

from .config import get_settings


def main() -> None:
    """Start the FastAPI-powered xoduel server."""

    settings = get_settings()
    uvicorn.run(
        "xoduel.gateway:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
