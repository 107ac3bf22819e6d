"""
Local development server: `python -m quipbox`.
"""

from __future__ import annotations

import uvicorn

from quipbox.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "quipbox.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
