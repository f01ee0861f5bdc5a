"""Run the face gate with uvicorn: ``python -m medirunner``."""

from __future__ import annotations

import uvicorn

from medirunner.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("medirunner.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
