"""Run the API under uvicorn: ``exam-paper-api`` or ``python -m exam_paper.api.server``.

Listens on ``HOST``/``PORT`` (default 0.0.0.0:5000).
"""
from __future__ import annotations

import uvicorn

from . import settings


def main() -> None:
    uvicorn.run("exam_paper.api.app:app", host=settings.api_host(), port=settings.api_port())


if __name__ == "__main__":
    main()
