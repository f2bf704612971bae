"""Serve the bundled single-page frontend next to the API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException
from starlette.responses import Response
from starlette.types import Scope

LOGGER = logging.getLogger(__name__)

__all__ = ["FrontendFiles", "mount_frontend"]


class FrontendFiles(StaticFiles):
    """Static files with an ``index.html`` fallback for client-side routes.

    Unknown paths under ``api/`` still 404 so API typos are not masked by
    the frontend shell.
    """

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except HTTPException as exc:
            if exc.status_code != 404 or path == "api" or path.startswith("api/"):
                raise
            return await super().get_response("index.html", scope)


def mount_frontend(app: FastAPI, public_dir: Optional[Path]) -> bool:
    """Mount *public_dir* at ``/`` when it holds an ``index.html``."""

    if public_dir is None:
        return False
    root = Path(public_dir).expanduser().resolve()
    if not (root / "index.html").is_file():
        LOGGER.info("No frontend at %s; serving the API only", root)
        return False
    app.mount("/", FrontendFiles(directory=root, html=True), name="frontend")
    LOGGER.info("Serving frontend from %s", root)
    return True
