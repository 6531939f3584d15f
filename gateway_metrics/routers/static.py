"""
Static asset router. Serves the dashboard UI from a directory.

  • "/" maps to index.html.
  • A path that resolves outside the root is refused with 403 before
    anything is opened.
  • GET and HEAD serve files; write methods get 405.
  • A missing file falls back to index.html (single-page-app routing),
    or 404 if there is no index either.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse

from gateway_metrics.core.errors import ForbiddenError, MethodNotAllowedError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Static"])

INDEX_DOCUMENT = "index.html"

MIME_TYPES: dict[str, str] = {
    ".html": "text/html; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".js": "application/javascript; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".ico": "image/x-icon",
}


def resolve_static_path(root: Path, url_path: str) -> Path:
    """
    Map a request path to a file under ``root``.

    Raises:
        ForbiddenError: the path escapes ``root``.
        NotFoundError:  neither the file nor the index document exists.
    """
    root = root.resolve()
    relative = url_path.lstrip("/") or INDEX_DOCUMENT
    candidate = (root / relative).resolve()

    if not candidate.is_relative_to(root):
        logger.warning("Refused static path outside root: %r", url_path)
        raise ForbiddenError()

    if candidate.is_file():
        return candidate

    index = root / INDEX_DOCUMENT
    if index.is_file():
        return index
    raise NotFoundError()


@router.api_route("/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
async def serve_static(request: Request, path: str) -> FileResponse:
    file_path = resolve_static_path(request.app.state.dashboard_dir, path)
    media_type = MIME_TYPES.get(file_path.suffix, "application/octet-stream")
    return FileResponse(file_path, media_type=media_type)


# Every non-/api/ request lands here; anything but a read is refused.
@router.api_route(
    "/{path:path}",
    methods=["POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def reject_write(path: str) -> None:
    raise MethodNotAllowedError()
