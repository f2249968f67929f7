import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from app.core.config import settings
from app.core.dependencies import get_export_dir
from app.services.exporter import GENERATED_FILENAME_RE

router = APIRouter(tags=["downloads"])
logger = logging.getLogger(__name__)

MANAGER_PAGE = "coupon-manager.html"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _public_dir() -> Path:
    return Path(settings.public_dir)


def _delete_export(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
        logger.info("export_file_deleted", extra={"export_file": path.name})
    except OSError as exc:
        logger.warning("export_file_delete_failed", extra={"export_file": path.name, "error": str(exc)})


def _resolve_inside(directory: Path, filename: str) -> Path | None:
    if Path(filename).name != filename:
        return None
    candidate = (directory / filename).resolve()
    if candidate.parent != directory.resolve() or not candidate.is_file():
        return None
    return candidate


@router.get("/", include_in_schema=False)
@router.get(f"/{MANAGER_PAGE}", include_in_schema=False)
def manager_page() -> FileResponse:
    page = _resolve_inside(_public_dir(), MANAGER_PAGE)
    if page is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileResponse(page, media_type="text/html")


@router.get("/{filename}", include_in_schema=False)
def download_file(filename: str, export_dir: Path = Depends(get_export_dir)) -> FileResponse:
    """Send a generated export once, removing it afterwards; other names fall back to public assets."""
    if GENERATED_FILENAME_RE.fullmatch(filename):
        export = _resolve_inside(export_dir, filename)
        if export is not None:
            return FileResponse(
                export,
                media_type=XLSX_MEDIA_TYPE,
                filename=filename,
                background=BackgroundTask(_delete_export, export),
            )

    asset = _resolve_inside(_public_dir(), filename)
    if asset is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileResponse(asset)
