# piggies/routers/upload.py
# Эндпоинты загрузки медиа:
#  • Фото анкеты   -> <MEDIA_ROOT>/photos/YYYY/MM/<random>.<ext>
#  • Фото альбомов -> <MEDIA_ROOT>/albums/YYYY/MM/<random>.<ext>
#  • Медиа в чат (фото/видео) -> <MEDIA_ROOT>/messages/YYYY/MM/<random>.<ext>
#  • Снапы (фото/видео)       -> <MEDIA_ROOT>/snaps/YYYY/MM/<random>.<ext>
# Ответ: {"storage_key": "<kind>/YYYY/MM/<name>", "url": ...}; url есть только у
# фото анкет, остальное отдаётся через авторизованные маршруты.
# Каждая загрузка записывается за пользователем (media_uploads): чужой ключ
# прикрепить нельзя.

from __future__ import annotations

import os
import secrets
from pathlib import Path

from fastapi import APIRouter, UploadFile, File, HTTPException, Request, Depends
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.services.moderation import require_not_moderated
from piggies.services.uploads import record_upload
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now
from piggies.utils.media import (
    MEDIA_ROOT,
    ensure_dir,
    public_base_url,
    storage_url,
    sniff_image_format,
    sniff_video_format,
    ext_for_format,
)

router = APIRouter()

# ===== Настройки лимитов =====================================================

# лимиты можно переопределить env-переменными MAX_UPLOAD_MB / MAX_VIDEO_UPLOAD_MB
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "10"))
MAX_VIDEO_UPLOAD_MB = int(os.getenv("MAX_VIDEO_UPLOAD_MB", "50"))
CHUNK_SIZE = 1024 * 1024  # 1MB


def _today_subdir() -> Path:
    """YYYY/MM - группируем помесячно."""
    now = utc_now()
    return Path(f"{now:%Y}/{now:%m}")


async def _read_head(file: UploadFile, size: int = 64 * 1024) -> bytes:
    """Читает head-байты и сохраняет их в file._head_bytes для последующей дозаписи."""
    head = await file.read(size)
    setattr(file, "_head_bytes", head)
    return head


def _unsupported(message: str) -> HTTPException:
    return HTTPException(status_code=415, detail={"code": "unsupported_media", "message": message})


def _pick_ext(head: bytes, allow_video: bool) -> tuple[str, int]:
    """Расширение и лимит в MB по magic bytes. Имя файла и content-type не доверяем."""
    fmt = sniff_image_format(head)
    if fmt:
        return ext_for_format(fmt), MAX_UPLOAD_MB
    if allow_video:
        fmt = sniff_video_format(head)
        if fmt:
            return ext_for_format(fmt), MAX_VIDEO_UPLOAD_MB
        raise _unsupported("Only images (JPEG, PNG, GIF, WebP, BMP, HEIC) and videos (MP4, WebM) are allowed")
    raise _unsupported("Only images (JPEG, PNG, GIF, WebP, BMP, HEIC) are allowed")


def _too_large(limit_mb: int) -> HTTPException:
    return HTTPException(
        status_code=413,
        detail={"code": "file_too_large", "message": f"File too large (>{limit_mb} MB)"},
    )


async def _write_streamed(file: UploadFile, dst: Path, limit_mb: int) -> None:
    """Пишет UploadFile в dst, контролируя общий размер; при превышении удаляет частичный файл."""
    limit_bytes = limit_mb * 1024 * 1024
    total = 0
    try:
        with dst.open("wb") as f:
            head = getattr(file, "_head_bytes", b"")
            if head:
                f.write(head)
                total += len(head)
                if total > limit_bytes:
                    raise _too_large(limit_mb)

            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > limit_bytes:
                    raise _too_large(limit_mb)
                f.write(chunk)
    except HTTPException:
        dst.unlink(missing_ok=True)
        raise
    finally:
        await file.close()


async def _store(
    request: Request, db: Session, user: User, file: UploadFile, kind: str, *, allow_video: bool,
) -> dict:
    head = await _read_head(file)
    if not head:
        raise HTTPException(status_code=400, detail={"code": "empty_file", "message": "File is empty"})
    ext, limit_mb = _pick_ext(head, allow_video)

    subdir = _today_subdir()
    dst_dir = ensure_dir(MEDIA_ROOT / kind / subdir)
    name = f"{secrets.token_hex(16)}{ext}"
    key = (Path(kind) / subdir / name).as_posix()

    await _write_streamed(file, dst_dir / name, limit_mb)
    record_upload(db, user, key, kind, utc_now())
    db.commit()
    return {"storage_key": key, "url": storage_url(key, public_base_url(request))}


# ===== Маршруты ===============================================================

@router.post("/upload/photo")
async def upload_profile_photo(
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_not_moderated(current_user, utc_now())
    return await _store(request, db, current_user, file, "photos", allow_video=False)


@router.post("/upload/album-photo")
async def upload_album_photo(
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_not_moderated(current_user, utc_now())
    return await _store(request, db, current_user, file, "albums", allow_video=False)


@router.post("/upload/message-media")
async def upload_message_media(
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_not_moderated(current_user, utc_now())
    return await _store(request, db, current_user, file, "messages", allow_video=True)


@router.post("/upload/snap")
async def upload_snap(
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_not_moderated(current_user, utc_now())
    return await _store(request, db, current_user, file, "snaps", allow_video=True)
