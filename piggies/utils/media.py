# piggies/utils/media.py
# -----------------------------------------------------------------------------
# Локальное объектное хранилище медиа: выбор MEDIA_ROOT, публичная база URL,
# ключ хранилища -> URL / локальный путь, удаление объектов, а также sniff
# форматов по magic bytes (JPEG/PNG/WebP/GIF/BMP/HEIC, MP4/WebM).
#
# Ключ хранилища - относительный путь внутри MEDIA_ROOT, например
# "photos/2026/10/<random>.jpg". В БД храним только ключи, не URL.
#
# Статикой по /media/<key> раздаются только фото анкет (photos/). Альбомы,
# медиа чатов и снапы отдаются через авторизованные маршруты API.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import Request

log = logging.getLogger(__name__)

STORAGE_KINDS = ("photos", "albums", "messages", "snaps")
PUBLIC_KINDS = ("photos",)


# ===== MEDIA ROOT ==============================================================

def pick_media_root() -> Path:
    """
    Выбираем корень хранения:
      1) PIGGIES_MEDIA_ROOT (в проде укажи /data/uploads)
      2) иначе пробуем /data/uploads
      3) если нет прав/папки - локальный ./var/uploads
    """
    primary = Path(os.getenv("PIGGIES_MEDIA_ROOT") or "/data/uploads")
    try:
        primary.mkdir(parents=True, exist_ok=True)
        return primary
    except OSError:
        fallback = Path(os.path.abspath("./var/uploads"))
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


MEDIA_ROOT: Path = pick_media_root()


def ensure_dir(p: Path) -> Path:
    p.mkdir(parents=True, exist_ok=True)
    return p


# ===== Публичная база URL ======================================================

def public_base_url(request: Optional[Request] = None) -> str:
    """
    Абсолютная база для публичных ссылок:
      1) PUBLIC_BASE_URL из окружения (рекомендуется)
      2) X-Forwarded-Proto/Host (за обратным прокси)
      3) request.url.scheme/netloc
    Без запроса и без env - пустая строка (ссылки будут относительными).
    """
    base = os.getenv("PUBLIC_BASE_URL")
    if base:
        return base.rstrip("/")
    if request is None:
        return ""

    proto = (request.headers.get("x-forwarded-proto") or request.url.scheme).strip()
    host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc).strip()
    return f"{proto}://{host}".rstrip("/")


def is_external_url(key: Optional[str]) -> bool:
    s = str(key or "").strip()
    return s.startswith("http://") or s.startswith("https://")


def key_kind(key: Optional[str]) -> Optional[str]:
    """Поддиректория хранилища ('photos', 'albums', ...) или None для чужих ключей."""
    if not key or is_external_url(key):
        return None
    head = str(key).strip().lstrip("/").split("/", 1)[0]
    return head if head in STORAGE_KINDS else None


def storage_url(key: Optional[str], base: Optional[str] = None) -> Optional[str]:
    """
    Ключ хранилища -> публичный URL вида <base>/media/<key>.
    Абсолютные http(s) (внешние ссылки, GIF-провайдер) возвращаем как есть.
    Для приватных поддиректорий публичной ссылки нет - None.
    """
    if not key:
        return None
    s = str(key).strip()
    if is_external_url(s):
        return s
    if key_kind(s) not in PUBLIC_KINDS:
        return None
    if base is None:
        base = public_base_url()
    return f"{base}/media/{s.lstrip('/')}"


def api_url(path: str, base: Optional[str] = None) -> str:
    """Абсолютная ссылка на маршрут API (медиа, которое отдаётся с проверкой доступа)."""
    if base is None:
        base = public_base_url()
    return f"{base}{path}"


# ===== Ключ -> локальный путь в MEDIA_ROOT =====================================

def key_to_local_path(key: Optional[str]) -> Optional[Path]:
    """
    Преобразует ключ в путь внутри MEDIA_ROOT. Ключи вне известных
    поддиректорий и попытки выйти за MEDIA_ROOT ("../") дают None.
    """
    if not key:
        return None
    rel = str(key).strip().lstrip("/")
    if rel.startswith("media/"):
        rel = rel[len("media/"):]
    if not any(rel.startswith(kind + "/") for kind in STORAGE_KINDS):
        return None

    local = MEDIA_ROOT / rel
    try:
        local.resolve().relative_to(MEDIA_ROOT.resolve())
    except ValueError:
        return None
    return local


def delete_stored(key: Optional[str]) -> bool:
    """
    Удаляет объект из хранилища. Возвращает True, если удалили.
    Ошибки ФС логируем и не пробрасываем: удаление медиа - побочный шаг.
    """
    p = key_to_local_path(key)
    if p is None or not p.exists():
        return False
    try:
        p.unlink()
        return True
    except OSError:
        log.exception("media: failed to delete %s", key)
        return False


# ===== Sniff / magic bytes =====================================================

def sniff_image_format(head: bytes) -> Optional[str]:
    """
    Возвращает код формата по magic bytes: 'jpeg', 'png', 'gif', 'webp', 'bmp', 'heic'.
    Если не похоже на изображение - None.
    """
    if len(head) < 12:
        head = head + b"\x00" * (12 - len(head))

    if head[:3] == b"\xFF\xD8\xFF":
        return "jpeg"
    if head[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if head[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    if head[:2] == b"BM":
        return "bmp"
    for brand in (b"ftypheic", b"ftypheif", b"ftypmif1", b"ftypmsf1", b"ftyphevc"):
        if brand in head[:64]:
            return "heic"
    return None


def sniff_video_format(head: bytes) -> Optional[str]:
    """'mp4' (ISO BMFF, не HEIC), 'webm' (EBML) или None."""
    if head[:4] == b"\x1a\x45\xdf\xa3":
        return "webm"
    if head[4:8] == b"ftyp" and sniff_image_format(head) is None:
        return "mp4"
    return None


def ext_for_format(fmt: str) -> str:
    return {
        "jpeg": ".jpg",
        "png": ".png",
        "gif": ".gif",
        "webp": ".webp",
        "bmp": ".bmp",
        "heic": ".heic",
        "mp4": ".mp4",
        "webm": ".webm",
    }.get(fmt, ".bin")
