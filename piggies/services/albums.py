# piggies/services/albums.py
# -----------------------------------------------------------------------------
# Приватные альбомы и гранты доступа к ним.
#
# Точка контроля доступа - is_grant_effective(grant, now): проверяется на
# каждом просмотре. Файлы фото отдаются только маршрутом
# GET /api/albums/photos/{id}/file, который проверяет доступ на каждом запросе
# (photo_for_viewer), поэтому отозванный грант закрывает и уже выданные ссылки.
# Альбом по умолчанию создаётся лениво и идемпотентно (get-or-create),
# уникальность обеспечивает private_albums.default_owner_id.
#
# Уведомление о шаринге (сообщение album_share + push) - отдельный шаг
# после commit гранта, см. announce_album_share().
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from piggies.models.album import PrivateAlbum, AlbumPhoto, AlbumAccessGrant
from piggies.models.conversation import Conversation
from piggies.models.message import Message
from piggies.models.profile import Profile
from piggies.models.user import User
from piggies.services.errors import NotFound, PermissionDenied, ValidationFailed, InvalidState
from piggies.services.events import log_event, ALBUM_SHARED, ALBUM_ACCESS_REVOKED
from piggies.services.messaging import send_message
from piggies.services.moderation import require_not_moderated
from piggies.services.tiers import is_ultra, max_albums, FREE_MAX_ALBUM_PHOTOS
from piggies.services.uploads import require_own_upload
from piggies.utils.media import api_url
from piggies.utils.user import get_display_name

log = logging.getLogger(__name__)

DEFAULT_ALBUM_NAME = "Private Album"
MAX_ALBUM_NAME_LEN = 64
MAX_CAPTION_LEN = 280

EXPIRY_OPTIONS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}


# ===== Предикат доступа ========================================================

def is_grant_effective(grant: Optional[AlbumAccessGrant], now: datetime) -> bool:
    if grant is None or grant.is_revoked:
        return False
    return grant.expires_at is None or grant.expires_at > now


def _grant(db: Session, album_id: int, grantee_id: int) -> Optional[AlbumAccessGrant]:
    return (
        db.query(AlbumAccessGrant)
        .filter(AlbumAccessGrant.album_id == album_id, AlbumAccessGrant.granted_user_id == grantee_id)
        .first()
    )


def has_album_access(db: Session, album: PrivateAlbum, viewer_id: int, now: datetime) -> bool:
    if album.user_id == viewer_id:
        return True
    return is_grant_effective(_grant(db, album.id, viewer_id), now)


# ===== Альбомы =================================================================

def get_or_create_default_album(db: Session, owner: User, now: datetime) -> PrivateAlbum:
    album = db.query(PrivateAlbum).filter(PrivateAlbum.default_owner_id == owner.id).first()
    if album:
        return album
    album = PrivateAlbum(
        user_id=owner.id,
        name=DEFAULT_ALBUM_NAME,
        is_default=True,
        default_owner_id=owner.id,
        created_at=now,
        updated_at=now,
    )
    db.add(album)
    db.flush()
    return album


def get_album(db: Session, album_id: int) -> PrivateAlbum:
    album = db.query(PrivateAlbum).filter(PrivateAlbum.id == album_id).first()
    if not album:
        raise NotFound("album_not_found", "Album not found")
    return album


def owned_album(db: Session, owner: User, album_id: Optional[int], now: datetime) -> PrivateAlbum:
    """album_id=None - альбом по умолчанию. Чужой альбом -> ошибка авторизации."""
    if album_id is None:
        return get_or_create_default_album(db, owner, now)
    album = get_album(db, album_id)
    if album.user_id != owner.id:
        raise PermissionDenied("not_album_owner", "You do not own this album")
    return album


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("name_required", "Album name is required")
    if len(name) > MAX_ALBUM_NAME_LEN:
        raise ValidationFailed("name_too_long", f"Album name must be at most {MAX_ALBUM_NAME_LEN} characters")
    return name


def list_my_albums(db: Session, owner: User, now: datetime) -> List[PrivateAlbum]:
    get_or_create_default_album(db, owner, now)
    return (
        db.query(PrivateAlbum)
        .filter(PrivateAlbum.user_id == owner.id)
        .order_by(PrivateAlbum.is_default.desc(), PrivateAlbum.created_at.asc(), PrivateAlbum.id.asc())
        .all()
    )


def create_album(db: Session, owner: User, name: str, now: datetime, description: Optional[str] = None) -> PrivateAlbum:
    """Free - только альбом по умолчанию, Ultra - до 10 альбомов."""
    name = _clean_name(name)
    get_or_create_default_album(db, owner, now)
    count = db.query(func.count(PrivateAlbum.id)).filter(PrivateAlbum.user_id == owner.id).scalar() or 0
    limit = max_albums(owner, now)
    if count >= limit:
        raise PermissionDenied("album_limit_reached", f"Your plan allows up to {limit} album(s). Upgrade to Ultra for more.")

    album = PrivateAlbum(
        user_id=owner.id, name=name, description=(description or "").strip() or None,
        is_default=False, created_at=now, updated_at=now,
    )
    db.add(album)
    db.flush()
    return album


def update_album(
    db: Session,
    owner: User,
    album_id: int,
    now: datetime,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    cover_photo_id: Optional[int] = None,
) -> PrivateAlbum:
    album = owned_album(db, owner, album_id, now)
    if name is not None:
        album.name = _clean_name(name)
    if description is not None:
        album.description = description.strip() or None
    if cover_photo_id is not None:
        photo = db.query(AlbumPhoto).filter(AlbumPhoto.id == cover_photo_id, AlbumPhoto.album_id == album.id).first()
        if not photo:
            raise NotFound("photo_not_found", "Photo not found in this album")
        album.cover_photo_id = photo.id
    album.updated_at = now
    return album


def delete_album(db: Session, owner: User, album_id: int, now: datetime) -> List[str]:
    """Удаляет альбом с фото и грантами. Возвращает ключи медиа для удаления после commit."""
    album = owned_album(db, owner, album_id, now)
    if album.is_default:
        raise InvalidState("cannot_delete_default_album", "The default album cannot be deleted")
    keys = [p.storage_key for p in album.photos]
    db.query(AlbumAccessGrant).filter(AlbumAccessGrant.album_id == album.id).delete(synchronize_session=False)
    db.delete(album)
    return keys


# ===== Фото ====================================================================

def _photo_count(db: Session, owner_id: int) -> int:
    return db.query(func.count(AlbumPhoto.id)).filter(AlbumPhoto.user_id == owner_id).scalar() or 0


def add_photo(
    db: Session,
    owner: User,
    storage_key: str,
    now: datetime,
    *,
    album_id: Optional[int] = None,
    caption: Optional[str] = None,
) -> AlbumPhoto:
    """Free - до 10 фото во всех альбомах, Ultra - без ограничения."""
    if not storage_key:
        raise ValidationFailed("storage_key_required", "Upload the photo first")
    require_own_upload(db, owner, storage_key, ("albums",))
    album = owned_album(db, owner, album_id, now)
    if not is_ultra(owner, now) and _photo_count(db, owner.id) >= FREE_MAX_ALBUM_PHOTOS:
        raise PermissionDenied(
            "photo_limit_reached",
            f"Free tier allows up to {FREE_MAX_ALBUM_PHOTOS} photos. Upgrade to Ultra for unlimited photos.",
        )
    caption = (caption or "").strip() or None
    if caption and len(caption) > MAX_CAPTION_LEN:
        raise ValidationFailed("caption_too_long", f"Caption must be at most {MAX_CAPTION_LEN} characters")

    max_order = db.query(func.max(AlbumPhoto.order)).filter(AlbumPhoto.album_id == album.id).scalar() or 0
    photo = AlbumPhoto(
        album_id=album.id, user_id=owner.id, storage_key=storage_key,
        caption=caption, order=max_order + 1, uploaded_at=now,
    )
    album.photos.append(photo)
    album.updated_at = now
    db.flush()
    return photo


def _owned_photo(db: Session, owner: User, photo_id: int) -> AlbumPhoto:
    photo = db.query(AlbumPhoto).filter(AlbumPhoto.id == photo_id).first()
    if not photo:
        raise NotFound("photo_not_found", "Photo not found")
    if photo.user_id != owner.id:
        raise PermissionDenied("not_album_owner", "You do not own this photo")
    return photo


def remove_photo(db: Session, owner: User, photo_id: int) -> str:
    photo = _owned_photo(db, owner, photo_id)
    album = db.query(PrivateAlbum).filter(PrivateAlbum.id == photo.album_id).first()
    key = photo.storage_key
    if album is not None:
        if album.cover_photo_id == photo.id:
            album.cover_photo_id = None
        # delete-orphan удалит строку при flush
        album.photos.remove(photo)
    else:
        db.delete(photo)
    return key


def update_caption(db: Session, owner: User, photo_id: int, caption: Optional[str]) -> AlbumPhoto:
    photo = _owned_photo(db, owner, photo_id)
    caption = (caption or "").strip() or None
    if caption and len(caption) > MAX_CAPTION_LEN:
        raise ValidationFailed("caption_too_long", f"Caption must be at most {MAX_CAPTION_LEN} characters")
    photo.caption = caption
    return photo


def reorder_photos(db: Session, owner: User, album_id: int, photo_ids: List[int], now: datetime) -> List[AlbumPhoto]:
    album = owned_album(db, owner, album_id, now)
    photos = {p.id: p for p in album.photos}
    if sorted(photo_ids) != sorted(photos.keys()):
        raise ValidationFailed("invalid_order", "photo_ids must list every photo of the album exactly once")
    for idx, pid in enumerate(photo_ids, start=1):
        photos[pid].order = idx
    return [photos[pid] for pid in photo_ids]


# ===== Шаринг ==================================================================

def share_album(
    db: Session,
    owner: User,
    grantee_id: int,
    conversation_id: int,
    now: datetime,
    *,
    expires_in: Optional[str] = None,
    album_id: Optional[int] = None,
) -> AlbumAccessGrant:
    """
    Создаёт или обновляет грант (одна строка на album+grantee). Повторный
    шаринг заново выставляет granted_at/expires_at и снимает отзыв.
    Ограниченный по времени шаринг - только для Ultra.
    """
    if expires_in is not None and expires_in not in EXPIRY_OPTIONS:
        raise ValidationFailed("invalid_expiry", f"expires_in must be one of {tuple(EXPIRY_OPTIONS)} or empty")
    if grantee_id == owner.id:
        raise ValidationFailed("cannot_share_with_self", "You cannot share an album with yourself")
    require_not_moderated(owner, now)
    if expires_in is not None and not is_ultra(owner, now):
        raise PermissionDenied("ultra_required", "Time-limited sharing is only available for Ultra subscribers")

    if db.query(User.id).filter(User.id == grantee_id).first() is None:
        raise NotFound("user_not_found", "User not found")
    conv = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conv:
        raise NotFound("conversation_not_found", "Conversation not found")
    if set(conv.participant_ids()) != {owner.id, grantee_id}:
        raise PermissionDenied("not_a_participant", "Album can only be shared inside your conversation with this user")

    album = owned_album(db, owner, album_id, now)
    expires_at = now + EXPIRY_OPTIONS[expires_in] if expires_in else None

    grant = (
        db.query(AlbumAccessGrant)
        .filter(AlbumAccessGrant.album_id == album.id, AlbumAccessGrant.granted_user_id == grantee_id)
        .with_for_update()
        .first()
    )
    if grant:
        grant.granted_at = now
        grant.expires_at = expires_at
        grant.is_revoked = False
        grant.conversation_id = conv.id
    else:
        grant = AlbumAccessGrant(
            album_id=album.id,
            owner_user_id=owner.id,
            granted_user_id=grantee_id,
            conversation_id=conv.id,
            granted_at=now,
            expires_at=expires_at,
            is_revoked=False,
        )
        db.add(grant)
    db.flush()

    log_event(
        db, type=ALBUM_SHARED, actor_id=owner.id, target_user_id=grantee_id,
        data={"album_id": album.id, "grant_id": grant.id, "expires_in": expires_in},
    )
    return grant


def revoke_album_access(db: Session, owner: User, grantee_id: int, album_id: Optional[int] = None) -> int:
    """
    Отзывает гранты владельца для grantee (все или для одного альбома).
    Идемпотентно: нечего отзывать -> 0, не ошибка.
    """
    q = db.query(AlbumAccessGrant).filter(
        AlbumAccessGrant.owner_user_id == owner.id,
        AlbumAccessGrant.granted_user_id == grantee_id,
        AlbumAccessGrant.is_revoked.is_(False),
    )
    if album_id is not None:
        q = q.filter(AlbumAccessGrant.album_id == album_id)
    grants = q.all()
    for g in grants:
        g.is_revoked = True
    if grants:
        log_event(
            db, type=ALBUM_ACCESS_REVOKED, actor_id=owner.id, target_user_id=grantee_id,
            data={"album_ids": [g.album_id for g in grants]},
        )
    return len(grants)


def announce_album_share(db: Session, owner: User, grant: AlbumAccessGrant, now: datetime) -> Message:
    """
    Сообщение album_share в диалоге. Вызывается ПОСЛЕ commit гранта
    отдельной транзакцией; его сбой грант не отменяет.
    """
    conv = db.query(Conversation).filter(Conversation.id == grant.conversation_id).first()
    if conv is None:
        raise NotFound("conversation_not_found", "Conversation not found")
    album = get_album(db, grant.album_id)
    content = f"Shared private album \"{album.name}\""
    if grant.expires_at:
        content += f" until {grant.expires_at:%Y-%m-%d %H:%M} UTC"
    return send_message(db, owner, conv, now, content=content, format="album_share")


# ===== Просмотр ================================================================

def photo_file_url(photo: AlbumPhoto, base_url: Optional[str]) -> str:
    return api_url(f"/api/albums/photos/{photo.id}/file", base_url)


def photo_out(photo: AlbumPhoto, base_url: Optional[str]) -> dict:
    return {
        "id": photo.id,
        "url": photo_file_url(photo, base_url),
        "caption": photo.caption,
        "order": photo.order,
        "uploaded_at": photo.uploaded_at,
    }


def view_album(db: Session, viewer: User, album_id: int, now: datetime, base_url: Optional[str] = None) -> dict:
    """Фото альбома с URL. Без действующего гранта -> ошибка авторизации."""
    album = get_album(db, album_id)
    if not has_album_access(db, album, viewer.id, now):
        raise PermissionDenied("no_album_access", "You do not have access to this album")
    grant = None if album.user_id == viewer.id else _grant(db, album.id, viewer.id)
    return {
        "album": album,
        "expires_at": grant.expires_at if grant else None,
        "photos": [photo_out(p, base_url) for p in album.photos],
    }


def photo_for_viewer(db: Session, viewer: User, photo_id: int, now: datetime) -> AlbumPhoto:
    """Фото для отдачи файла. Доступ проверяется заново на каждом запросе."""
    photo = db.query(AlbumPhoto).filter(AlbumPhoto.id == photo_id).first()
    if not photo:
        raise NotFound("photo_not_found", "Photo not found")
    album = get_album(db, photo.album_id)
    if not has_album_access(db, album, viewer.id, now):
        raise PermissionDenied("no_album_access", "You do not have access to this album")
    return photo


def accessible_albums_of(db: Session, viewer: User, owner_id: int, now: datetime) -> List[PrivateAlbum]:
    """Альбомы владельца, которые viewer может открыть прямо сейчас."""
    albums = db.query(PrivateAlbum).filter(PrivateAlbum.user_id == owner_id).order_by(PrivateAlbum.id.asc()).all()
    return [a for a in albums if has_album_access(db, a, viewer.id, now)]


def _person(db: Session, user_id: int) -> dict:
    user = db.query(User).filter(User.id == user_id).first()
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    return {
        "id": user_id,
        "name": get_display_name(
            display_name=profile.display_name if profile else "",
            name=user.name if user else "",
            user_id=user_id,
        ) if user else "Unknown",
        "image_url": user.image_url if user else None,
    }


def list_my_shares(db: Session, owner: User, now: datetime) -> List[dict]:
    grants = db.query(AlbumAccessGrant).filter(AlbumAccessGrant.owner_user_id == owner.id).all()
    return [
        {"grant": g, "user": _person(db, g.granted_user_id)}
        for g in grants if is_grant_effective(g, now)
    ]


def list_shared_with_me(db: Session, viewer: User, now: datetime, base_url: Optional[str] = None) -> List[dict]:
    grants = db.query(AlbumAccessGrant).filter(AlbumAccessGrant.granted_user_id == viewer.id).all()
    out = []
    for g in grants:
        if not is_grant_effective(g, now):
            continue
        album = get_album(db, g.album_id)
        photos = album.photos
        out.append({
            "grant": g,
            "album": album,
            "user": _person(db, g.owner_user_id),
            "photo_count": len(photos),
            "preview_url": photo_file_url(photos[0], base_url) if photos else None,
        })
    return out


def album_sharing_status(db: Session, user: User, conversation_id: int, now: datetime) -> dict:
    conv = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conv:
        raise NotFound("conversation_not_found", "Conversation not found")
    if user.id not in conv.participant_ids():
        raise PermissionDenied("not_a_participant", "You are not a participant in this conversation")
    other_id = conv.other_participant(user.id)

    def _effective(owner_id: int, grantee_id: int) -> List[AlbumAccessGrant]:
        rows = db.query(AlbumAccessGrant).filter(
            AlbumAccessGrant.owner_user_id == owner_id,
            AlbumAccessGrant.granted_user_id == grantee_id,
        ).all()
        return [g for g in rows if is_grant_effective(g, now)]

    mine = _effective(user.id, other_id)
    theirs = _effective(other_id, user.id)

    def _latest_expiry(grants: List[AlbumAccessGrant]) -> Optional[datetime]:
        if not grants or any(g.expires_at is None for g in grants):
            return None
        return max(g.expires_at for g in grants)

    return {
        "other_user_id": other_id,
        "i_shared": bool(mine),
        "my_share_expires_at": _latest_expiry(mine),
        "they_shared": bool(theirs),
        "their_share_expires_at": _latest_expiry(theirs),
        "their_album_ids": [g.album_id for g in theirs],
    }
