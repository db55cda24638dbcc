# piggies/routers/albums.py
# -----------------------------------------------------------------------------
# Приватные альбомы: CRUD, фото, шаринг по диалогу, просмотр по гранту.
# Статические пути объявлены раньше /{album_id}.
# Файлы фото отдаются только через /photos/{photo_id}/file с проверкой гранта.
# -----------------------------------------------------------------------------

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.album import (
    AlbumCreate, AlbumUpdate, AlbumOut, PhotoAdd, CaptionIn, PhotoOrder, AlbumPhotoOut, AlbumViewOut,
    ShareIn, RevokeIn, GrantOut, MyShareOut, SharedWithMeOut, SharingStatusOut,
)
from piggies.services import albums, uploads
from piggies.services.messaging import message_push_payload
from piggies.services.notifications import queue_push
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now
from piggies.services.errors import NotFound
from piggies.utils.media import delete_stored, key_to_local_path, public_base_url
from piggies.utils.user import get_display_name

log = logging.getLogger(__name__)

router = APIRouter()


# ===== Мои альбомы =============================================================

@router.get("/", response_model=List[AlbumOut])
def list_albums(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = albums.list_my_albums(db, current_user, utc_now())
    # альбом по умолчанию мог только что создаться
    db.commit()
    return rows


@router.post("/", response_model=AlbumOut)
def create_album(payload: AlbumCreate, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    album = albums.create_album(db, current_user, payload.name, utc_now(), payload.description)
    db.commit()
    db.refresh(album)
    return album


# ===== Фото ====================================================================

@router.post("/photos", response_model=AlbumPhotoOut)
def add_photo(
    payload: PhotoAdd,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    photo = albums.add_photo(
        db, current_user, payload.storage_key, utc_now(),
        album_id=payload.album_id, caption=payload.caption,
    )
    db.commit()
    db.refresh(photo)
    return albums.photo_out(photo, public_base_url(request))


@router.delete("/photos/{photo_id}")
def remove_photo(photo_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    key = albums.remove_photo(db, current_user, photo_id)
    released = uploads.release_upload(db, key)
    db.commit()
    if released:
        delete_stored(key)
    return {"success": True}


@router.patch("/photos/{photo_id}", response_model=AlbumPhotoOut)
def update_caption(
    photo_id: int,
    payload: CaptionIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    photo = albums.update_caption(db, current_user, photo_id, payload.caption)
    db.commit()
    db.refresh(photo)
    return albums.photo_out(photo, public_base_url(request))


@router.get("/photos/{photo_id}/file")
def photo_file(photo_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Файл фото альбома. Владелец или получатель действующего гранта."""
    photo = albums.photo_for_viewer(db, current_user, photo_id, utc_now())
    path = key_to_local_path(photo.storage_key)
    if path is None or not path.is_file():
        raise NotFound("media_not_found", "Media file not found")
    return FileResponse(path, headers={"Cache-Control": "private, no-store"})


# ===== Шаринг ==================================================================

@router.post("/share", response_model=GrantOut)
def share(
    payload: ShareIn,
    background: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Выдаёт доступ собеседнику. Грант коммитится первым; сообщение album_share
    и push идут следом и при сбое грант не откатывают.
    """
    now = utc_now()
    grant = albums.share_album(
        db, current_user, payload.grantee_id, payload.conversation_id, now,
        expires_in=payload.expires_in, album_id=payload.album_id,
    )
    db.commit()
    db.refresh(grant)

    try:
        msg = albums.announce_album_share(db, current_user, grant, now)
        db.commit()
    except Exception:
        db.rollback()
        log.exception("album_share message failed for grant %s", grant.id)
    else:
        sender_name = get_display_name(name=current_user.name, email=current_user.email or "", user_id=current_user.id)
        queue_push(background, db, grant.granted_user_id, message_push_payload(msg, sender_name))

    db.refresh(grant)
    return grant


@router.post("/revoke")
def revoke(payload: RevokeIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    revoked = albums.revoke_album_access(db, current_user, payload.grantee_id, payload.album_id)
    db.commit()
    return {"revoked": revoked}


@router.get("/shares", response_model=List[MyShareOut])
def my_shares(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return albums.list_my_shares(db, current_user, utc_now())


@router.get("/shared-with-me", response_model=List[SharedWithMeOut])
def shared_with_me(request: Request, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return albums.list_shared_with_me(db, current_user, utc_now(), public_base_url(request))


@router.get("/sharing-status/{conversation_id}", response_model=SharingStatusOut)
def sharing_status(conversation_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return albums.album_sharing_status(db, current_user, conversation_id, utc_now())


@router.get("/user/{owner_id}", response_model=List[AlbumOut])
def albums_of_user(owner_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Альбомы другого пользователя, открытые мне прямо сейчас."""
    return albums.accessible_albums_of(db, current_user, owner_id, utc_now())


# ===== Конкретный альбом =======================================================

@router.get("/{album_id}", response_model=AlbumViewOut)
def view_album(
    album_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return albums.view_album(db, current_user, album_id, utc_now(), public_base_url(request))


@router.patch("/{album_id}", response_model=AlbumOut)
def update_album(
    album_id: int,
    payload: AlbumUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    album = albums.update_album(db, current_user, album_id, utc_now(), **payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(album)
    return album


@router.delete("/{album_id}")
def delete_album(album_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    keys = albums.delete_album(db, current_user, album_id, utc_now())
    released = [key for key in dict.fromkeys(keys) if uploads.release_upload(db, key)]
    db.commit()
    for key in released:
        delete_stored(key)
    return {"success": True, "deleted_photos": len(keys)}


@router.put("/{album_id}/order", response_model=List[AlbumPhotoOut])
def reorder(
    album_id: int,
    payload: PhotoOrder,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    photos = albums.reorder_photos(db, current_user, album_id, payload.photo_ids, utc_now())
    db.commit()
    base = public_base_url(request)
    return [albums.photo_out(p, base) for p in photos]
