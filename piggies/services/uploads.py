# piggies/services/uploads.py
# Владение загруженными объектами хранилища.
#  • record_upload      - запись "кто загрузил" (из /api/upload/*)
#  • require_own_upload - ключ можно прикрепить только от имени загрузившего
#  • release_upload     - освобождение ключа после удаления ссылки на него;
#                         файл удаляем, только если ссылок больше нет
# Как и остальные сервисы, commit не делает.

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from piggies.models.album import AlbumPhoto
from piggies.models.media_upload import MediaUpload
from piggies.models.message import Message
from piggies.models.profile import Profile
from piggies.models.user import User
from piggies.services.errors import PermissionDenied, ValidationFailed
from piggies.utils.media import key_kind


def record_upload(db: Session, user: User, storage_key: str, kind: str, now: datetime) -> MediaUpload:
    upload = MediaUpload(storage_key=storage_key, user_id=user.id, kind=kind, uploaded_at=now)
    db.add(upload)
    db.flush()
    return upload


def require_own_upload(db: Session, user: User, storage_key: str, kinds: Iterable[str]) -> MediaUpload:
    """
    Ключ должен быть из нашей загрузки нужного вида и принадлежать user.
    Чужой и несуществующий ключ неотличимы для клиента.
    """
    kinds = tuple(kinds)
    if key_kind(storage_key) not in kinds:
        raise ValidationFailed("invalid_storage_key", f"storage_key must point to {' or '.join(kinds)}")
    upload = db.query(MediaUpload).filter(MediaUpload.storage_key == storage_key).first()
    if not upload or upload.user_id != user.id or upload.kind not in kinds:
        raise PermissionDenied("not_your_upload", "You can only attach media you uploaded")
    return upload


def is_key_referenced(db: Session, storage_key: str, owner_id: int) -> bool:
    if db.query(AlbumPhoto.id).filter(AlbumPhoto.storage_key == storage_key).first():
        return True
    if db.query(Message.id).filter(Message.storage_key == storage_key).first():
        return True
    profile = db.query(Profile).filter(Profile.user_id == owner_id).first()
    return bool(profile and storage_key in (profile.photo_keys or []))


def release_upload(db: Session, storage_key: str) -> bool:
    """
    Вызывается после удаления строки, ссылавшейся на ключ (до commit).
    True - ссылок не осталось, запись загрузки удалена и файл можно стирать
    после commit. Ключи без записи загрузки никогда не удаляем.
    """
    if not storage_key:
        return False
    db.flush()
    upload = db.query(MediaUpload).filter(MediaUpload.storage_key == storage_key).first()
    if not upload:
        return False
    if is_key_referenced(db, storage_key, upload.user_id):
        return False
    db.delete(upload)
    db.flush()
    return True
