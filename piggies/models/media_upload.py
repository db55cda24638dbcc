# piggies/models/media_upload.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from piggies.db import Base


class MediaUpload(Base):
    """
    Кто загрузил объект хранилища. Ключ из загрузки можно прикрепить
    к альбому, сообщению или анкете только от имени загрузившего.
    """
    __tablename__ = "media_uploads"

    id = Column(Integer, primary_key=True, index=True)
    storage_key = Column(String(512), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(16), nullable=False, comment="photos|albums|messages|snaps")
    uploaded_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_media_uploads_user", "user_id", "uploaded_at"),
    )

    def __repr__(self):
        return f"<MediaUpload(key={self.storage_key}, user={self.user_id})>"
