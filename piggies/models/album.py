# piggies/models/album.py
# -----------------------------------------------------------------------------
# Приватные альбомы: альбом, фото альбома и гранты доступа к альбому.
# -----------------------------------------------------------------------------

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey,
    UniqueConstraint, Index, func,
)
from sqlalchemy.orm import relationship
from piggies.db import Base


class PrivateAlbum(Base):
    """
    Приватный альбом владельца. У каждого владельца ровно один альбом
    по умолчанию: default_owner_id = user_id только у него (UNIQUE),
    у остальных альбомов там NULL.
    """
    __tablename__ = "private_albums"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(64), nullable=False)
    description = Column(String(500), nullable=True)
    cover_photo_id = Column(Integer, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    default_owner_id = Column(Integer, nullable=True, unique=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    photos = relationship(
        "AlbumPhoto",
        back_populates="album",
        cascade="all, delete-orphan",
        order_by="AlbumPhoto.order",
    )

    def __repr__(self):
        return f"<PrivateAlbum(id={self.id}, user_id={self.user_id}, default={self.is_default})>"


class AlbumPhoto(Base):
    __tablename__ = "album_photos"

    id = Column(Integer, primary_key=True, index=True)
    album_id = Column(Integer, ForeignKey("private_albums.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    storage_key = Column(String(512), nullable=False)
    caption = Column(String(280), nullable=True)
    order = Column(Integer, nullable=False, default=1)
    uploaded_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_album_photos_album_order", "album_id", "order"),
        Index("ix_album_photos_user", "user_id"),
    )

    album = relationship("PrivateAlbum", back_populates="photos")


class AlbumAccessGrant(Base):
    """
    Грант: владелец дал grantee право смотреть конкретный альбом.
    Одна строка на (album_id, granted_user_id); повторный шаринг обновляет её.
    Действует, пока not is_revoked и (expires_at IS NULL или expires_at > now).
    """
    __tablename__ = "album_access_grants"

    id = Column(Integer, primary_key=True, index=True)
    album_id = Column(Integer, ForeignKey("private_albums.id", ondelete="CASCADE"), nullable=False)
    owner_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    granted_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True)

    granted_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    is_revoked = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("album_id", "granted_user_id", name="uq_album_grant_album_grantee"),
        Index("ix_album_grants_owner_granted", "owner_user_id", "granted_user_id"),
        Index("ix_album_grants_granted", "granted_user_id"),
    )

    album = relationship("PrivateAlbum")

    def __repr__(self):
        return (
            f"<AlbumAccessGrant(album={self.album_id}, owner={self.owner_user_id}, "
            f"grantee={self.granted_user_id}, revoked={self.is_revoked}, expires_at={self.expires_at})>"
        )
