# piggies/models/profile.py

from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, JSON
from piggies.db import Base


class Profile(Base):
    """
    Анкета пользователя (1:1 с User). Создаётся пустой при первом входе.
    photo_keys - ключи объектов в хранилище медиа, а не URL.
    """
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)

    display_name = Column(String(64), nullable=True)
    bio = Column(String(1000), nullable=True)
    age = Column(Integer, nullable=True)
    photo_keys = Column(JSON, nullable=False, default=list)

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_name = Column(String(128), nullable=True)

    onboarding_complete = Column(Boolean, nullable=False, default=False)
    looking_for = Column(String(255), nullable=True)
    interests = Column(JSON, nullable=False, default=list)

    def __repr__(self):
        return f"<Profile(user_id={self.user_id}, display_name={self.display_name})>"
