# piggies/models/conversation.py
from sqlalchemy import (
    Column, Integer, ForeignKey, DateTime,
    UniqueConstraint, func, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
from piggies.db import Base


class Conversation(Base):
    """
    Диалог двух пользователей: одна строка на пару.
    Пара хранится как (user_min, user_max) с инвариантом user_min < user_max,
    поэтому второй диалог для той же пары создать нельзя.
    last_message_* - денормализация для сортировки списка диалогов.
    """
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)

    user_min = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_max = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    last_message_id = Column(Integer, nullable=True)
    last_message_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_min", "user_max", name="uq_conversation_pair"),
        CheckConstraint("user_min < user_max", name="ck_conversation_min_lt_max"),
        Index("ix_conversations_user_min", "user_min"),
        Index("ix_conversations_user_max", "user_max"),
        Index("ix_conversations_last_message_at", "last_message_at"),
    )

    user_min_rel = relationship("User", foreign_keys=[user_min])
    user_max_rel = relationship("User", foreign_keys=[user_max])

    def participant_ids(self) -> tuple[int, int]:
        return (self.user_min, self.user_max)

    def other_participant(self, user_id: int) -> int:
        return self.user_max if user_id == self.user_min else self.user_min

    def __repr__(self):
        return f"<Conversation(id={self.id}, user_min={self.user_min}, user_max={self.user_max})>"
