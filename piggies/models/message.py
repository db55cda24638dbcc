# piggies/models/message.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, JSON, Text
from sqlalchemy.orm import relationship
from piggies.db import Base

MESSAGE_FORMATS = ("text", "image", "video", "gif", "location", "album_share", "snap")
MEDIA_FORMATS = ("image", "video", "snap")
SNAP_VIEW_MODES = ("view_once", "timed")
SNAP_DURATIONS = (5, 10, 30)


class Message(Base):
    """
    Сообщение в диалоге.

    read_at - карта {"<user_id>": "<ISO-время прочтения>"}; меняется только
    добавлением квитанций. Снапы (format == "snap") исчезают после просмотра:
    view_once - сразу, timed - через snap_duration секунд после открытия.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    content = Column(Text, nullable=False, default="")
    format = Column(String(16), nullable=False, default="text")
    storage_key = Column(String(512), nullable=True)
    sent_at = Column(DateTime, nullable=False)

    read_at = Column(JSON, nullable=False, default=dict)

    # --- снапы ---
    snap_view_mode = Column(String(16), nullable=True)
    snap_duration = Column(Integer, nullable=True)
    snap_viewed_at = Column(DateTime, nullable=True)
    snap_expired = Column(Boolean, nullable=False, default=False)

    # --- скрытие админом ---
    is_hidden = Column(Boolean, nullable=False, default=False)
    hidden_at = Column(DateTime, nullable=True)
    hidden_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    hidden_reason = Column(String, nullable=True)

    __table_args__ = (
        Index("ix_messages_conversation_sent_at", "conversation_id", "sent_at"),
        Index("ix_messages_sender", "sender_id"),
    )

    conversation = relationship("Conversation")

    def is_read_by(self, user_id: int) -> bool:
        return str(user_id) in (self.read_at or {})

    def __repr__(self):
        return f"<Message(id={self.id}, conversation={self.conversation_id}, format={self.format})>"
