# piggies/models/admirer.py
# -----------------------------------------------------------------------------
# "Поклонники": взмахи (wave) и просмотры анкет.
# -----------------------------------------------------------------------------

from sqlalchemy import Column, Integer, Date, DateTime, ForeignKey, UniqueConstraint, Index
from piggies.db import Base


class Wave(Base):
    """Один взмах на направленную пару waver -> waved_at."""
    __tablename__ = "waves"

    id = Column(Integer, primary_key=True, index=True)
    waver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    waved_at_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    waved_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("waver_id", "waved_at_id", name="uq_wave_pair"),
        Index("ix_waves_waved_at_id", "waved_at_id", "waved_at"),
    )

    def __repr__(self):
        return f"<Wave(waver={self.waver_id}, waved_at={self.waved_at_id})>"


class ProfileView(Base):
    """
    Просмотр чужой анкеты. Одна строка на (viewer, viewed, UTC-день);
    viewed_at - последний просмотр за этот день.
    """
    __tablename__ = "profile_views"

    id = Column(Integer, primary_key=True, index=True)
    viewer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    viewed_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    view_date = Column(Date, nullable=False)
    viewed_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("viewer_id", "viewed_id", "view_date", name="uq_profile_view_day"),
        Index("ix_profile_views_viewer_date", "viewer_id", "view_date"),
        Index("ix_profile_views_viewed", "viewed_id", "viewed_at"),
    )
