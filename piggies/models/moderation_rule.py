# piggies/models/moderation_rule.py

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index, text
from piggies.db import Base

RULE_TRIGGERS = ("warning_count", "report_count")
RULE_ACTIONS = ("warning", "suspension", "ban")


class ModerationRule(Base):
    """
    Правило авто-эскалации, заведённое админом.
    По умолчанию правил нет: пороги задаются только вручную.
    """
    __tablename__ = "moderation_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    description = Column(String, nullable=True)
    enabled = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    trigger_type = Column(String(32), nullable=False, comment="warning_count|report_count")
    threshold = Column(Integer, nullable=False)
    action = Column(String(16), nullable=False, comment="warning|suspension|ban")
    suspension_days = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_moderation_rules_enabled_trigger", "enabled", "trigger_type"),
    )

    def __repr__(self) -> str:
        return f"<ModerationRule id={self.id} {self.trigger_type}>={self.threshold} -> {self.action}>"
