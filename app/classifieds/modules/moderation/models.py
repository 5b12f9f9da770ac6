from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.classifieds.models import Base, User


class ModerationAction(Base):
    """One row per moderation decision (approve, reject, expire, status change)."""

    __tablename__ = "moderation_actions"
    __table_args__ = (
        Index("idx_moderation_actions_ad", "ad_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL actor = scheduler
    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # Kept after the ad is deleted so the moderation history survives.
    ad_id: Mapped[int | None] = mapped_column(ForeignKey("ads.id", ondelete="SET NULL"), nullable=True)
    target_type: Mapped[str] = mapped_column(String(16), nullable=False, default="AD")
    action: Mapped[str] = mapped_column(String(32), nullable=False)  # APPROVE, REJECT, EXPIRE, RESTORE
    reason_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reason_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    prev_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    next_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    actor: Mapped[User | None] = relationship("User", lazy="joined")
