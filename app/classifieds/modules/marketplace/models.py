from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Float, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.classifieds.models import Base

if TYPE_CHECKING:
    from app.classifieds.modules.ads.models import Ad


class AdMarketplace(Base):
    __tablename__ = "ad_marketplace"
    __table_args__ = (
        Index("idx_ad_marketplace_category", "category"),
    )

    ad_id: Mapped[int] = mapped_column(ForeignKey("ads.id", ondelete="CASCADE"), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(2000), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    condition: Mapped[str] = mapped_column(String(16), nullable=False)  # NEW, LIKE_NEW, USED, HANDMADE
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)  # free-form, e.g. "Furniture"

    ad: Mapped["Ad"] = relationship("Ad", back_populates="marketplace")
