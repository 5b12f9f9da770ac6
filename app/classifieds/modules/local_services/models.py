from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import JSON, Float, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.classifieds.models import Base

if TYPE_CHECKING:
    from app.classifieds.modules.ads.models import Ad


class AdService(Base):
    __tablename__ = "ad_service"
    __table_args__ = (
        Index("idx_ad_service_category", "service_category"),
    )

    ad_id: Mapped[int] = mapped_column(ForeignKey("ads.id", ondelete="CASCADE"), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(2000), nullable=False)
    service_category: Mapped[str] = mapped_column(String(32), nullable=False)  # COOKING, REPAIRS, ...
    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    rate_basis: Mapped[str | None] = mapped_column(String(16), nullable=True)  # HOURLY, FIXED, PER_TASK
    rate_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    availability_days: Mapped[list | None] = mapped_column(JSON, nullable=True)  # ["MON", "WED"]
    service_area: Mapped[str | None] = mapped_column(String(255), nullable=True)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    portfolio_links: Mapped[list | None] = mapped_column(JSON, nullable=True)

    ad: Mapped["Ad"] = relationship("Ad", back_populates="service")
