from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.classifieds.models import Base

if TYPE_CHECKING:
    from app.classifieds.models import User
    from app.classifieds.modules.cities.models import City
    from app.classifieds.modules.housing.models import AdHousing
    from app.classifieds.modules.local_services.models import AdService
    from app.classifieds.modules.marketplace.models import AdMarketplace
    from app.classifieds.modules.transportation.models import AdTransportation


class Ad(Base):
    """
    Shared ad record. Category-specific fields live in one-to-one detail tables
    (ad_housing, ad_transportation, ad_marketplace, ad_service).
    """

    __tablename__ = "ads"
    __table_args__ = (
        Index("idx_ads_user", "user_id"),
        Index("idx_ads_status_category", "status", "category"),
        Index("idx_ads_city_status", "city_id", "status"),
        Index("idx_ads_expiration", "expiration_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    city_id: Mapped[int] = mapped_column(ForeignKey("cities.id"), nullable=False)

    category: Mapped[str] = mapped_column(String(32), nullable=False)  # HOUSING, TRANSPORTATION, ...
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")  # PENDING, ONLINE, REJECTED, EXPIRED
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    views_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    contact_clicks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cover_media_id: Mapped[int | None] = mapped_column(
        ForeignKey("media_assets.id", ondelete="SET NULL", use_alter=True, name="fk_ads_cover_media_id"),
        nullable=True,
    )
    media_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User"] = relationship("User", lazy="joined")
    city: Mapped["City"] = relationship("City", lazy="joined")

    media: Mapped[list["MediaAsset"]] = relationship(
        "MediaAsset",
        back_populates="ad",
        foreign_keys="MediaAsset.ad_id",
        cascade="all, delete-orphan",
        order_by="MediaAsset.order",
        lazy="selectin",
    )
    cover_media: Mapped["MediaAsset | None"] = relationship(
        "MediaAsset",
        foreign_keys=[cover_media_id],
        post_update=True,
        lazy="joined",
    )

    housing: Mapped["AdHousing | None"] = relationship(
        "AdHousing", back_populates="ad", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    transportation: Mapped["AdTransportation | None"] = relationship(
        "AdTransportation", back_populates="ad", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    marketplace: Mapped["AdMarketplace | None"] = relationship(
        "AdMarketplace", back_populates="ad", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    service: Mapped["AdService | None"] = relationship(
        "AdService", back_populates="ad", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def details(self):
        return {
            "HOUSING": self.housing,
            "TRANSPORTATION": self.transportation,
            "MARKETPLACE": self.marketplace,
            "SERVICES": self.service,
        }.get(self.category)


class MediaAsset(Base):
    __tablename__ = "media_assets"
    __table_args__ = (
        Index("idx_media_assets_ad_order", "ad_id", "order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ad_id: Mapped[int] = mapped_column(ForeignKey("ads.id", ondelete="CASCADE"), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="IMAGE")
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="GALLERY")  # GALLERY, POSTER
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)  # sha256 hex
    alt: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    ad: Mapped[Ad] = relationship("Ad", back_populates="media", foreign_keys=[ad_id])
