from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.classifieds.models import Base

if TYPE_CHECKING:
    from app.classifieds.modules.ads.models import Ad


class AdHousing(Base):
    __tablename__ = "ad_housing"
    __table_args__ = (
        Index("idx_ad_housing_rental_kind", "rental_kind"),
        Index("idx_ad_housing_start", "availability_start_date"),
    )

    ad_id: Mapped[int] = mapped_column(ForeignKey("ads.id", ondelete="CASCADE"), primary_key=True)

    # Basics
    rental_kind: Mapped[str] = mapped_column(String(16), nullable=False)  # TEMPORARY, PERMANENT
    unit_type: Mapped[str] = mapped_column(String(32), nullable=False)
    property_type: Mapped[str] = mapped_column(String(32), nullable=False)

    # Availability
    availability_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    availability_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    contract_type: Mapped[str] = mapped_column(String(16), nullable=False, default="NONE")
    residenza_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Pricing (whole euros)
    price_type: Mapped[str] = mapped_column(String(16), nullable=False)  # MONTHLY, DAILY
    price_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)  # NULL when negotiable
    price_negotiable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    agency_fee_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bills_policy: Mapped[str] = mapped_column(String(16), nullable=False, default="EXCLUDED")
    bills_monthly_estimate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bills_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Features
    heating_type: Mapped[str] = mapped_column(String(16), nullable=False, default="UNKNOWN")
    floor_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    number_of_bathrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    furnished: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_elevator: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    private_bathroom: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    kitchen_equipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    wifi: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    washing_machine: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dishwasher: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    balcony: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    air_conditioning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    double_glazed_windows: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    newly_renovated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    clothes_dryer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Household
    household_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    household_gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    gender_preference: Mapped[str] = mapped_column(String(16), nullable=False, default="ANY")
    household_description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Location
    neighborhood: Mapped[str | None] = mapped_column(String(255), nullable=True)
    street_hint: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    transit_lines: Mapped[list | None] = mapped_column(JSON, nullable=True)
    shops_nearby: Mapped[list | None] = mapped_column(JSON, nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    ad: Mapped["Ad"] = relationship("Ad", back_populates="housing")


class HousingDraft(Base):
    """
    Server-side state of one wizard session (create or edit).
    Images uploaded on the photos step are already in storage; their metadata lives in images_json
    until the draft is submitted or cancelled.
    """

    __tablename__ = "housing_drafts"
    __table_args__ = (
        Index("idx_housing_drafts_user", "user_id", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    ad_id: Mapped[int | None] = mapped_column(ForeignKey("ads.id", ondelete="CASCADE"), nullable=True)  # set in edit mode
    mode: Mapped[str] = mapped_column(String(16), nullable=False, default="create")
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    state_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # HousingWizard.to_dict()
    images_json: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # UploadedImage.to_dict() items
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
