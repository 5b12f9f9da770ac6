from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Date, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.classifieds.models import Base

if TYPE_CHECKING:
    from app.classifieds.modules.ads.models import Ad


class AdTransportation(Base):
    __tablename__ = "ad_transportation"
    __table_args__ = (
        Index("idx_ad_transportation_direction_date", "direction", "flight_date"),
    )

    ad_id: Mapped[int] = mapped_column(ForeignKey("ads.id", ondelete="CASCADE"), primary_key=True)

    # Route
    direction: Mapped[str] = mapped_column(String(32), nullable=False)  # ITALY_TO_IRAN, IRAN_TO_ITALY
    departure_city: Mapped[str] = mapped_column(String(128), nullable=False)
    departure_country: Mapped[str] = mapped_column(String(16), nullable=False)
    arrival_city: Mapped[str] = mapped_column(String(128), nullable=False)
    arrival_country: Mapped[str] = mapped_column(String(16), nullable=False)
    additional_pickup_cities: Mapped[list | None] = mapped_column(JSON, nullable=True)
    additional_delivery_cities: Mapped[list | None] = mapped_column(JSON, nullable=True)
    route_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    flight_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Capacity
    capacity_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_accept_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    subject_to_inspection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    documents_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    accepted_item_types: Mapped[list | None] = mapped_column(JSON, nullable=True)
    restricted_item_types: Mapped[list | None] = mapped_column(JSON, nullable=True)
    special_capacity_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Postal
    offers_postal_forwarding: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    accepts_postal_dropoff: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    postal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_eta_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Pricing
    price_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="NEGOTIABLE")
    price_per_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    fixed_total_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    ad: Mapped["Ad"] = relationship("Ad", back_populates="transportation")
