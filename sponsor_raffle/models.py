from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sponsor_raffle.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistryEvent(Base):
    __tablename__ = "registry_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    recorded_by: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    races: Mapped[list["RegistryRace"]] = relationship(
        "RegistryRace", back_populates="event", cascade="all, delete-orphan"
    )
    awards: Mapped[list["RegistryAward"]] = relationship(
        "RegistryAward", back_populates="event", cascade="all, delete-orphan"
    )

    @property
    def weekend_awards(self) -> list["RegistryAward"]:
        return [award for award in self.awards if award.race is None]


class RegistryRace(Base):
    __tablename__ = "registry_races"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("registry_events.id"), nullable=False, index=True)
    race_number: Mapped[int] = mapped_column(Integer, nullable=False)  # season-wide race number
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    event: Mapped[RegistryEvent] = relationship("RegistryEvent", back_populates="races")
    awards: Mapped[list["RegistryAward"]] = relationship("RegistryAward", back_populates="race")

    __table_args__ = (UniqueConstraint("event_id", "race_number", name="uq_registry_race"),)


class RegistryAward(Base):
    __tablename__ = "registry_awards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("registry_events.id"), nullable=False, index=True)
    race_id: Mapped[int | None] = mapped_column(
        ForeignKey("registry_races.id"), nullable=True, index=True
    )  # null for weekend awards
    driver_name: Mapped[str] = mapped_column(String(128), nullable=False)
    car_number: Mapped[str] = mapped_column(String(16), default="", nullable=False)
    sponsor_name: Mapped[str] = mapped_column(String(128), nullable=False)
    prize_type: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    event: Mapped[RegistryEvent] = relationship("RegistryEvent", back_populates="awards")
    race: Mapped[RegistryRace | None] = relationship("RegistryRace", back_populates="awards")
