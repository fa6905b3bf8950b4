"""Property and room models."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from riadsync.database import Base


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(String(500), default="")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    rooms: Mapped[list["Room"]] = relationship(back_populates="prop")
    bookings: Mapped[list["Booking"]] = relationship(back_populates="prop")  # noqa: F821
    feeds: Mapped[list["ICalFeed"]] = relationship(back_populates="prop")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Property id={self.id} name={self.name!r}>"


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    prop: Mapped[Property] = relationship(back_populates="rooms")

    def __repr__(self) -> str:
        return f"<Room id={self.id} property_id={self.property_id} name={self.name!r}>"
