from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Enum,
    UniqueConstraint, Index, Numeric, JSON,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from tripcrew.core.database import Base


class ChoiceStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ChoiceVisibility(str, enum.Enum):
    TRIP = "TRIP"
    PRIVATE = "PRIVATE"


class Choice(Base):
    __tablename__ = "choices"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    place = Column(String, nullable=True)
    visibility = Column(Enum(ChoiceVisibility), nullable=False, default=ChoiceVisibility.TRIP)
    status = Column(Enum(ChoiceStatus), nullable=False, default=ChoiceStatus.OPEN)
    deadline = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    # Kept last: the attribute shadows the datetime import for the rest of the class body
    datetime = Column(DateTime, nullable=True)

    items = relationship(
        "ChoiceItem",
        back_populates="choice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChoiceItem.sort_index",
    )
    selections = relationship(
        "ChoiceSelection", back_populates="choice", cascade="all, delete-orphan", passive_deletes=True
    )
    activities = relationship(
        "ChoiceActivity", back_populates="choice", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_choices_trip_id", "trip_id"),
    )


class ChoiceItem(Base):
    __tablename__ = "choice_items"

    id = Column(Integer, primary_key=True, index=True)
    choice_id = Column(Integer, ForeignKey("choices.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=True)
    course = Column(String, nullable=True)
    tags = Column(JSON, nullable=True)
    allergens = Column(JSON, nullable=True)
    max_per_user = Column(Integer, nullable=True)
    max_total = Column(Integer, nullable=True)
    sort_index = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    choice = relationship("Choice", back_populates="items")

    __table_args__ = (
        Index("ix_choice_items_choice_id", "choice_id"),
    )


class ChoiceSelection(Base):
    __tablename__ = "choice_selections"

    id = Column(Integer, primary_key=True, index=True)
    choice_id = Column(Integer, ForeignKey("choices.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    choice = relationship("Choice", back_populates="selections")
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
    lines = relationship(
        "ChoiceSelectionLine",
        back_populates="selection",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ChoiceSelectionLine.id",
    )

    __table_args__ = (
        UniqueConstraint("choice_id", "user_id", name="uq_choice_selection_user"),
    )


class ChoiceSelectionLine(Base):
    __tablename__ = "choice_selection_lines"

    id = Column(Integer, primary_key=True, index=True)
    selection_id = Column(Integer, ForeignKey("choice_selections.id", ondelete="CASCADE"), nullable=False)
    item_id = Column(Integer, ForeignKey("choice_items.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    note = Column(Text, nullable=True)

    selection = relationship("ChoiceSelection", back_populates="lines")
    item = relationship("ChoiceItem", lazy="selectin")


class ChoiceActivity(Base):
    __tablename__ = "choice_activities"

    id = Column(Integer, primary_key=True, index=True)
    choice_id = Column(Integer, ForeignKey("choices.id", ondelete="CASCADE"), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String, nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    choice = relationship("Choice", back_populates="activities")

    __table_args__ = (
        Index("ix_choice_activities_choice_id", "choice_id"),
    )
