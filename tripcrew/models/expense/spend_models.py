from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Enum, UniqueConstraint, Index, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from tripcrew.core.database import Base
from tripcrew.utils.assignment_math import assignments_total, percent_assigned


class SpendStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SplitType(str, enum.Enum):
    EQUAL = "EQUAL"
    EXACT = "EXACT"
    PERCENTAGE = "PERCENTAGE"
    SHARES = "SHARES"


class Spend(Base):
    __tablename__ = "spends"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    description = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    fx_rate = Column(Numeric(14, 6), nullable=False, default=1)
    normalized_amount = Column(Numeric(12, 2), nullable=False)
    paid_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime, nullable=False, default=datetime.utcnow)
    notes = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    status = Column(Enum(SpendStatus), nullable=False, default=SpendStatus.OPEN)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    payer = relationship("User", foreign_keys=[paid_by], lazy="selectin")
    items = relationship(
        "SpendItem",
        back_populates="spend",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SpendItem.id",
    )
    assignments = relationship(
        "SpendAssignment",
        back_populates="spend",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SpendAssignment.id",
    )

    __table_args__ = (
        Index("ix_spends_trip_id", "trip_id"),
        Index("ix_spends_paid_by", "paid_by"),
        Index("ix_spends_date", "date"),
    )

    @property
    def payer_name(self):
        return self.payer.name if self.payer else None

    @property
    def assigned_percentage(self) -> float:
        assigned = assignments_total(a.share_amount for a in self.assignments)
        return round(float(percent_assigned(self.amount, assigned)), 1)


class SpendItem(Base):
    __tablename__ = "spend_items"

    id = Column(Integer, primary_key=True, index=True)
    spend_id = Column(Integer, ForeignKey("spends.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    cost = Column(Numeric(12, 2), nullable=False)
    assigned_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    spend = relationship("Spend", back_populates="items")

    __table_args__ = (
        Index("ix_spend_items_spend_id", "spend_id"),
    )


class SpendAssignment(Base):
    __tablename__ = "spend_assignments"

    id = Column(Integer, primary_key=True, index=True)
    spend_id = Column(Integer, ForeignKey("spends.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    item_id = Column(Integer, ForeignKey("spend_items.id", ondelete="SET NULL"), nullable=True)
    share_amount = Column(Numeric(12, 2), nullable=False)
    normalized_share_amount = Column(Numeric(12, 2), nullable=False)
    split_type = Column(Enum(SplitType), nullable=False, default=SplitType.EXACT)
    split_value = Column(Numeric(12, 4), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    spend = relationship("Spend", back_populates="assignments")
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("spend_id", "user_id", name="uq_spend_assignment_user"),
        Index("ix_spend_assignments_user_id", "user_id"),
    )

    @property
    def user_name(self):
        return self.user.name if self.user else None
