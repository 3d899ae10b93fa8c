from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Enum, Index, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
import enum

from tripcrew.core.database import Base


class SettlementStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class Settlement(Base):
    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    from_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    to_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    oldest_debt_date = Column(DateTime, nullable=True)
    status = Column(Enum(SettlementStatus), nullable=False, default=SettlementStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    from_user = relationship("User", foreign_keys=[from_user_id], lazy="selectin")
    to_user = relationship("User", foreign_keys=[to_user_id], lazy="selectin")
    payments = relationship(
        "SettlementPayment",
        back_populates="settlement",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SettlementPayment.paid_at",
    )

    __table_args__ = (
        Index("ix_settlements_trip_id", "trip_id"),
        Index("ix_settlements_status", "status"),
    )

    @property
    def from_user_name(self):
        return self.from_user.name if self.from_user else None

    @property
    def to_user_name(self):
        return self.to_user.name if self.to_user else None

    @property
    def total_paid(self) -> Decimal:
        return sum((Decimal(p.amount) for p in self.payments), Decimal("0.00"))

    @property
    def remaining(self) -> Decimal:
        return max(Decimal(self.amount) - self.total_paid, Decimal("0.00"))


class SettlementPayment(Base):
    __tablename__ = "settlement_payments"

    id = Column(Integer, primary_key=True, index=True)
    settlement_id = Column(Integer, ForeignKey("settlements.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    recorded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    settlement = relationship("Settlement", back_populates="payments")
