from sqlalchemy import Column, Integer, String, Date, ForeignKey, Enum, DateTime, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from tripcrew.core.database import Base


class TripStatus(str, enum.Enum):
    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class WindowStatus(str, enum.Enum):
    """Open/closed state of the RSVP window and of trip-wide spending."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    base_currency = Column(String(3), nullable=False, default="USD")
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(Enum(TripStatus), nullable=False, default=TripStatus.PLANNING)
    rsvp_status = Column(Enum(WindowStatus), nullable=False, default=WindowStatus.OPEN)
    spend_status = Column(Enum(WindowStatus), nullable=False, default=WindowStatus.OPEN)
    join_code = Column(String(12), unique=True, index=True, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    creator = relationship("User", foreign_keys=[created_by], lazy="selectin")
    members = relationship("TripMember", back_populates="trip", cascade="all, delete")
    timeline_items = relationship(
        "TimelineItem",
        back_populates="trip",
        cascade="all, delete",
        order_by="TimelineItem.order",
    )

    @property
    def organizer_name(self):
        return self.creator.name if self.creator else None

    def to_dict(self):
        """Convert Trip instance to dictionary for caching"""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "base_currency": self.base_currency,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "status": self.status.value,
            "rsvp_status": self.rsvp_status.value,
            "spend_status": self.spend_status.value,
            "join_code": self.join_code,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
