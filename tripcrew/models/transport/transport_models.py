from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime

from tripcrew.core.database import Base


class TransportOffer(Base):
    __tablename__ = "transport_offers"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    from_location = Column(String, nullable=False)
    to_location = Column(String, nullable=False)
    departure_time = Column(DateTime, nullable=False)
    max_people = Column(Integer, nullable=True)
    max_gear_description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    creator = relationship("User", foreign_keys=[created_by], lazy="selectin")

    __table_args__ = (
        Index("ix_transport_offers_trip_id", "trip_id"),
    )

    @property
    def creator_name(self):
        return self.creator.name if self.creator else None


class TransportRequirement(Base):
    __tablename__ = "transport_requirements"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    from_location = Column(String, nullable=False)
    to_location = Column(String, nullable=False)
    earliest_time = Column(DateTime, nullable=False)
    latest_time = Column(DateTime, nullable=False)
    people_count = Column(Integer, nullable=False, default=1)
    gear_description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    creator = relationship("User", foreign_keys=[created_by], lazy="selectin")

    __table_args__ = (
        Index("ix_transport_requirements_trip_id", "trip_id"),
    )

    @property
    def creator_name(self):
        return self.creator.name if self.creator else None
