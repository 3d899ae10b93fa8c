from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, JSON
from datetime import datetime

from tripcrew.core.database import Base


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, index=True)
    entity = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=False)
    event_type = Column(String, nullable=False)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=True)
    by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_event_logs_trip_id", "trip_id"),
        Index("ix_event_logs_entity", "entity", "entity_id"),
    )
