from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from tripcrew.core.database import Base


class TripRole(str, enum.Enum):
    VIEWER = "VIEWER"
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


ROLE_LEVELS = {
    TripRole.VIEWER: 0,
    TripRole.MEMBER: 1,
    TripRole.ADMIN: 2,
    TripRole.OWNER: 3,
}


class RsvpStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    MAYBE = "MAYBE"


class TripMember(Base):
    __tablename__ = "trip_members"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(Enum(TripRole), nullable=False, default=TripRole.MEMBER)
    rsvp_status = Column(Enum(RsvpStatus), nullable=False, default=RsvpStatus.PENDING)
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    joined_at = Column(DateTime, default=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    # To ensure no duplicate members in a trip
    __table_args__ = (
        UniqueConstraint("trip_id", "user_id", name="uq_trip_user"),
        Index("ix_trip_members_user_id", "user_id"),
    )

    trip = relationship("Trip", back_populates="members")
    user = relationship("User", back_populates="memberships", foreign_keys=[user_id], lazy="selectin")

    @property
    def is_organizer(self) -> bool:
        return self.role in (TripRole.ADMIN, TripRole.OWNER)

    def has_role(self, min_role: TripRole) -> bool:
        return ROLE_LEVELS[self.role] >= ROLE_LEVELS[min_role]
