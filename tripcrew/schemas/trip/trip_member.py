from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import List, Literal, Dict, Optional

from tripcrew.models.trips.trip_member import TripRole, RsvpStatus


class TripMemberUser(BaseModel):
    id: int
    email: str
    display_name: Optional[str] = None

    model_config = {"from_attributes": True}


class TripMemberOut(BaseModel):
    id: int
    trip_id: int
    user_id: int
    user: TripMemberUser
    role: TripRole
    rsvp_status: RsvpStatus
    joined_at: datetime

    model_config = {"from_attributes": True}


class TripMemberListResponse(BaseModel):
    members: List[TripMemberOut]
    rsvp_counts: Dict[str, int]


class InviteRequest(BaseModel):
    emails: List[EmailStr] = Field(..., min_length=1)


class InviteResult(BaseModel):
    invited: List[str]
    already_members: List[str]
    not_found: List[str]


class RsvpUpdate(BaseModel):
    rsvp_status: Literal["ACCEPTED", "DECLINED", "MAYBE"]


# OWNER cannot be granted through a role change
class RoleUpdate(BaseModel):
    role: Literal["VIEWER", "MEMBER", "ADMIN"]
