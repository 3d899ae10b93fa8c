from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Literal, Optional, List
from datetime import date, datetime

from tripcrew.models.trips.trip_model import TripStatus, WindowStatus
from tripcrew.schemas.trip.timeline import TimelineItemResponse
from tripcrew.schemas.trip.trip_member import TripMemberOut


class TripBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    location: Optional[str] = None
    base_currency: str = Field(default="USD", min_length=3, max_length=3)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("base_currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class TripCreate(TripBase):
    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class TripUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    location: Optional[str] = None
    base_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: Optional[TripStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("base_currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class TripResponse(TripBase):
    id: int
    status: TripStatus
    rsvp_status: WindowStatus
    spend_status: WindowStatus
    join_code: Optional[str] = None
    created_by: int
    organizer_name: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MyTripResponse(TripResponse):
    my_role: str
    my_rsvp_status: str


class TripDetailResponse(BaseModel):
    trip: TripResponse
    members: List[TripMemberOut]
    timeline: List[TimelineItemResponse]
    my_role: str


# Body for the rsvp-status / spend-status endpoints; no action toggles
class WindowToggle(BaseModel):
    action: Optional[Literal["open", "close"]] = None


class WindowStatusResponse(BaseModel):
    trip_id: int
    status: WindowStatus


class JoinCodeResponse(BaseModel):
    trip_id: int
    join_code: str


class PublicTripPreview(BaseModel):
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    location: Optional[str] = None
    organizer_name: Optional[str] = None
    member_count: int = 0
