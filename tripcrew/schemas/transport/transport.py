from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime


# Offer schemas
class TransportOfferCreate(BaseModel):
    from_location: str = Field(..., min_length=1, max_length=200)
    to_location: str = Field(..., min_length=1, max_length=200)
    departure_time: datetime
    max_people: Optional[int] = Field(None, ge=1)
    max_gear_description: Optional[str] = None
    notes: Optional[str] = None


class TransportOfferUpdate(BaseModel):
    from_location: Optional[str] = Field(None, min_length=1, max_length=200)
    to_location: Optional[str] = Field(None, min_length=1, max_length=200)
    departure_time: Optional[datetime] = None
    max_people: Optional[int] = Field(None, ge=1)
    max_gear_description: Optional[str] = None
    notes: Optional[str] = None


class TransportOfferResponse(BaseModel):
    id: int
    trip_id: int
    created_by: int
    creator_name: Optional[str] = None
    from_location: str
    to_location: str
    departure_time: datetime
    max_people: Optional[int] = None
    max_gear_description: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Requirement schemas
class TransportRequirementCreate(BaseModel):
    from_location: str = Field(..., min_length=1, max_length=200)
    to_location: str = Field(..., min_length=1, max_length=200)
    earliest_time: datetime
    latest_time: datetime
    people_count: int = Field(1, ge=1)
    gear_description: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.latest_time < self.earliest_time:
            raise ValueError("latest_time cannot be before earliest_time")
        return self


class TransportRequirementUpdate(BaseModel):
    from_location: Optional[str] = Field(None, min_length=1, max_length=200)
    to_location: Optional[str] = Field(None, min_length=1, max_length=200)
    earliest_time: Optional[datetime] = None
    latest_time: Optional[datetime] = None
    people_count: Optional[int] = Field(None, ge=1)
    gear_description: Optional[str] = None
    notes: Optional[str] = None


class TransportRequirementResponse(BaseModel):
    id: int
    trip_id: int
    created_by: int
    creator_name: Optional[str] = None
    from_location: str
    to_location: str
    earliest_time: datetime
    latest_time: datetime
    people_count: int
    gear_description: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TripTransportResponse(BaseModel):
    offers: List[TransportOfferResponse]
    requirements: List[TransportRequirementResponse]
