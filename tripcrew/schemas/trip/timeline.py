from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class TimelineItemCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    date: Optional[datetime] = None
    order: Optional[int] = None


class TimelineItemUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    date: Optional[datetime] = None
    order: Optional[int] = None


class TimelineItemResponse(BaseModel):
    id: int
    trip_id: int
    title: str
    description: Optional[str] = None
    date: Optional[datetime] = None
    is_completed: bool
    completed_at: Optional[datetime] = None
    order: int

    class Config:
        from_attributes = True
