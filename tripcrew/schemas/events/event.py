from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime


class EventLogResponse(BaseModel):
    id: int
    entity: str
    entity_id: int
    event_type: str
    trip_id: Optional[int] = None
    by_user_id: Optional[int] = None
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True
