from datetime import date, datetime

from pydantic import BaseModel, Field

from review360.models.enums import CycleStatus


class ReviewCycleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    due_date: date | None = None


class ReviewCycleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    due_date: date | None = None


class ReviewCycleOut(BaseModel):
    id: str
    name: str
    status: CycleStatus
    due_date: date | None
    created_at: datetime
    updated_at: datetime
