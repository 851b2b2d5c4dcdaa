from datetime import datetime

from pydantic import BaseModel, Field


class QuestionCreate(BaseModel):
    category: str = Field(min_length=1, max_length=200)
    text: str = Field(min_length=1, max_length=2000)


class QuestionUpdate(BaseModel):
    category: str | None = Field(default=None, min_length=1, max_length=200)
    text: str | None = Field(default=None, min_length=1, max_length=2000)


class QuestionGenerateRequest(BaseModel):
    replace: bool = False


class QuestionOut(BaseModel):
    id: str
    organization_id: str | None
    category: str
    text: str
    position: int
    shared: bool
    created_at: datetime
