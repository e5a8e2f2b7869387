# app/schemas/lesson_note.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LessonNoteUpsert(BaseModel):
    content: str = Field(..., max_length=20000)


class LessonNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    lesson_id: int
    content: str
    created_at: datetime
    updated_at: datetime
