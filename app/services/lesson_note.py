# app/services/lesson_note.py
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.decorator import db_exception
from app.core.exceptions import ConflictError, ValidationError
from app.models.lesson_note import LessonNote

logger = logging.getLogger(__name__)


class LessonNoteService:
    """One free-text note per user per lesson."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @db_exception
    async def get_note(self, user_id: int, lesson_id: int) -> Optional[LessonNote]:
        result = await self.db.execute(
            select(LessonNote).where(
                LessonNote.user_id == user_id,
                LessonNote.lesson_id == lesson_id,
            )
        )
        return result.scalar_one_or_none()

    async def save_note(self, user_id: int, lesson_id: int, content: str) -> LessonNote:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Note content cannot be empty")

        note = await self.get_note(user_id, lesson_id)
        if note is None:
            try:
                return await self._insert_note(user_id, lesson_id, content)
            except ConflictError:
                note = await self.get_note(user_id, lesson_id)
                if note is None:
                    raise

        return await self._update_note(note, content)

    @db_exception
    async def _insert_note(self, user_id: int, lesson_id: int, content: str) -> LessonNote:
        note = LessonNote(user_id=user_id, lesson_id=lesson_id, content=content)
        self.db.add(note)
        await self.db.commit()
        await self.db.refresh(note)
        return note

    @db_exception
    async def _update_note(self, note: LessonNote, content: str) -> LessonNote:
        note.content = content
        await self.db.commit()
        await self.db.refresh(note)
        return note
