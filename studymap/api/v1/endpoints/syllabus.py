import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from studymap.api.deps import error_response, get_database
from studymap.db.database import Database
from studymap.db.repositories import ChapterRepository
from studymap.schemas.api import ErrorResponse, ExtractedChapter, SyllabusResponse
from studymap.services.syllabus_service import extract_chapters

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/syllabus/extract",
    response_model=SyllabusResponse,
    responses={400: {"model": ErrorResponse}},
)
async def extract_syllabus(
    file: UploadFile = File(...),
    exam_id: Optional[str] = Form(None, alias="examId"),
    db: Database = Depends(get_database),
):
    """
    Upload a syllabus (PDF or image) and get its chapters back.
    With `examId` the chapters are also saved and returned with their ids.
    """
    if not file.filename:
        return error_response(400, "No filename provided.")

    content = await file.read()
    try:
        drafts = await extract_chapters(content, file.filename)
    except ValueError as e:
        return error_response(400, str(e))

    chapters = [ExtractedChapter(title=d.title, content=d.topics) for d in drafts]

    if exam_id:
        ids = await ChapterRepository(db).create_many(
            exam_id, [{"title": c.title, "content": c.content} for c in chapters]
        )
        for chapter, chapter_id in zip(chapters, ids):
            chapter.id = chapter_id
        logger.info(f"[SYLLABUS] ✓ {len(ids)} chapters saved for exam {exam_id}")

    return SyllabusResponse(chapters=chapters)
