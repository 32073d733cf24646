from typing import Optional

from fastapi import Depends, Request
from fastapi.responses import JSONResponse

from studymap.core.config import settings
from studymap.db.database import Database
from studymap.db.repositories import NoteRepository
from studymap.pipeline.notes import NotesGenerator
from studymap.pipeline.orchestrator import MindMapGenerator
from studymap.schemas.api import ErrorResponse
from studymap.services import llm_service
from studymap.services.quiz_service import QuizGenerator


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_generator(db: Database = Depends(get_database)) -> MindMapGenerator:
    return MindMapGenerator(db)


def get_notes_generator(db: Database = Depends(get_database)) -> NotesGenerator:
    return NotesGenerator(
        NoteRepository(db), llm_service.complete, settings.NOTES_MAX_TOKENS, settings.NOTES_CONCURRENCY
    )


def get_quiz_generator(db: Database = Depends(get_database)) -> QuizGenerator:
    return QuizGenerator(db)


def error_response(
    status_code: int,
    message: str,
    code: Optional[str] = None,
    stage: Optional[str] = None,
    detail: Optional[str] = None,
) -> JSONResponse:
    body = ErrorResponse(message=message, code=code, stage=stage, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump())
