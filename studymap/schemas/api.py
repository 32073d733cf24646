"""
StudyMap: Response envelopes
=============================
Every error leaving the API is an ErrorResponse. `code` distinguishes the
conflict kinds; `stage` names the pipeline stage a generation failed in.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    status: str = "error"
    message: str
    code: Optional[str] = None
    stage: Optional[str] = None
    detail: Optional[str] = None


class GenerationStatusResponse(BaseModel):
    user_id: str = Field(..., alias="userId")
    is_generating_mind_map: bool = Field(..., alias="isGeneratingMindMap")
    is_generating_quiz: bool = Field(..., alias="isGeneratingQuiz")


class NoteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., serialization_alias="_id")
    description: str
    content: Optional[str] = None
    created_at: Any = Field(None, serialization_alias="createdAt")
    updated_at: Any = Field(None, serialization_alias="updatedAt")


class RegenerateNoteRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None


class ExtractedChapter(BaseModel):
    id: Optional[str] = Field(None, serialization_alias="_id")
    title: str
    content: List[str]


class SyllabusResponse(BaseModel):
    success: bool = True
    chapters: List[ExtractedChapter]


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    details: Dict[str, Any] = {}


class OrphanNotesResponse(BaseModel):
    """Notes no saved mind map references."""
    count: int
    notes: List[NoteResponse]
