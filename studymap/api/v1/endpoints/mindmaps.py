import logging

from fastapi import APIRouter, Depends, HTTPException

from studymap.api.deps import error_response, get_database, get_generator
from studymap.core.exceptions import (
    ChapterNotFoundError,
    ConflictError,
    GenerationFailedError,
)
from studymap.db.database import Database, serialize_doc
from studymap.db.job_lock import get_generation_status
from studymap.db.repositories import MindMapRepository
from studymap.pipeline.orchestrator import MindMapGenerator
from studymap.schemas.api import ErrorResponse, GenerationStatusResponse
from studymap.schemas.mindmap import (
    GenerateFromTopicsRequest,
    GenerateFromTopicsResponse,
    MindMapDocument,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/mind-maps/generate-from-topics",
    status_code=201,
    response_model=GenerateFromTopicsResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def generate_from_topics(
    request: GenerateFromTopicsRequest,
    generator: MindMapGenerator = Depends(get_generator),
):
    """Build, enrich and save the mind map for a chapter."""
    try:
        mind_map_id = await generator.generate(request)
    except ChapterNotFoundError as e:
        return error_response(404, str(e), code="chapter_not_found")
    except ConflictError as e:
        return error_response(409, str(e), code=e.code)
    except GenerationFailedError as e:
        return error_response(
            500, "Mind map generation failed.", code="generation_failed", stage=e.stage, detail=e.reason
        )
    return GenerateFromTopicsResponse(mind_map_id=mind_map_id)


@router.get("/mind-maps/{mind_map_id}", response_model=MindMapDocument)
async def get_mind_map(mind_map_id: str, db: Database = Depends(get_database)):
    doc = await MindMapRepository(db).get(mind_map_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Mind map not found")
    doc = serialize_doc(doc)
    return MindMapDocument(
        id=doc["_id"],
        chapter_id=doc["chapterId"],
        content=doc["content"],
        created_at=doc.get("createdAt"),
    )


@router.get("/generation-status/{user_id}", response_model=GenerationStatusResponse)
async def generation_status(user_id: str, db: Database = Depends(get_database)):
    return GenerationStatusResponse(**await get_generation_status(db, user_id))
