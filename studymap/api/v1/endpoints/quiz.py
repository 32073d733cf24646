import logging

from fastapi import APIRouter, Depends

from studymap.api.deps import error_response, get_quiz_generator
from studymap.core.exceptions import ChapterNotFoundError, ConflictError, SynthesisError
from studymap.schemas.api import ErrorResponse
from studymap.schemas.quiz import QuizRequest, QuizResponse
from studymap.services.quiz_service import QuizGenerator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/quiz/generate",
    status_code=201,
    response_model=QuizResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def generate_quiz(
    request: QuizRequest,
    generator: QuizGenerator = Depends(get_quiz_generator),
):
    """Generate and save a multiple-choice quiz over the selected chapters."""
    try:
        return await generator.generate(request)
    except ChapterNotFoundError as e:
        return error_response(404, str(e), code="chapter_not_found")
    except ConflictError as e:
        return error_response(409, str(e), code=e.code)
    except SynthesisError as e:
        logger.error(f"[QUIZ] ✗ Generation failed: {e}")
        return error_response(502, "Quiz generation failed.", code="generation_failed", detail=str(e))
