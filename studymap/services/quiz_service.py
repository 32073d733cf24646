import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from studymap.core.config import settings
from studymap.core.exceptions import ChapterNotFoundError, ProviderError, SynthesisError
from studymap.db.database import Database
from studymap.db.job_lock import JobKind, JobLock
from studymap.db.repositories import ChapterRepository, QuizRepository
from studymap.schemas.quiz import TIME_LIMITS, Difficulty, QuizDraft, QuizRequest, QuizResponse
from studymap.services import llm_service
from studymap.services.llm_service import CompleteFn, clean_and_parse_json

logger = logging.getLogger(__name__)


DIFFICULTY_INSTRUCTIONS = {
    Difficulty.easy: "Focus on basic concepts, definitions, and simple recall questions.",
    Difficulty.medium: "Include application questions, scenario-based problems, and moderate analytical thinking.",
    Difficulty.hard: "Create complex analytical questions, critical thinking problems, and advanced application scenarios.",
}


def build_quiz_system_prompt(num_questions: int, difficulty: Difficulty) -> str:
    return (
        "You are an expert quiz generator for educational content.\n"
        "Create high-quality multiple-choice questions based on the provided chapters and topics.\n\n"
        "Rules:\n"
        f"1. Generate exactly {num_questions} questions.\n"
        "2. Each question has exactly 4 options; exactly one is correct.\n"
        "3. Include a brief explanation of the correct answer.\n"
        f"4. {DIFFICULTY_INSTRUCTIONS[difficulty]}\n"
        "5. Distribute questions across the chapters; avoid trick questions.\n\n"
        "Output MUST be valid JSON matching this exact schema:\n"
        "{\n"
        '  "questions": [\n'
        "    {\n"
        '      "question": "string",\n'
        '      "options": ["A", "B", "C", "D"],\n'
        '      "correctAnswer": 0,\n'
        '      "explanation": "string"\n'
        "    }\n"
        "  ]\n"
        "}\n"
        "correctAnswer is the 0-3 index of the correct option."
    )


def build_quiz_user_prompt(chapters: List[Dict[str, Any]], difficulty: Difficulty, num_questions: int) -> str:
    topics_text = "\n\n".join(
        f"Chapter: {chapter.get('title', '')}\nTopics: {', '.join(chapter.get('content') or [])}"
        for chapter in chapters
    )
    return (
        f"Generate a {difficulty.value} difficulty quiz with {num_questions} multiple-choice questions "
        f"based on these chapters:\n\n{topics_text}"
    )


class QuizGenerator:
    """Quiz over selected chapters; one quiz generation per user at a time."""

    def __init__(self, database: Database, complete: Optional[CompleteFn] = None):
        self.complete = complete or llm_service.complete
        self.chapters = ChapterRepository(database)
        self.quizzes = QuizRepository(database)
        self.lock = JobLock(database, JobKind.quiz)

    async def generate(self, request: QuizRequest) -> QuizResponse:
        chapters = await self.chapters.find_many(request.chapter_ids)
        if not chapters:
            raise ChapterNotFoundError(", ".join(request.chapter_ids))

        async with self.lock.hold(request.user_id):
            logger.info(f"[QUIZ] Starting: {request.num_questions} questions, difficulty={request.difficulty.value}")
            try:
                raw = await self.complete(
                    build_quiz_system_prompt(request.num_questions, request.difficulty),
                    build_quiz_user_prompt(chapters, request.difficulty, request.num_questions),
                    max_tokens=settings.QUIZ_MAX_TOKENS,
                    json_mode=True,
                )
                draft = QuizDraft(**clean_and_parse_json(raw))
            except ProviderError as e:
                raise SynthesisError(f"LLM call failed: {e}") from e
            except (ValueError, TypeError, ValidationError) as e:
                raise SynthesisError(f"Invalid quiz from model: {e}") from e

            titles = ", ".join(chapter.get("title", "") for chapter in chapters)
            title = f"Quiz - {request.difficulty.value.capitalize()} ({titles})"
            time_limit = TIME_LIMITS[request.difficulty]
            quiz_id = await self.quizzes.create({
                "userId": request.user_id,
                "examId": request.exam_id or None,
                "chapterIds": [str(chapter["_id"]) for chapter in chapters],
                "title": title,
                "difficulty": request.difficulty.value,
                "questions": [q.model_dump(by_alias=True) for q in draft.questions],
                "totalQuestions": len(draft.questions),
                "timeLimit": time_limit,
            })

        logger.info(f"[QUIZ] ✓ Quiz {quiz_id} saved with {len(draft.questions)} questions")
        return QuizResponse(
            id=quiz_id,
            title=title,
            difficulty=request.difficulty,
            total_questions=len(draft.questions),
            time_limit=time_limit,
            questions=draft.questions,
        )
