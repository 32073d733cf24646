from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List
from enum import Enum


class Difficulty(str, Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


# Minutes allowed per attempt.
TIME_LIMITS = {Difficulty.easy: 15, Difficulty.medium: 20, Difficulty.hard: 30}


# ── Request ──────────────────────────────────────────────────────────────────

class QuizRequest(BaseModel):
    """Request body for quiz generation over selected chapters."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    exam_id: str = Field(default="", alias="examId")
    chapter_ids: List[str] = Field(..., alias="chapterIds", min_length=1)
    difficulty: Difficulty = Field(default=Difficulty.medium, description="Desired difficulty level")
    num_questions: int = Field(default=10, ge=1, le=30, alias="numberOfQuestions")


# ── Response ─────────────────────────────────────────────────────────────────

class QuizQuestion(BaseModel):
    """A multiple-choice question: exactly 4 options, one correct index."""
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=4, max_length=4)
    correct_answer: int = Field(..., ge=0, le=3, alias="correctAnswer")
    explanation: str = ""

    @field_validator("question", "explanation")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()

    @field_validator("options")
    @classmethod
    def _strip_options(cls, v: List[str]) -> List[str]:
        return [opt.strip() for opt in v]


class QuizDraft(BaseModel):
    questions: List[QuizQuestion] = Field(..., min_length=1)


class QuizResponse(BaseModel):
    """Saved quiz summary returned to the client."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., serialization_alias="_id")
    title: str
    difficulty: Difficulty
    total_questions: int = Field(..., serialization_alias="totalQuestions")
    time_limit: int = Field(..., serialization_alias="timeLimit")
    questions: List[QuizQuestion]
