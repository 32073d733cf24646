"""
StudyMap: Error taxonomy
=========================
Every failure the generation pipeline can surface derives from StudyMapError.
Routers map these onto HTTP status codes; stages raise the narrowest one.
"""


class StudyMapError(Exception):
    """Base class for all domain errors."""


class ProviderError(StudyMapError):
    """An external provider (LLM or video search) failed or timed out."""


class SynthesisError(StudyMapError):
    """The LLM produced no usable mind-map tree."""


class PersistenceError(StudyMapError):
    """A database read or write failed."""


class ChapterNotFoundError(StudyMapError):
    def __init__(self, chapter_id: str):
        super().__init__(f"Chapter '{chapter_id}' not found")
        self.chapter_id = chapter_id


class ConflictError(StudyMapError):
    """Request rejected without touching any state."""

    code = "conflict"


class MindMapExistsError(ConflictError):
    code = "mind_map_exists"

    def __init__(self, chapter_id: str):
        super().__init__(f"Mind map already exists for chapter '{chapter_id}'")
        self.chapter_id = chapter_id


class GenerationInProgressError(ConflictError):
    code = "generation_in_progress"

    def __init__(self, user_id: str, job: str = "mindmap"):
        super().__init__(f"A {job} generation is already in progress for user '{user_id}'")
        self.user_id = user_id
        self.job = job


class GenerationFailedError(StudyMapError):
    """A pipeline run aborted; `stage` names where it happened."""

    def __init__(self, stage: str, reason: str):
        super().__init__(f"Generation failed during {stage}: {reason}")
        self.stage = stage
        self.reason = reason
