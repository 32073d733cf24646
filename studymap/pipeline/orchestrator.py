"""
StudyMap: Mind-map generation
==============================
Single entry point for one generation request:

  LOCK_ACQUIRING → ENRICHING → SYNTHESIZING → MATERIALIZING
                 → GENERATING_NOTES → PERSISTING → DONE

Any stage may fail; the per-user lock is released on every exit path.
Notes created before a failure are kept (they are reusable on retry).
Locking is per user, not per chapter: a user generates one chapter at a time.
"""

import logging
from enum import Enum
from typing import Optional

from studymap.core.config import Settings, settings as default_settings
from studymap.core.exceptions import (
    ChapterNotFoundError,
    ConflictError,
    GenerationFailedError,
    GenerationInProgressError,
    MindMapExistsError,
    PersistenceError,
    StudyMapError,
)
from studymap.db.database import Database
from studymap.db.job_lock import JobKind, JobLock
from studymap.db.repositories import ChapterRepository, MindMapRepository, NoteRepository
from studymap.pipeline.enrichment import SearchFn, VideoEnricher
from studymap.pipeline.materialization import Materializer
from studymap.pipeline.notes import NotesGenerator
from studymap.pipeline.synthesis import MindMapSynthesizer
from studymap.schemas.mindmap import GenerateFromTopicsRequest, dump_tree
from studymap.services import llm_service, youtube_service
from studymap.services.llm_service import CompleteFn

logger = logging.getLogger(__name__)


class GenerationStage(str, Enum):
    IDLE = "idle"
    LOCK_ACQUIRING = "lock_acquiring"
    ENRICHING = "enriching"
    SYNTHESIZING = "synthesizing"
    MATERIALIZING = "materializing"
    GENERATING_NOTES = "generating_notes"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class MindMapGenerator:
    def __init__(
        self,
        database: Database,
        complete: Optional[CompleteFn] = None,
        search: Optional[SearchFn] = None,
        settings: Settings = default_settings,
    ):
        complete = complete or llm_service.complete
        search = search or youtube_service.search_videos

        self.chapters = ChapterRepository(database)
        self.mind_maps = MindMapRepository(database)
        self.notes = NoteRepository(database)
        self.lock = JobLock(database, JobKind.mindmap)

        self.enricher = VideoEnricher(search, settings.VIDEO_RESULTS_PER_TOPIC)
        self.synthesizer = MindMapSynthesizer(complete, settings.MINDMAP_MAX_TOKENS)
        self.materializer = Materializer(self.notes)
        self.notes_generator = NotesGenerator(
            self.notes, complete, settings.NOTES_MAX_TOKENS, settings.NOTES_CONCURRENCY
        )

    async def generate(self, request: GenerateFromTopicsRequest) -> str:
        """Run the whole pipeline; returns the new mind map id."""
        user_id, chapter_id = request.user_id, request.chapter_id

        # Guards: nothing has been written yet.
        if await self.chapters.get(chapter_id) is None:
            raise ChapterNotFoundError(chapter_id)
        if await self.mind_maps.exists_for_chapter(chapter_id):
            raise MindMapExistsError(chapter_id)

        token = self.lock.new_token()
        stage = GenerationStage.LOCK_ACQUIRING
        logger.info(f"[GENERATE] user={user_id} chapter={chapter_id} topics={len(request.topics)}")
        try:
            if await self.lock.acquire(user_id, token) is None:
                raise GenerationInProgressError(user_id)

            stage = GenerationStage.ENRICHING
            enriched = await self.enricher.enrich(request.topics)

            stage = GenerationStage.SYNTHESIZING
            tree = await self.synthesizer.synthesize(enriched, request.chapter_title)

            stage = GenerationStage.MATERIALIZING
            tree = await self.materializer.materialize(tree)

            stage = GenerationStage.GENERATING_NOTES
            tree = await self.notes_generator.generate_notes(tree)

            stage = GenerationStage.PERSISTING
            mind_map_id = await self.mind_maps.create(chapter_id, dump_tree(tree))
            await self.chapters.set_mind_map(chapter_id, mind_map_id)

            stage = GenerationStage.DONE
            logger.info(f"[GENERATE] ✓ Mind map {mind_map_id} saved for chapter {chapter_id}")
            return mind_map_id

        except ConflictError:
            raise
        except StudyMapError as e:
            logger.error(f"[GENERATE] ✗ Failed during {stage.value}: {e}")
            raise GenerationFailedError(stage.value, str(e)) from e
        except Exception as e:
            logger.error(f"[GENERATE] ✗ Unexpected error during {stage.value}: {e}", exc_info=True)
            raise GenerationFailedError(stage.value, str(e)) from e
        finally:
            await self._release(user_id, token)

    async def _release(self, user_id: str, token: str) -> None:
        # Token-matched: a no-op when this run never took the lock.
        try:
            await self.lock.release(user_id, token)
        except PersistenceError as e:
            logger.error(f"[LOCK] Could not release mindmap lock for user {user_id}: {e}")
