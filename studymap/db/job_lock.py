"""
StudyMap: Per-user job lock
============================
A lock is a boolean on the user's `generation_status` record, one per job
kind. Every mutation is a single conditional update:

  acquire : flag false/absent  → true   (and store an owner token)
  release : flag true + token  → false

Because the record lives in MongoDB the lock holds across processes. The
owner token keeps a run from releasing a lock another run holds.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from typing import Dict, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from studymap.core.exceptions import GenerationInProgressError
from studymap.db.database import Database, run, utcnow

logger = logging.getLogger(__name__)


class JobKind(str, Enum):
    mindmap = "mindmap"
    quiz = "quiz"


_FIELDS = {
    JobKind.mindmap: ("isGeneratingMindMap", "mindMapLockToken"),
    JobKind.quiz: ("isGeneratingQuiz", "quizLockToken"),
}


class JobLock:
    def __init__(self, database: Database, job: JobKind):
        self.db = database
        self.job = job
        self.flag, self.token_field = _FIELDS[job]

    @staticmethod
    def new_token() -> str:
        return uuid.uuid4().hex

    async def acquire(self, user_id: str, token: Optional[str] = None) -> Optional[str]:
        """Take the lock for `user_id`. Returns the owner token, or None if held."""
        token = token or self.new_token()
        collection = self.db.generation_status

        def _acquire():
            try:
                collection.update_one(
                    {"userId": user_id},
                    {"$setOnInsert": {"isGeneratingMindMap": False, "isGeneratingQuiz": False, "updatedAt": utcnow()}},
                    upsert=True,
                )
            except DuplicateKeyError:
                # A concurrent first-time upsert created it.
                pass
            return collection.find_one_and_update(
                {"userId": user_id, self.flag: {"$ne": True}},
                {"$set": {self.flag: True, self.token_field: token, "updatedAt": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )

        doc = await run(_acquire)
        if doc is None or not doc.get(self.flag):
            logger.info(f"[LOCK] ✗ {self.job.value} lock already held for user {user_id}")
            return None
        logger.info(f"[LOCK] ✓ {self.job.value} lock acquired for user {user_id}")
        return token

    async def release(self, user_id: str, token: Optional[str] = None) -> bool:
        """Clear the flag. With a token, only the owner's lock is cleared."""
        query = {"userId": user_id, self.flag: True}
        if token is not None:
            query[self.token_field] = token
        result = await run(
            self.db.generation_status.update_one,
            query,
            {"$set": {self.flag: False, "updatedAt": utcnow()}, "$unset": {self.token_field: ""}},
        )
        released = result.modified_count > 0
        if released:
            logger.info(f"[LOCK] {self.job.value} lock released for user {user_id}")
        return released

    async def is_held(self, user_id: str) -> bool:
        doc = await run(self.db.generation_status.find_one, {"userId": user_id}, {self.flag: 1})
        return bool(doc and doc.get(self.flag))

    @asynccontextmanager
    async def hold(self, user_id: str):
        token = await self.acquire(user_id)
        if token is None:
            raise GenerationInProgressError(user_id, self.job.value)
        try:
            yield token
        finally:
            await self.release(user_id, token)


async def get_generation_status(database: Database, user_id: str) -> Dict[str, bool]:
    doc = await run(database.generation_status.find_one, {"userId": user_id}) or {}
    return {
        "userId": user_id,
        "isGeneratingMindMap": bool(doc.get("isGeneratingMindMap")),
        "isGeneratingQuiz": bool(doc.get("isGeneratingQuiz")),
    }
