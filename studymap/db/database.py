"""
StudyMap: MongoDB access
=========================
One Database object per process. It owns the MongoClient, is created at
startup and handed to every repository; nothing else opens connections.

pymongo is synchronous, so every call goes through `run()`, which moves it
onto a worker thread and converts driver errors into PersistenceError.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from bson.objectid import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from studymap.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a 24-hex id; None when it is not one."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc: Any) -> Any:
    """Make a Mongo document JSON-friendly (ObjectId → str, datetime → ISO)."""
    if isinstance(doc, dict):
        return {k: serialize_doc(v) for k, v in doc.items()}
    if isinstance(doc, list):
        return [serialize_doc(item) for item in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    return doc


class Database:
    """Connection owner. `connect()` / `with_connection()` are the entry points."""

    def __init__(self, uri: str, name: str, client: Optional[MongoClient] = None):
        self.uri = uri
        self.name = name
        self._client = client
        self._owns_client = client is None
        self._db = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def connect(self) -> "Database":
        if self._db is not None:
            return self
        if self._client is None:
            self._client = MongoClient(self.uri, serverSelectionTimeoutMS=5000, maxPoolSize=10)
        self._db = self._client[self.name]
        self._ensure_indexes()
        logger.info(f"[DB] ✓ Connected to database '{self.name}'")
        return self

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
        self._db = None
        logger.info("[DB] Connection closed")

    @asynccontextmanager
    async def with_connection(self):
        opened = self._db is None
        if opened:
            await asyncio.to_thread(self.connect)
        try:
            yield self
        finally:
            if opened:
                self.close()

    def _ensure_indexes(self) -> None:
        db = self._db
        db.generation_status.create_index([("userId", ASCENDING)], unique=True)
        db.mindmaps.create_index([("chapterId", ASCENDING)], unique=True)
        db.chapters.create_index([("examId", ASCENDING)])
        db.quizzes.create_index([("userId", ASCENDING)])

    # ── Access ───────────────────────────────────────────────────────────────

    def collection(self, name: str):
        if self._db is None:
            raise PersistenceError("Database is not connected")
        return self._db[name]

    @property
    def chapters(self):
        return self.collection("chapters")

    @property
    def mindmaps(self):
        return self.collection("mindmaps")

    @property
    def notes(self):
        return self.collection("notes")

    @property
    def generation_status(self):
        return self.collection("generation_status")

    @property
    def quizzes(self):
        return self.collection("quizzes")


async def run(fn: Callable, *args, **kwargs) -> Any:
    """Run a blocking driver call in a thread; driver errors become PersistenceError."""
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        logger.error(f"[DB] Operation failed: {e}")
        raise PersistenceError(str(e)) from e
