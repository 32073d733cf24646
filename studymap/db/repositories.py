import logging
from typing import Any, Dict, Iterable, List, Optional

from pymongo.errors import DuplicateKeyError

from studymap.core.exceptions import MindMapExistsError, PersistenceError
from studymap.db.database import Database, run, to_object_id, utcnow

logger = logging.getLogger(__name__)


class ChapterRepository:
    def __init__(self, database: Database):
        self.db = database

    async def get(self, chapter_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(chapter_id)
        if oid is None:
            return None
        return await run(self.db.chapters.find_one, {"_id": oid})

    async def find_many(self, chapter_ids: Iterable[str]) -> List[Dict[str, Any]]:
        oids = [oid for oid in map(to_object_id, chapter_ids) if oid is not None]
        if not oids:
            return []

        def _find():
            return list(self.db.chapters.find({"_id": {"$in": oids}}))

        return await run(_find)

    async def create_many(self, exam_id: Optional[str], chapters: List[Dict[str, Any]]) -> List[str]:
        """Insert chapters `{title, content: [topics]}`; returns their ids in order."""
        if not chapters:
            return []
        now = utcnow()
        docs = [
            {
                "examId": to_object_id(exam_id) or exam_id,
                "title": chapter["title"],
                "content": list(chapter.get("content") or []),
                "createdAt": now,
            }
            for chapter in chapters
        ]
        result = await run(self.db.chapters.insert_many, docs)
        return [str(oid) for oid in result.inserted_ids]

    async def set_mind_map(self, chapter_id: str, mind_map_id: str) -> None:
        oid = to_object_id(chapter_id)
        if oid is None:
            raise PersistenceError(f"Invalid chapter id '{chapter_id}'")
        result = await run(
            self.db.chapters.update_one,
            {"_id": oid},
            {"$set": {"mindmapId": to_object_id(mind_map_id)}},
        )
        if result.matched_count == 0:
            raise PersistenceError(f"Chapter '{chapter_id}' disappeared before it could be linked")


class MindMapRepository:
    def __init__(self, database: Database):
        self.db = database

    async def exists_for_chapter(self, chapter_id: str) -> bool:
        oid = to_object_id(chapter_id)
        doc = await run(self.db.mindmaps.find_one, {"chapterId": oid}, {"_id": 1})
        return doc is not None

    async def create(self, chapter_id: str, content: Dict[str, Any]) -> str:
        doc = {
            "chapterId": to_object_id(chapter_id),
            "content": content,
            "createdAt": utcnow(),
        }
        try:
            result = await run(self.db.mindmaps.insert_one, doc)
        except DuplicateKeyError as e:
            raise MindMapExistsError(chapter_id) from e
        return str(result.inserted_id)

    async def get(self, mind_map_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(mind_map_id)
        if oid is None:
            return None
        return await run(self.db.mindmaps.find_one, {"_id": oid})

    async def all_contents(self) -> List[Dict[str, Any]]:
        def _find():
            return [doc["content"] for doc in self.db.mindmaps.find({}, {"content": 1}) if doc.get("content")]

        return await run(_find)


class NoteRepository:
    def __init__(self, database: Database):
        self.db = database

    async def create(self, description: str) -> str:
        now = utcnow()
        try:
            result = await run(
                self.db.notes.insert_one,
                {"description": description, "content": None, "createdAt": now, "updatedAt": now},
            )
        except DuplicateKeyError as e:
            raise PersistenceError(str(e)) from e
        return str(result.inserted_id)

    async def get(self, note_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(note_id)
        if oid is None:
            return None
        return await run(self.db.notes.find_one, {"_id": oid})

    async def set_content(self, note_id: str, content: str) -> bool:
        oid = to_object_id(note_id)
        if oid is None:
            return False
        result = await run(
            self.db.notes.update_one,
            {"_id": oid},
            {"$set": {"content": content, "updatedAt": utcnow()}},
        )
        return result.matched_count > 0

    async def find_unreferenced(self, referenced_ids: Iterable[str]) -> List[Dict[str, Any]]:
        keep = [oid for oid in map(to_object_id, referenced_ids) if oid is not None]

        def _find():
            return list(self.db.notes.find({"_id": {"$nin": keep}}, {"description": 1, "createdAt": 1}))

        return await run(_find)


class QuizRepository:
    def __init__(self, database: Database):
        self.db = database

    async def create(self, quiz: Dict[str, Any]) -> str:
        doc = dict(quiz, createdAt=utcnow())
        result = await run(self.db.quizzes.insert_one, doc)
        return str(result.inserted_id)
