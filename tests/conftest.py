import json
from datetime import datetime, timezone

import mongomock
import pytest

from studymap.core.config import Settings
from studymap.db.database import Database
from studymap.pipeline.notes import NOTES_SYSTEM_PROMPT
from studymap.pipeline.synthesis import MINDMAP_SYSTEM_PROMPT
from studymap.schemas.mindmap import VideoCandidate


PHYSICS_TREE = {
    "title": "Physics Basics",
    "is_end_node": False,
    "subtopics": [
        {
            "title": "Newton's Laws",
            "is_end_node": True,
            "resources": [
                {"id": "res-1", "type": "youtube_link", "data": {"url": "https://www.youtube.com/watch?v=newton1"}}
            ],
        },
        {
            "title": "Integration by Parts",
            "is_end_node": True,
            "resources": [
                {"id": "res-2", "type": "notes", "data": {"description": "Derive the formula and work two examples."}}
            ],
        },
    ],
}


class FakeLLM:
    """Answers by system prompt. A response that is an Exception is raised."""

    def __init__(self, mindmap=None, notes="# Notes\n\nBody text.", quiz=None):
        self.mindmap = json.dumps(PHYSICS_TREE) if mindmap is None else mindmap
        self.notes = notes
        self.quiz = quiz
        self.calls = []

    async def __call__(self, system_prompt, user_prompt, max_tokens=4000, json_mode=True, primary="groq"):
        self.calls.append((system_prompt, user_prompt))
        if system_prompt == MINDMAP_SYSTEM_PROMPT:
            response = self.mindmap
        elif system_prompt == NOTES_SYSTEM_PROMPT:
            response = self.notes
        else:
            response = self.quiz
        if isinstance(response, Exception):
            raise response
        return response

    def count(self, system_prompt):
        return sum(1 for s, _ in self.calls if s == system_prompt)


class FakeSearch:
    def __init__(self, per_topic=3):
        self.per_topic = per_topic
        self.queries = []

    async def __call__(self, query, max_results=5):
        self.queries.append(query)
        slug = query.lower().replace(" ", "-").replace("'", "")
        return [
            VideoCandidate(
                title=f"{query} explained #{i}",
                url=f"https://www.youtube.com/watch?v={slug}{i}",
                length="10:00",
                views="1.2M",
                likes="30K",
            )
            for i in range(self.per_topic)
        ]


@pytest.fixture
def db():
    database = Database("mongodb://localhost:27017", "studymap_test", client=mongomock.MongoClient()).connect()
    yield database
    database.close()


@pytest.fixture
def test_settings():
    return Settings(NOTES_CONCURRENCY=1, VIDEO_RESULTS_PER_TOPIC=5)


@pytest.fixture
def make_chapter(db):
    def _make(title="Physics Basics", topics=("Newton's Laws", "Integration by Parts")):
        result = db.chapters.insert_one({
            "examId": None,
            "title": title,
            "content": list(topics),
            "createdAt": datetime.now(timezone.utc),
        })
        return str(result.inserted_id)

    return _make


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_search():
    return FakeSearch()
