import asyncio
import json

import pytest

from studymap.core.exceptions import (
    ChapterNotFoundError,
    GenerationFailedError,
    GenerationInProgressError,
    MindMapExistsError,
    PersistenceError,
)
from studymap.db.job_lock import JobKind, JobLock
from studymap.db.database import to_object_id
from studymap.pipeline.notes import NOTES_SYSTEM_PROMPT
from studymap.pipeline.orchestrator import GenerationStage, MindMapGenerator
from studymap.pipeline.synthesis import MINDMAP_SYSTEM_PROMPT
from studymap.pipeline.tree import iter_resources, note_ids
from studymap.schemas.mindmap import GenerateFromTopicsRequest, parse_tree


def _request(chapter_id, user_id="user-1"):
    return GenerateFromTopicsRequest(
        user_id=user_id,
        chapter_id=chapter_id,
        chapter_title="Physics Basics",
        topics=["Newton's Laws", "Integration by Parts"],
    )


@pytest.mark.asyncio
async def test_end_to_end(db, make_chapter, fake_llm, fake_search, test_settings):
    chapter_id = make_chapter()
    generator = MindMapGenerator(db, fake_llm, fake_search, test_settings)

    mind_map_id = await generator.generate(_request(chapter_id))

    doc = db.mindmaps.find_one({"_id": to_object_id(mind_map_id)})
    assert str(doc["chapterId"]) == chapter_id
    tree = parse_tree(doc["content"])
    assert tree.title == "Physics Basics"

    resources = [r for _, r in iter_resources(tree)]
    assert resources[0].data.url == "https://www.youtube.com/watch?v=newton1"
    notes = [r for r in resources if r.is_notes]
    assert len(notes) == 1
    assert notes[0].data.description is None
    assert "description" not in doc["content"]["subtopics"][1]["resources"][0]["data"]

    (note_id,) = list(note_ids(tree))
    note = db.notes.find_one({"_id": to_object_id(note_id)})
    assert note["content"] == "# Notes\n\nBody text."

    chapter = db.chapters.find_one({"_id": to_object_id(chapter_id)})
    assert str(chapter["mindmapId"]) == mind_map_id
    assert not await JobLock(db, JobKind.mindmap).is_held("user-1")
    assert sorted(fake_search.queries) == ["Integration by Parts", "Newton's Laws"]


@pytest.mark.asyncio
async def test_unparseable_synthesis_leaves_nothing_behind(db, make_chapter, fake_llm, fake_search, test_settings):
    chapter_id = make_chapter()
    fake_llm.mindmap = "Sorry, I can't help with that."
    generator = MindMapGenerator(db, fake_llm, fake_search, test_settings)

    with pytest.raises(GenerationFailedError) as exc:
        await generator.generate(_request(chapter_id))

    assert exc.value.stage == GenerationStage.SYNTHESIZING.value
    assert db.mindmaps.count_documents({}) == 0
    assert db.notes.count_documents({}) == 0
    assert not await JobLock(db, JobKind.mindmap).is_held("user-1")
    assert fake_llm.count(NOTES_SYSTEM_PROMPT) == 0


@pytest.mark.asyncio
async def test_duplicate_chapter_rejected_before_any_work(db, make_chapter, fake_llm, fake_search, test_settings):
    chapter_id = make_chapter()
    generator = MindMapGenerator(db, fake_llm, fake_search, test_settings)
    await generator.generate(_request(chapter_id))
    searches = len(fake_search.queries)

    with pytest.raises(MindMapExistsError):
        await generator.generate(_request(chapter_id))

    assert len(fake_search.queries) == searches
    assert fake_llm.count(MINDMAP_SYSTEM_PROMPT) == 1
    assert db.mindmaps.count_documents({}) == 1
    assert not await JobLock(db, JobKind.mindmap).is_held("user-1")


@pytest.mark.asyncio
async def test_unknown_chapter(db, fake_llm, fake_search, test_settings):
    generator = MindMapGenerator(db, fake_llm, fake_search, test_settings)
    with pytest.raises(ChapterNotFoundError):
        await generator.generate(_request("64b7f0000000000000000000"))
    assert db.generation_status.count_documents({}) == 0


@pytest.mark.asyncio
async def test_same_user_second_request_conflicts(db, make_chapter, fake_llm, fake_search, test_settings):
    first_chapter = make_chapter("Physics Basics")
    second_chapter = make_chapter("Calculus")
    entered = asyncio.Event()
    gate = asyncio.Event()

    async def slow_search(query, max_results=5):
        entered.set()
        await gate.wait()
        return await fake_search(query, max_results)

    generator = MindMapGenerator(db, fake_llm, slow_search, test_settings)
    lock = JobLock(db, JobKind.mindmap)

    first = asyncio.create_task(generator.generate(_request(first_chapter)))
    await entered.wait()

    with pytest.raises(GenerationInProgressError):
        await generator.generate(_request(second_chapter))

    # The loser must not release the winner's lock.
    assert await lock.is_held("user-1")

    gate.set()
    mind_map_id = await first
    assert mind_map_id
    assert not await lock.is_held("user-1")
    assert db.mindmaps.count_documents({}) == 1


@pytest.mark.asyncio
async def test_other_user_not_blocked(db, make_chapter, fake_llm, fake_search, test_settings):
    await JobLock(db, JobKind.mindmap).acquire("user-1")
    chapter_id = make_chapter()
    generator = MindMapGenerator(db, fake_llm, fake_search, test_settings)

    assert await generator.generate(_request(chapter_id, user_id="user-2"))


@pytest.mark.asyncio
async def test_failure_after_materialization_keeps_notes(db, make_chapter, fake_llm, fake_search, test_settings):
    chapter_id = make_chapter()
    generator = MindMapGenerator(db, fake_llm, fake_search, test_settings)

    async def broken_notes(tree):
        raise RuntimeError("worker crashed")

    generator.notes_generator.generate_notes = broken_notes

    with pytest.raises(GenerationFailedError) as exc:
        await generator.generate(_request(chapter_id))

    assert exc.value.stage == GenerationStage.GENERATING_NOTES.value
    assert db.notes.count_documents({}) == 1
    assert db.mindmaps.count_documents({}) == 0
    assert not await JobLock(db, JobKind.mindmap).is_held("user-1")


@pytest.mark.asyncio
async def test_model_note_ids_never_dangle(db, make_chapter, fake_llm, fake_search, test_settings):
    fake_llm.mindmap = json.dumps({
        "title": "Physics Basics",
        "is_end_node": False,
        "subtopics": [
            {"title": "Integration by Parts", "is_end_node": True, "resources": [
                {"type": "notes", "data": {"id": "note-1"}},
            ]},
        ],
    })
    chapter_id = make_chapter()
    mind_map_id = await MindMapGenerator(db, fake_llm, fake_search, test_settings).generate(_request(chapter_id))

    content = db.mindmaps.find_one({"_id": to_object_id(mind_map_id)})["content"]
    refs = list(note_ids(parse_tree(content)))
    assert len(refs) == 1 and refs[0] != "note-1"
    note = db.notes.find_one({"_id": to_object_id(refs[0])})
    assert note["content"] is not None


@pytest.mark.asyncio
async def test_link_failure_reports_persisting(db, make_chapter, fake_llm, fake_search, test_settings):
    chapter_id = make_chapter()
    generator = MindMapGenerator(db, fake_llm, fake_search, test_settings)

    async def broken_link(chapter_id, mind_map_id):
        raise PersistenceError("primary stepped down")

    generator.chapters.set_mind_map = broken_link

    with pytest.raises(GenerationFailedError) as exc:
        await generator.generate(_request(chapter_id))

    assert exc.value.stage == GenerationStage.PERSISTING.value
    assert not await JobLock(db, JobKind.mindmap).is_held("user-1")
    assert db.notes.count_documents({}) == 1


@pytest.mark.asyncio
async def test_duplicate_insert_caught_by_unique_index(db, make_chapter, fake_llm, fake_search, test_settings):
    chapter_id = make_chapter()
    generator = MindMapGenerator(db, fake_llm, fake_search, test_settings)
    # Another run saves its map after this run's guard has passed.
    db.mindmaps.insert_one({"chapterId": to_object_id(chapter_id), "content": {"title": "Earlier"}})

    async def not_yet(chapter_id):
        return False

    generator.mind_maps.exists_for_chapter = not_yet

    with pytest.raises(MindMapExistsError):
        await generator.generate(_request(chapter_id))

    assert db.mindmaps.count_documents({}) == 1
    assert not await JobLock(db, JobKind.mindmap).is_held("user-1")
