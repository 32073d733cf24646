import pytest

from studymap.core.exceptions import PersistenceError, ProviderError
from studymap.db.repositories import NoteRepository
from studymap.pipeline.materialization import Materializer
from studymap.pipeline.notes import NOTES_SYSTEM_PROMPT, NotesGenerator, fallback_notes
from studymap.pipeline.tree import note_ids
from studymap.schemas.mindmap import parse_tree
from conftest import PHYSICS_TREE


async def _materialized(db):
    return await Materializer(NoteRepository(db)).materialize(parse_tree(PHYSICS_TREE))


@pytest.mark.asyncio
async def test_notes_written_for_every_reference(db, fake_llm):
    tree = await _materialized(db)
    result = await NotesGenerator(NoteRepository(db), fake_llm, concurrency=1).generate_notes(tree)

    assert result is tree
    (note_id,) = list(note_ids(tree))
    note = await NoteRepository(db).get(note_id)
    assert note["content"] == "# Notes\n\nBody text."
    assert note["description"] == "Derive the formula and work two examples."


@pytest.mark.asyncio
async def test_provider_failure_stores_fallback(db, fake_llm):
    fake_llm.notes = ProviderError("rate limited")
    tree = await _materialized(db)
    await NotesGenerator(NoteRepository(db), fake_llm, concurrency=1).generate_notes(tree)

    (note_id,) = list(note_ids(tree))
    note = await NoteRepository(db).get(note_id)
    assert note["content"] == fallback_notes("Integration by Parts", "rate limited")
    assert note["content"].startswith("# Integration by Parts")


@pytest.mark.asyncio
async def test_empty_response_stores_fallback(db, fake_llm):
    fake_llm.notes = "   "
    tree = await _materialized(db)
    await NotesGenerator(NoteRepository(db), fake_llm, concurrency=1).generate_notes(tree)

    (note_id,) = list(note_ids(tree))
    content = (await NoteRepository(db).get(note_id))["content"]
    assert "Notes generation failed" in content


@pytest.mark.asyncio
async def test_fenced_markdown_is_unwrapped(db, fake_llm):
    fake_llm.notes = "```markdown\n# Parts\n\nuv - ∫v du\n```"
    tree = await _materialized(db)
    await NotesGenerator(NoteRepository(db), fake_llm, concurrency=1).generate_notes(tree)

    (note_id,) = list(note_ids(tree))
    assert (await NoteRepository(db).get(note_id))["content"] == "# Parts\n\nuv - ∫v du"


@pytest.mark.asyncio
async def test_notes_with_content_are_skipped(db, fake_llm):
    tree = await _materialized(db)
    generator = NotesGenerator(NoteRepository(db), fake_llm, concurrency=1)
    await generator.generate_notes(tree)
    await generator.generate_notes(tree)

    assert fake_llm.count(NOTES_SYSTEM_PROMPT) == 1


@pytest.mark.asyncio
async def test_regenerate_overwrites_content(db, fake_llm):
    tree = await _materialized(db)
    generator = NotesGenerator(NoteRepository(db), fake_llm, concurrency=1)
    await generator.generate_notes(tree)

    (note_id,) = list(note_ids(tree))
    fake_llm.notes = "# Integration by Parts\n\nSecond draft."
    doc = await generator.regenerate(note_id, "Integration by Parts")

    assert doc["content"] == "# Integration by Parts\n\nSecond draft."
    assert "Derive the formula" in fake_llm.calls[-1][1]


@pytest.mark.asyncio
async def test_regenerate_unknown_note(db, fake_llm):
    generator = NotesGenerator(NoteRepository(db), fake_llm)
    assert await generator.regenerate("64b7f0000000000000000000", "Anything") is None
    assert await generator.regenerate("not-an-id", "Anything") is None


@pytest.mark.asyncio
async def test_every_failed_update_is_logged(db, fake_llm, caplog):
    class DownNotes(NoteRepository):
        async def set_content(self, note_id, content):
            raise PersistenceError(f"cannot write {note_id}")

    tree = await Materializer(NoteRepository(db)).materialize(parse_tree({
        "title": "Calculus",
        "is_end_node": False,
        "subtopics": [
            {"title": "Limits", "is_end_node": True, "resources": [{"type": "notes", "data": {}}]},
            {"title": "Integrals", "is_end_node": True, "resources": [{"type": "notes", "data": {}}]},
        ],
    }))

    with pytest.raises(PersistenceError):
        await NotesGenerator(DownNotes(db), fake_llm, concurrency=1).generate_notes(tree)

    failures = [r.getMessage() for r in caplog.records if "[NOTES] ✗" in r.getMessage()]
    assert len(failures) == 2
    assert any("Limits" in m for m in failures)
    assert any("Integrals" in m for m in failures)
