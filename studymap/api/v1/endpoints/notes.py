import logging

from fastapi import APIRouter, Depends, HTTPException

from studymap.api.deps import get_database, get_notes_generator
from studymap.db.database import Database, serialize_doc
from studymap.db.repositories import NoteRepository
from studymap.pipeline.notes import NotesGenerator
from studymap.pipeline.reconcile import find_orphan_notes
from studymap.schemas.api import NoteResponse, OrphanNotesResponse, RegenerateNoteRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _note_response(doc: dict) -> NoteResponse:
    doc = serialize_doc(doc)
    return NoteResponse(
        id=doc["_id"],
        description=doc.get("description") or "",
        content=doc.get("content"),
        created_at=doc.get("createdAt"),
        updated_at=doc.get("updatedAt"),
    )


@router.get("/notes/orphans", response_model=OrphanNotesResponse)
async def orphan_notes(db: Database = Depends(get_database)):
    """Notes left behind by failed runs. Listing only; nothing is deleted."""
    orphans = await find_orphan_notes(db)
    return OrphanNotesResponse(count=len(orphans), notes=[_note_response(doc) for doc in orphans])


@router.get("/notes/{note_id}", response_model=NoteResponse)
async def get_note(note_id: str, db: Database = Depends(get_database)):
    doc = await NoteRepository(db).get(note_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Note not found")
    return _note_response(doc)


@router.post("/notes/{note_id}/generate", response_model=NoteResponse)
async def regenerate_note(
    note_id: str,
    request: RegenerateNoteRequest,
    notes: NotesGenerator = Depends(get_notes_generator),
):
    """Rewrite an existing note's content, e.g. after a failed generation."""
    doc = await notes.regenerate(note_id, request.title, request.description)
    if doc is None:
        raise HTTPException(status_code=404, detail="Note not found")
    logger.info(f"[NOTES] Note {note_id} regenerated")
    return _note_response(doc)
