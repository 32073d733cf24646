"""
Orphan-note report. Notes outlive a generation run that failed after
materialization; this lists the ones no saved mind map points at.
Deleting them is left to the caller.
"""

import logging
from typing import Any, Dict, List, Set

from pydantic import ValidationError

from studymap.db.database import Database
from studymap.db.repositories import MindMapRepository, NoteRepository
from studymap.pipeline.tree import note_ids
from studymap.schemas.mindmap import parse_tree

logger = logging.getLogger(__name__)


async def referenced_note_ids(database: Database) -> Set[str]:
    referenced: Set[str] = set()
    for content in await MindMapRepository(database).all_contents():
        try:
            referenced.update(note_ids(parse_tree(content)))
        except ValidationError as e:
            logger.warning(f"[RECONCILE] Skipping unreadable mind map content: {e.error_count()} errors")
    return referenced


async def find_orphan_notes(database: Database) -> List[Dict[str, Any]]:
    referenced = await referenced_note_ids(database)
    orphans = await NoteRepository(database).find_unreferenced(referenced)
    logger.info(f"[RECONCILE] {len(orphans)} orphan notes ({len(referenced)} referenced)")
    return orphans
