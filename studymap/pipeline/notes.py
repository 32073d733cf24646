"""
StudyMap: Notes generation
===========================
Fill in the placeholder Notes created by materialization. Each note is one
LLM call and one update; a failed call stores a stub instead, so every
referenced note ends up with displayable content.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from studymap.core.exceptions import ProviderError
from studymap.db.repositories import NoteRepository
from studymap.pipeline.tree import Node, iter_resources
from studymap.services.llm_service import CompleteFn, strip_code_fences

logger = logging.getLogger(__name__)


NOTES_SYSTEM_PROMPT = (
    "You are a specialized AI for creating comprehensive educational notes.\n"
    "Generate clear, well-structured study notes on the given topic: key concepts, definitions, "
    "explanations, examples and important points to remember.\n\n"
    "Return ONLY the notes in Markdown. No text about your process, nothing outside the notes."
)


def build_notes_prompt(title: str, description: Optional[str]) -> str:
    return (
        f'Generate comprehensive educational notes for the topic: "{title}"\n\n'
        f'Additional context for the notes: "{description or ""}"\n\n'
        "The notes should:\n"
        "1. Start with a clear heading (# Topic Title)\n"
        "2. Include a short introduction\n"
        "3. Organize content under section headings (## Section) and subsections (### Subsection)\n"
        "4. Use bullet points and numbered lists for clarity\n"
        "5. Put key terms and definitions in **bold**\n"
        "6. Include worked examples or formulas where relevant\n"
        "7. End with a summary of key takeaways"
    )


def fallback_notes(title: str, reason: str) -> str:
    return f"# {title}\n\n*Notes generation failed: {reason}. Please try regenerating these notes.*\n"


class NotesGenerator:
    def __init__(
        self,
        notes: NoteRepository,
        complete: CompleteFn,
        max_tokens: int = 3000,
        concurrency: int = 4,
    ):
        self.notes = notes
        self.complete = complete
        self.max_tokens = max_tokens
        self.concurrency = max(1, concurrency)

    async def write(self, title: str, description: Optional[str]) -> str:
        """Markdown for one topic. Never raises for provider failures."""
        try:
            text = await self.complete(
                NOTES_SYSTEM_PROMPT,
                build_notes_prompt(title, description),
                max_tokens=self.max_tokens,
                json_mode=False,
            )
        except ProviderError as e:
            logger.warning(f"[NOTES] Generation failed for {title!r}: {e}")
            return fallback_notes(title, str(e))

        text = strip_code_fences(text or "")
        if not text.strip():
            logger.warning(f"[NOTES] Empty notes for {title!r}")
            return fallback_notes(title, "the model returned no content")
        return text

    async def generate_notes(self, tree: Node) -> Node:
        targets: List[Tuple[str, str]] = []
        seen = set()
        for leaf, resource in iter_resources(tree):
            if resource.is_notes and resource.data.id and resource.data.id not in seen:
                seen.add(resource.data.id)
                targets.append((leaf.title, resource.data.id))

        if not targets:
            logger.info("[NOTES] No notes to generate")
            return tree

        logger.info(f"[NOTES] Generating notes for {len(targets)} topics...")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(title: str, note_id: str) -> bool:
            async with semaphore:
                note = await self.notes.get(note_id)
                if note is None:
                    logger.warning(f"[NOTES] Note {note_id} for {title!r} not found, skipping")
                    return False
                if note.get("content") is not None:
                    return False
                content = await self.write(title, note.get("description"))
                return await self.notes.set_content(note_id, content)

        results = await asyncio.gather(*(_one(t, nid) for t, nid in targets), return_exceptions=True)
        errors = []
        for (title, note_id), result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error(f"[NOTES] ✗ Note {note_id} for {title!r} failed: {result}")
                errors.append(result)
        if errors:
            raise errors[0]

        logger.info(f"[NOTES] ✓ {sum(1 for r in results if r)} notes written")
        return tree

    async def regenerate(self, note_id: str, title: str, description: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Rewrite one existing note. Returns the updated record, None if unknown."""
        note = await self.notes.get(note_id)
        if note is None:
            return None
        content = await self.write(title, description or note.get("description"))
        await self.notes.set_content(note_id, content)
        return await self.notes.get(note_id)
