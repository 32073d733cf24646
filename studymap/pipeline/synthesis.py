"""
StudyMap: Mind-map synthesis
=============================
Topics + candidate videos → one LLM call → validated tree.

The model picks videos, decides which leaves get notes instead, and chooses
the nesting. Anything that does not come back as a well-formed tree is a
SynthesisError; there is no fallback tree.
"""

import json
import logging
from typing import List

from pydantic import ValidationError

from studymap.core.exceptions import ProviderError, SynthesisError
from studymap.pipeline.tree import Node, map_resources
from studymap.schemas.mindmap import EnrichedTopic, new_resource_id, parse_tree
from studymap.services.llm_service import CompleteFn, clean_and_parse_json

logger = logging.getLogger(__name__)


MINDMAP_SYSTEM_PROMPT = (
    "You are a specialized AI for creating educational mind maps with relevant resources.\n"
    "You analyze a list of educational topics with associated YouTube videos, select the most "
    "relevant content for each topic, and organize everything into a hierarchical mind map.\n\n"
    "Create deep, multi-level hierarchies when a topic is complex. Do not limit yourself to a "
    "shallow structure; nest as many levels as a real understanding of the subject needs.\n\n"
    "Output ONLY valid JSON. No explanations, no comments, no markdown fences."
)

_TREE_SCHEMA_EXAMPLE = (
    "{\n"
    '  "title": "<chapter title>",\n'
    '  "is_end_node": false,\n'
    '  "subtopics": [\n'
    "    {\n"
    '      "title": "Topic Category",\n'
    '      "is_end_node": false,\n'
    '      "subtopics": [\n'
    "        {\n"
    '          "title": "Detailed Concept",\n'
    '          "is_end_node": true,\n'
    '          "resources": [\n'
    '            {"id": "res-1", "type": "youtube_link", "data": {"url": "https://www.youtube.com/watch?v=..."}}\n'
    "          ]\n"
    "        },\n"
    "        {\n"
    '          "title": "Another Concept",\n'
    '          "is_end_node": true,\n'
    '          "resources": [\n'
    '            {"id": "res-2", "type": "notes", "data": {"description": "What the notes must cover."}}\n'
    "          ]\n"
    "        }\n"
    "      ]\n"
    "    }\n"
    "  ]\n"
    "}\n"
)


def build_mindmap_prompt(enriched: List[EnrichedTopic], chapter_title: str) -> str:
    topics_data = json.dumps([t.model_dump() for t in enriched], ensure_ascii=False)
    return (
        f'I have the following topics for the chapter "{chapter_title}", each with candidate YouTube videos:\n\n'
        f"{topics_data}\n\n"
        "Please:\n"
        "1. For each topic select the most relevant video(s) using the title, length, views and likes.\n"
        "   Prefer titles that clearly match the topic, a reasonable length (not superficial, not\n"
        "   impractically long) and higher view and like counts. Never use a video whose url is '#'.\n"
        "2. Aim for roughly 2/3 of the end nodes with video resources and 1/3 with notes resources.\n"
        "3. Use notes resources for topics that lack a good video, involve mathematical formulas,\n"
        "   need step-by-step explanation, or are foundational to other topics. A notes resource\n"
        "   carries a `data.description` telling a writer exactly what the notes must cover.\n"
        "4. Group related topics under conceptual categories, break large topics into subtopics and\n"
        "   order content from fundamental to advanced. Nest as deeply as the material requires.\n"
        "5. Every topic must appear in the mind map.\n"
        "6. A node with is_end_node=false has a non-empty `subtopics` list and no resources.\n"
        "   A node with is_end_node=true has a `resources` list and no subtopics.\n\n"
        f"Return JSON with this structure (the root title must be \"{chapter_title}\"):\n"
        f"{_TREE_SCHEMA_EXAMPLE}"
    )


def assign_resource_ids(tree: Node) -> Node:
    """
    Give every resource a fresh id; ids the model invented are discarded.
    A notes resource never has a persisted Note yet, so its `data.id` goes too.
    """
    def _fresh(leaf, resource):
        update = {"id": new_resource_id()}
        if resource.is_notes and resource.data.id:
            update["data"] = resource.data.model_copy(update={"id": None})
        return resource.model_copy(update=update)

    return map_resources(tree, _fresh)


class MindMapSynthesizer:
    def __init__(self, complete: CompleteFn, max_tokens: int = 4000):
        self.complete = complete
        self.max_tokens = max_tokens

    async def synthesize(self, enriched: List[EnrichedTopic], chapter_title: str) -> Node:
        logger.info(f"[SYNTH] Building mind map for {chapter_title!r} from {len(enriched)} topics...")
        user_prompt = build_mindmap_prompt(enriched, chapter_title)

        try:
            raw = await self.complete(
                MINDMAP_SYSTEM_PROMPT,
                user_prompt,
                max_tokens=self.max_tokens,
                json_mode=True,
                primary="gemini",
            )
        except ProviderError as e:
            raise SynthesisError(f"LLM call failed: {e}") from e

        try:
            parsed = clean_and_parse_json(raw)
        except ValueError as e:
            raise SynthesisError(str(e)) from e

        try:
            tree = parse_tree(parsed)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or "<root>"
            raise SynthesisError(
                f"Model output is not a valid mind map ({e.error_count()} errors; "
                f"first at {location}: {first['msg']})"
            ) from e

        logger.info("[SYNTH] ✓ Mind map parsed")
        return assign_resource_ids(tree)
