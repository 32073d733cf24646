import logging

from studymap.core.exceptions import PersistenceError
from studymap.db.repositories import NoteRepository
from studymap.pipeline.tree import Node, amap_leaves
from studymap.schemas.mindmap import LeafNode, Resource, ResourceData

logger = logging.getLogger(__name__)


class Materializer:
    """
    Turn every notes description in a tree into a persisted placeholder Note
    and point the resource at it. Running it on its own output is a no-op.
    """

    def __init__(self, notes: NoteRepository):
        self.notes = notes

    async def materialize(self, tree: Node) -> Node:
        created = 0
        failed = 0

        async def _visit(leaf: LeafNode) -> LeafNode:
            nonlocal created, failed
            resources = []
            for resource in leaf.resources:
                updated = await self._materialize_resource(leaf, resource)
                if updated is not resource:
                    created += 1
                elif resource.is_notes and resource.data.description:
                    failed += 1
                resources.append(updated)
            return leaf.model_copy(update={"resources": resources})

        result = await amap_leaves(tree, _visit)
        logger.info(f"[MATERIALIZE] ✓ {created} notes created, {failed} failed")
        return result

    async def _materialize_resource(self, leaf: LeafNode, resource: Resource) -> Resource:
        if not resource.is_notes:
            return resource

        data = resource.data
        description = data.description or f"Study notes for {leaf.title}"
        try:
            if data.id and not data.description:
                if await self.notes.get(data.id) is not None:
                    return resource
                logger.warning(f"[MATERIALIZE] Note {data.id} for {leaf.title!r} does not exist, creating one")
            note_id = await self.notes.create(description)
        except PersistenceError as e:
            # Description stays on the resource so the failure is visible in the tree.
            logger.error(f"[MATERIALIZE] Could not create note for {leaf.title!r}: {e}")
            return resource

        logger.info(f"[MATERIALIZE] Note {note_id} created for {leaf.title!r}")
        return resource.model_copy(update={"data": ResourceData(url=data.url, id=note_id)})
