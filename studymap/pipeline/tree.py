"""Traversal helpers for mind-map trees. All of them return new trees."""

from typing import Awaitable, Callable, Iterator, Tuple, Union

from studymap.schemas.mindmap import BranchNode, LeafNode, Resource

Node = Union[BranchNode, LeafNode]


def iter_leaves(node: Node) -> Iterator[LeafNode]:
    """Depth-first, subtopics in order."""
    if isinstance(node, LeafNode):
        yield node
        return
    for child in node.subtopics:
        yield from iter_leaves(child)


def iter_resources(node: Node) -> Iterator[Tuple[LeafNode, Resource]]:
    for leaf in iter_leaves(node):
        for resource in leaf.resources:
            yield leaf, resource


def map_leaves(node: Node, fn: Callable[[LeafNode], LeafNode]) -> Node:
    if isinstance(node, LeafNode):
        return fn(node)
    return node.model_copy(update={"subtopics": [map_leaves(child, fn) for child in node.subtopics]})


async def amap_leaves(node: Node, fn: Callable[[LeafNode], Awaitable[LeafNode]]) -> Node:
    """Async map_leaves; leaves are visited one at a time, in depth-first order."""
    if isinstance(node, LeafNode):
        return await fn(node)
    subtopics = []
    for child in node.subtopics:
        subtopics.append(await amap_leaves(child, fn))
    return node.model_copy(update={"subtopics": subtopics})


def map_resources(node: Node, fn: Callable[[LeafNode, Resource], Resource]) -> Node:
    def _leaf(leaf: LeafNode) -> LeafNode:
        return leaf.model_copy(update={"resources": [fn(leaf, r) for r in leaf.resources]})

    return map_leaves(node, _leaf)


def note_ids(node: Node) -> Iterator[str]:
    """Ids of persisted Notes referenced from the tree."""
    for _, resource in iter_resources(node):
        if resource.is_notes and resource.data.id:
            yield resource.data.id
